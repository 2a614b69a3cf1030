"""
Reconciler - single owner of the canonical playback state.

Every input (source signals, debounce expiry, resolution and lookup results,
favorite mutations) goes through one ordered asyncio.Queue and is applied by
one consumer task. Nothing else writes the state, so handlers never race.

Generation counter:
    Incremented on every committed track change and on every stop. Results
    from the resolver and the favorite cache carry the generation they were
    started for and are dropped when it is no longer current.
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Set, Union

from logging_config import get_logger
from .analytics import ErrorAnalytics
from .errors import NotFoundError
from .favorites import FavoriteCache
from .helpers import cancel_tasks, create_tracked_task
from .models import (
    IDLE,
    FavoriteStatus,
    FavoriteStatusChanged,
    PlaybackSignal,
    PlaybackState,
    ResolvedSong,
    ResolvedSongChanged,
    SourceUnavailable,
    Stopped,
    TrackChanged,
    TrackSignal,
)
from .resolver import CatalogResolver, Resolution

logger = get_logger(__name__)

EngineEvent = Union[TrackChanged, Stopped, ResolvedSongChanged, FavoriteStatusChanged]

DEFAULT_DEBOUNCE = 0.3


# Internal queue messages

@dataclass(frozen=True)
class _DebounceElapsed:
    token: int


@dataclass(frozen=True)
class _ResolutionFinished:
    resolution: Resolution


@dataclass(frozen=True)
class _FavoriteLookupFinished:
    generation: int
    catalog_id: str
    status: FavoriteStatus


@dataclass
class _FavoriteMutated:
    catalog_id: str
    status: FavoriteStatus
    done: Optional[asyncio.Future] = None


class Reconciler:
    def __init__(
        self,
        resolver: CatalogResolver,
        favorites: FavoriteCache,
        debounce_seconds: float = DEFAULT_DEBOUNCE,
        error_sink: Optional[ErrorAnalytics] = None,
    ):
        self._resolver = resolver
        self._favorites = favorites
        self._debounce_seconds = debounce_seconds
        self._error_sink = error_sink

        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

        self._state: PlaybackState = IDLE
        self._generation = 0
        self._song: Optional[ResolvedSong] = None
        self._resolution_failed = False
        self._favorite_status = FavoriteStatus.UNKNOWN

        self._pending: Optional[TrackSignal] = None
        self._debounce_token = 0
        self._debounce_task: Optional[asyncio.Task] = None
        self._resolution_task: Optional[asyncio.Task] = None
        self._lookup_task: Optional[asyncio.Task] = None

        self._subscribers: List[asyncio.Queue] = []
        self._last_event: Optional[EngineEvent] = None

    # =========================================================================
    # Consumer interface
    # =========================================================================

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def current_resolved_song(self) -> Optional[ResolvedSong]:
        return self._song

    @property
    def favorite_status(self) -> FavoriteStatus:
        return self._favorite_status

    @property
    def is_favorited(self) -> bool:
        return self._favorite_status is FavoriteStatus.FAVORITED

    def subscribe(self) -> asyncio.Queue:
        """Return a queue that receives every engine event from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def request_add_favorite(self) -> FavoriteStatus:
        return await self._request_favorite(True)

    async def request_remove_favorite(self) -> FavoriteStatus:
        return await self._request_favorite(False)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def submit(self, event: Union[PlaybackSignal, SourceUnavailable]) -> None:
        """Enqueue a source event. Safe to call from any coroutine on the loop."""
        self._queue.put_nowait(event)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="reconciler")
        logger.info("Reconciler started")

    async def stop(self) -> None:
        worker = self._worker
        self._worker = None
        tasks = set(self._tasks)
        if worker is not None:
            tasks.add(worker)
        await cancel_tasks(tasks)
        self._debounce_task = self._resolution_task = self._lookup_task = None

        # Favorite requests still waiting in the queue are applied here
        while not self._queue.empty():
            message = self._queue.get_nowait()
            self._queue.task_done()
            if isinstance(message, _FavoriteMutated):
                self._on_favorite_mutated(message)
        logger.info("Reconciler stopped")

    async def drain(self) -> None:
        """
        Wait until every queued message is applied and no timer or
        resolution/lookup task is still going to post one.
        Requires a running worker.
        """
        while True:
            await self._queue.join()
            busy = [
                t for t in (self._debounce_task, self._resolution_task, self._lookup_task)
                if t is not None and not t.done()
            ]
            if not busy:
                if self._queue.empty():
                    return
                continue
            await asyncio.wait(busy)

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                self._apply(message)
            except Exception as e:
                logger.error(f"Failed to apply {type(message).__name__}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    # =========================================================================
    # Message handling (consumer task only)
    # =========================================================================

    def _apply(self, message) -> None:
        if isinstance(message, PlaybackSignal):
            self._on_signal(message)
        elif isinstance(message, SourceUnavailable):
            logger.debug(f"{message.source} unavailable: {message.reason}")
        elif isinstance(message, _DebounceElapsed):
            self._on_debounce_elapsed(message)
        elif isinstance(message, _ResolutionFinished):
            self._on_resolution(message.resolution)
        elif isinstance(message, _FavoriteLookupFinished):
            self._on_favorite_lookup(message)
        elif isinstance(message, _FavoriteMutated):
            self._on_favorite_mutated(message)
        else:
            logger.warning(f"Ignoring unknown message: {message!r}")

    def _on_signal(self, signal: PlaybackSignal) -> None:
        if not signal.is_playing:
            self._cancel_pending()
            if self._state.is_playing:
                self._commit_stop(signal.source)
            return

        track = signal.track
        if track is None:
            return

        if self._state.is_playing and track.same_track(self._state.track):
            if self._pending is not None:
                logger.debug(f"Pending change cancelled, back on {track.display}")
                self._cancel_pending()
            self._retry_incomplete()
            return

        if self._pending is not None and track.same_track(self._pending):
            self._pending = track
            return

        self._pending = track
        self._restart_debounce()

    def _on_debounce_elapsed(self, message: _DebounceElapsed) -> None:
        if message.token != self._debounce_token or self._pending is None:
            return
        track = self._pending
        self._pending = None
        self._debounce_task = None
        self._commit_track(track)

    def _commit_track(self, track: TrackSignal) -> None:
        self._generation += 1
        self._state = PlaybackState(is_playing=True, track=track)
        self._reset_song()
        logger.info(f"Track changed: {track.display} (generation {self._generation})")
        self._emit(TrackChanged(track, self._generation))

        self._start_resolution(track)

    def _commit_stop(self, source: str) -> None:
        self._generation += 1
        self._state = IDLE
        self._reset_song()
        logger.info(f"Playback stopped ({source}, generation {self._generation})")
        self._emit(Stopped(self._generation))

    def _on_resolution(self, resolution: Resolution) -> None:
        if resolution.generation != self._generation or resolution.stale:
            logger.debug(f"Dropping resolution for generation {resolution.generation}")
            return
        self._resolution_task = None
        self._song = resolution.song
        self._resolution_failed = resolution.error is not None
        self._emit(ResolvedSongChanged(resolution.song, resolution.generation))

        if resolution.song is not None:
            self._start_lookup(resolution.song.catalog_id)

    def _on_favorite_lookup(self, message: _FavoriteLookupFinished) -> None:
        if message.generation != self._generation:
            return
        self._lookup_task = None
        if self._song is None or self._song.catalog_id != message.catalog_id:
            return
        self._set_favorite_status(message.catalog_id, message.status)

    def _on_favorite_mutated(self, message: _FavoriteMutated) -> None:
        try:
            if self._song is not None and self._song.catalog_id == message.catalog_id:
                self._set_favorite_status(message.catalog_id, message.status)
        finally:
            if message.done is not None and not message.done.done():
                message.done.set_result(None)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _set_favorite_status(self, catalog_id: str, status: FavoriteStatus) -> None:
        if status is self._favorite_status:
            return
        self._favorite_status = status
        self._emit(FavoriteStatusChanged(catalog_id, status))

    def _start_resolution(self, track: TrackSignal) -> None:
        generation = self._generation
        self._resolution_task = create_tracked_task(
            self._resolve(track, generation), self._tasks, name=f"resolve-{generation}"
        )

    def _start_lookup(self, catalog_id: str) -> None:
        generation = self._generation
        self._lookup_task = create_tracked_task(
            self._lookup_favorite(catalog_id, generation), self._tasks, name=f"favorite-{generation}"
        )

    def _retry_incomplete(self) -> None:
        """Re-run a failed resolution or favorite lookup for the current track."""
        if self._resolution_failed and self._resolution_task is None:
            logger.debug(f"Retrying resolution for generation {self._generation}")
            self._start_resolution(self._state.track)
        elif (
            self._song is not None
            and self._favorite_status is FavoriteStatus.UNKNOWN
            and self._lookup_task is None
        ):
            logger.debug(f"Retrying favorite lookup for generation {self._generation}")
            self._start_lookup(self._song.catalog_id)

    def _reset_song(self) -> None:
        self._cancel_task(self._resolution_task)
        self._cancel_task(self._lookup_task)
        self._resolution_task = self._lookup_task = None
        self._song = None
        self._resolution_failed = False
        self._favorite_status = FavoriteStatus.UNKNOWN

    def _restart_debounce(self) -> None:
        self._cancel_task(self._debounce_task)
        self._debounce_token += 1
        self._debounce_task = create_tracked_task(
            self._debounce(self._debounce_token), self._tasks, name="debounce"
        )

    def _cancel_pending(self) -> None:
        self._cancel_task(self._debounce_task)
        self._debounce_task = None
        # An expiry already sitting in the queue must not commit
        self._debounce_token += 1
        self._pending = None

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    def _emit(self, event: EngineEvent) -> None:
        if event == self._last_event:
            return
        self._last_event = event
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    # =========================================================================
    # Background work (results come back through the queue)
    # =========================================================================

    async def _debounce(self, token: int) -> None:
        await asyncio.sleep(self._debounce_seconds)
        self._queue.put_nowait(_DebounceElapsed(token))

    async def _resolve(self, track: TrackSignal, generation: int) -> None:
        resolution = await self._resolver.resolve(
            track, generation, current_generation=lambda: self._generation
        )
        self._queue.put_nowait(_ResolutionFinished(resolution))

    async def _lookup_favorite(self, catalog_id: str, generation: int) -> None:
        status = await self._favorites.get(catalog_id)
        self._queue.put_nowait(_FavoriteLookupFinished(generation, catalog_id, status))

    async def _request_favorite(self, value: bool) -> FavoriteStatus:
        operation = "addFavorite" if value else "removeFavorite"
        song = self._song
        if song is None:
            error = NotFoundError("No resolved song for the current track")
            if self._error_sink:
                self._error_sink.record(error, operation=operation)
            raise error

        # FavoriteCache records and re-raises rating failures
        status = await self._favorites.update(song.catalog_id, value)

        if self.running:
            done = asyncio.get_running_loop().create_future()
            self._queue.put_nowait(_FavoriteMutated(song.catalog_id, status, done))
            await done
        else:
            self._on_favorite_mutated(_FavoriteMutated(song.catalog_id, status))
        return status
