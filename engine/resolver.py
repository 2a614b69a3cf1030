"""
Catalog resolution: turn a TrackSignal into a ResolvedSong.

Order of attempts:
1. Same identity as the last successful resolution -> reuse it, no I/O.
2. Player-provided ID exchangeable for a catalog ID -> exact match.
3. Free-text search scored by title/artist similarity.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from logging_config import get_logger
from providers.base import CatalogSearchAPI
from .analytics import ErrorAnalytics
from .errors import CatalogError
from .helpers import normalize_for_match
from .models import ResolvedSong, TrackSignal
from .retry import QUICK, RetryExecutor, RetryPolicy

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    track: TrackSignal
    generation: int
    song: Optional[ResolvedSong] = None
    error: Optional[CatalogError] = None
    from_cache: bool = False
    stale: bool = False


def _match_points(wanted: str, found: str, exact: float, partial: float) -> float:
    if not wanted or not found:
        return 0.0
    if wanted == found:
        return exact
    if wanted in found or found in wanted:
        return partial
    return 0.0


def score_candidate(candidate: ResolvedSong, title: str, artist: Optional[str]) -> float:
    """
    Score a search candidate against the observed title/artist.

    exact title +3, partial +1; exact artist +2, partial +1;
    album present +0.5; duration present +0.5
    """
    score = _match_points(normalize_for_match(title), normalize_for_match(candidate.title), 3, 1)
    score += _match_points(normalize_for_match(artist), normalize_for_match(candidate.artist_name), 2, 1)
    if candidate.album_title:
        score += 0.5
    if candidate.duration_seconds:
        score += 0.5
    return score


def select_best_match(
    candidates: Sequence[ResolvedSong], title: str, artist: Optional[str]
) -> Tuple[Optional[ResolvedSong], float]:
    """Highest score above zero wins; ties keep the catalog's order."""
    best: Optional[ResolvedSong] = None
    best_score = 0.0
    for candidate in candidates:
        score = score_candidate(candidate, title, artist)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score


class CatalogResolver:
    def __init__(
        self,
        catalog: CatalogSearchAPI,
        retry: RetryExecutor,
        policy: RetryPolicy = QUICK,
        search_limit: int = 5,
        error_sink: Optional[ErrorAnalytics] = None,
    ):
        self._catalog = catalog
        self._retry = retry
        self._policy = policy
        self._search_limit = search_limit
        self._error_sink = error_sink
        self._last: Optional[Tuple[TrackSignal, Optional[ResolvedSong]]] = None
        self.search_count = 0

    @property
    def last_resolved(self) -> Optional[TrackSignal]:
        return self._last[0] if self._last else None

    def forget(self) -> None:
        """Drop the memoized resolution so the next call searches again."""
        self._last = None

    async def resolve(
        self,
        track: TrackSignal,
        generation: int = 0,
        current_generation: Optional[Callable[[], int]] = None,
    ) -> Resolution:
        """
        Resolve ``track``. Never raises for catalog failures: errors come back
        in ``Resolution.error`` with ``song=None``.

        Args:
            track: The canonical track to resolve
            generation: Generation the request was issued for
            current_generation: Returns the reconciler's generation; used to
                flag results that were superseded while in flight
        """
        if self._last is not None and self._last[0].same_track(track):
            logger.debug(f"Reusing resolution for {track.display}")
            return Resolution(track, generation, song=self._last[1], from_cache=True)

        try:
            song = await self._resolve_by_external_id(track)
            if song is None:
                song = await self._resolve_by_search(track)
        except CatalogError as e:
            logger.warning(f"Catalog resolution failed for {track.display}: {e.kind.value}")
            if self._error_sink:
                self._error_sink.record(e, operation="resolve")
            return Resolution(track, generation, error=e)

        self._last = (track, song)

        if song is None:
            logger.info(f"No catalog match for: {track.display}")
        else:
            logger.info(f"Resolved {track.display} -> {song.display} ({song.catalog_id})")

        if current_generation is not None and current_generation() != generation:
            logger.debug(f"Discarding superseded resolution (generation {generation})")
            return Resolution(track, generation, song=song, stale=True)

        return Resolution(track, generation, song=song)

    async def _resolve_by_external_id(self, track: TrackSignal) -> Optional[ResolvedSong]:
        if not track.source_id:
            return None
        try:
            catalog_id = await self._retry.run(
                lambda: self._catalog.lookup_by_external_id(track.source_id),
                self._policy,
                operation_name="lookupByExternalID",
            )
        except CatalogError as e:
            # Exact lookup is an optimization; fall through to search
            logger.debug(f"External ID lookup failed ({e.kind.value}), falling back to search")
            if self._error_sink:
                self._error_sink.record(e, operation="lookupByExternalID")
            return None

        if not catalog_id:
            return None

        logger.debug(f"Exact catalog match by external ID: {catalog_id}")
        return ResolvedSong(
            catalog_id=catalog_id,
            title=track.name,
            artist_name=track.artist,
            album_title=track.album,
            duration_seconds=track.duration_seconds,
        )

    async def _resolve_by_search(self, track: TrackSignal) -> Optional[ResolvedSong]:
        term = f"{track.name} {track.artist}".strip()
        self.search_count += 1
        candidates: List[ResolvedSong] = await self._retry.run(
            lambda: self._catalog.search(term, self._search_limit),
            self._policy,
            operation_name="search",
        )
        best, score = select_best_match(candidates, track.name, track.artist)
        if best is not None:
            logger.debug(f"Best matching song with score {score} of {len(candidates)} candidates")
        return best
