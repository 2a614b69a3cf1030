"""
Push signal sources.

NotificationSource:
    Fed by OS glue (e.g. a distributed-notification observer for
    com.apple.Music.playerInfo) through deliver(). The payload is the
    player's key/value map; missing keys are tolerated.

PlayerctlFollowSource:
    Linux MPRIS via ``playerctl metadata --follow``, which prints one line
    per metadata or status change. Restarted after a delay if it exits.
"""
import asyncio
import platform
import shutil
from typing import Any, Mapping, Optional

from engine.models import PlaybackSignal, SourceUnavailable, TrackSignal
from logging_config import get_logger
from .base import BaseSignalSource, Emit, SourceCapability, SourceConfig, SourceEvent

logger = get_logger(__name__)


def _first(payload: Mapping[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _seconds_from(value: Any, divisor: float) -> Optional[float]:
    try:
        seconds = float(value) / divisor
    except (TypeError, ValueError):
        return None
    return seconds if seconds > 0 else None


def parse_player_info(payload: Mapping[str, Any], source: str = "notification") -> Optional[PlaybackSignal]:
    """
    Convert a player notification payload into a PlaybackSignal.

    Returns None when the payload carries no usable information: no player
    state, or a playing state without a track name.
    """
    if not payload:
        return None

    state = _first(payload, "Player State", "PlayerState")
    if state is None:
        return None

    if str(state).strip().lower() != "playing":
        return PlaybackSignal(source=source, is_playing=False)

    name = _first(payload, "Name")
    if name is None:
        return None

    track = TrackSignal(
        name=str(name),
        artist=str(_first(payload, "Artist") or ""),
        album=_text(_first(payload, "Album")),
        # Music reports PersistentID as a number
        source_id=_text(_first(payload, "PersistentID", "Persistent ID")),
        # Total Time is reported in milliseconds
        duration_seconds=_seconds_from(_first(payload, "Total Time", "TotalTime"), 1000),
    )
    return PlaybackSignal(source=source, is_playing=True, track=track)


class NotificationSource(BaseSignalSource):
    """
    Generic push source. OS glue calls deliver(payload) from any thread;
    run() turns payloads into signals on the event loop.
    """

    def __init__(self, source_name: str = "notification"):
        self._source_name = source_name
        super().__init__()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbox: Optional[asyncio.Queue] = None
        self.dropped = 0

    def get_config(self) -> SourceConfig:
        return SourceConfig(name=self._source_name, display_name="Player notifications")

    @classmethod
    def capabilities(cls) -> SourceCapability:
        return SourceCapability.PUSH | SourceCapability.EXTERNAL_ID | SourceCapability.DURATION

    def deliver(self, payload: Mapping[str, Any]) -> None:
        """Hand a notification payload to the source. Thread-safe."""
        if self._loop is None or self._inbox is None:
            self.dropped += 1
            logger.debug("Notification dropped: source not running")
            return
        self._loop.call_soon_threadsafe(self._inbox.put_nowait, dict(payload))

    async def run(self, emit: Emit) -> None:
        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()
        logger.info(f"Listening for {self._source_name} notifications")
        try:
            while True:
                payload = await self._inbox.get()
                signal = parse_player_info(payload, self.name)
                if signal is None:
                    logger.debug("Notification without usable player info")
                    continue
                emit(signal)
        finally:
            self._loop = None
            self._inbox = None


# Tab-separated so titles containing spaces or pipes survive
PLAYERCTL_FORMAT = "{{status}}\t{{title}}\t{{artist}}\t{{album}}\t{{mpris:length}}\t{{mpris:trackid}}"


def parse_playerctl_line(line: str, source: str = "playerctl") -> Optional[SourceEvent]:
    """
    Parse one line of ``playerctl metadata --follow --format PLAYERCTL_FORMAT``.

    An empty line means the player went away, which counts as not playing.
    """
    line = line.rstrip("\r\n")
    if not line.strip():
        return PlaybackSignal(source=source, is_playing=False)

    fields = (line.split("\t") + [""] * 6)[:6]
    status, title, artist, album, length, track_id = (f.strip() for f in fields)

    if status.lower() != "playing":
        return PlaybackSignal(source=source, is_playing=False)
    if not title:
        return None

    # MPRIS reports an explicit placeholder when there is no track
    if not track_id or track_id.endswith("/NoTrack"):
        track_id = None

    track = TrackSignal(
        name=title,
        artist=artist,
        album=album or None,
        source_id=track_id,
        # mpris:length is in microseconds
        duration_seconds=_seconds_from(length, 1_000_000),
    )
    return PlaybackSignal(source=source, is_playing=True, track=track)


class PlayerctlFollowSource(BaseSignalSource):
    def __init__(self, player: Optional[str] = None, restart_delay: float = 5.0):
        super().__init__()
        self._player = player
        self._restart_delay = restart_delay

    @classmethod
    def get_config(cls) -> SourceConfig:
        return SourceConfig(name="playerctl_follow", display_name="Linux (MPRIS follow)", platforms=["Linux"])

    @classmethod
    def capabilities(cls) -> SourceCapability:
        return SourceCapability.PUSH | SourceCapability.EXTERNAL_ID | SourceCapability.DURATION

    def is_available(self) -> bool:
        return platform.system() == "Linux" and shutil.which("playerctl") is not None

    def _command(self):
        command = ["playerctl"]
        if self._player:
            command += ["--player", self._player]
        return command + ["metadata", "--follow", "--format", PLAYERCTL_FORMAT]

    async def run(self, emit: Emit) -> None:
        while True:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self._command(),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except FileNotFoundError:
                logger.warning("playerctl not installed. Install with: sudo apt install playerctl")
                emit(SourceUnavailable(self.name, "playerctl not installed"))
                return

            try:
                async for raw in process.stdout:
                    event = parse_playerctl_line(raw.decode(errors="replace"), self.name)
                    if event is not None:
                        emit(event)
                await process.wait()
            finally:
                if process.returncode is None:
                    try:
                        process.kill()
                    except ProcessLookupError:
                        pass
                    await process.wait()

            logger.warning(f"playerctl exited with code {process.returncode}, restarting in {self._restart_delay}s")
            emit(SourceUnavailable(self.name, f"playerctl exited ({process.returncode})"))
            await asyncio.sleep(self._restart_delay)
