"""
Polling signal source backed by an automation bridge.

A bridge answers one question synchronously: what is the player doing right
now? PollingBridge asks on a fixed interval (run in the default executor,
since bridges shell out) and turns each answer into a signal.

Outcomes:
- snapshot                -> PlaybackSignal
- PlayerNotRunning        -> PlaybackSignal(is_playing=False), an explicit answer
- any other bridge error  -> SourceUnavailable, no information
"""
import asyncio
import platform
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from engine.models import PlaybackSignal, SourceUnavailable, TrackSignal
from logging_config import get_logger
from .base import BaseSignalSource, Emit, SourceCapability, SourceConfig, SourceEvent
from .push import PLAYERCTL_FORMAT

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


class BridgeError(Exception):
    """The bridge could not get an answer from the player."""


class PlayerNotRunning(BridgeError):
    """The player application is not running. Means nothing is playing."""


@dataclass(frozen=True)
class BridgeSnapshot:
    is_playing: bool
    track_name: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    duration_seconds: Optional[float] = None
    external_id: Optional[str] = None   # Set when the bridge gets it in the same query


def _parse_float(value: str) -> Optional[float]:
    # AppleScript formats reals with the user's locale
    try:
        number = float(value.strip().replace(",", "."))
    except ValueError:
        return None
    return number if number > 0 else None


class AutomationBridge(ABC):
    name: str = "bridge"

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def query(self) -> BridgeSnapshot:
        """
        Blocking query of the player state.

        Raises:
            PlayerNotRunning: the player application is not running
            BridgeError: anything else went wrong
        """
        pass

    def get_external_id(self, snapshot: BridgeSnapshot) -> Optional[str]:
        """Player-specific ID of the current track, if the bridge can provide one."""
        return snapshot.external_id


class AppleScriptBridge(AutomationBridge):
    """
    macOS Music.app / Spotify via osascript.

    The running check goes through System Events so that querying never
    launches the player.
    """

    RUNNING_SCRIPT = '''
    tell application "System Events"
        if (name of processes) contains "{app}" then
            return "true"
        else
            return "false"
        end if
    end tell
    '''

    QUERY_SCRIPT = '''
    tell application "{app}"
        if player state is playing then
            set t to current track
            return "playing" & linefeed & (name of t) & linefeed & (artist of t) & linefeed & (album of t) & linefeed & ((duration of t) as string)
        else
            return "paused"
        end if
    end tell
    '''

    # Music.app: persistent ID; Spotify: spotify:track:<id>
    ID_SCRIPTS = {
        "Music": 'tell application "Music" to get persistent ID of current track',
        "Spotify": 'tell application "Spotify" to get id of current track',
    }

    # Music.app reports duration in seconds, Spotify in milliseconds
    DURATION_DIVISORS = {"Music": 1, "Spotify": 1000}

    def __init__(self, app: str = "Music", timeout: float = 3.0):
        self.app = app
        self.name = f"applescript_{app.lower()}"
        self._timeout = timeout

    def is_available(self) -> bool:
        return platform.system() == "Darwin"

    def _run(self, script: str) -> str:
        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=self._timeout
            )
        except FileNotFoundError as e:
            raise BridgeError("osascript not found") from e
        except subprocess.TimeoutExpired as e:
            raise BridgeError(f"osascript timed out after {self._timeout}s") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            # -600: application isn't running
            if "-600" in stderr:
                raise PlayerNotRunning(f"{self.app} is not running")
            raise BridgeError(stderr or f"osascript exited with {result.returncode}")
        return result.stdout.rstrip("\n")

    def query(self) -> BridgeSnapshot:
        if self._run(self.RUNNING_SCRIPT.format(app=self.app)).strip() != "true":
            raise PlayerNotRunning(f"{self.app} is not running")

        lines = self._run(self.QUERY_SCRIPT.format(app=self.app)).split("\n")
        if lines[0].strip() != "playing":
            return BridgeSnapshot(is_playing=False)

        lines += [""] * (5 - len(lines))
        duration = _parse_float(lines[4])
        if duration is not None:
            duration /= self.DURATION_DIVISORS.get(self.app, 1)

        return BridgeSnapshot(
            is_playing=True,
            track_name=lines[1].strip() or None,
            artist=lines[2].strip() or None,
            album=lines[3].strip() or None,
            duration_seconds=duration,
        )

    def get_external_id(self, snapshot: BridgeSnapshot) -> Optional[str]:
        script = self.ID_SCRIPTS.get(self.app)
        if script is None or not snapshot.is_playing:
            return None
        return self._run(script).strip() or None


class PlayerctlBridge(AutomationBridge):
    """Linux MPRIS via one ``playerctl metadata`` call per poll."""

    FORMAT = PLAYERCTL_FORMAT

    def __init__(self, player: Optional[str] = None, timeout: float = 2.0):
        self.player = player
        self.name = f"playerctl_{player}" if player else "playerctl"
        self._timeout = timeout

    def is_available(self) -> bool:
        return platform.system() == "Linux" and shutil.which("playerctl") is not None

    def _command(self) -> List[str]:
        command = ["playerctl"]
        if self.player:
            command += ["--player", self.player]
        return command + ["metadata", "--format", self.FORMAT]

    def query(self) -> BridgeSnapshot:
        try:
            result = subprocess.run(
                self._command(),
                capture_output=True,
                text=True,
                timeout=self._timeout
            )
        except FileNotFoundError as e:
            raise BridgeError("playerctl not installed") from e
        except subprocess.TimeoutExpired as e:
            raise BridgeError("playerctl timed out") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "No players found" in stderr or "No player could handle" in stderr:
                raise PlayerNotRunning(stderr)
            raise BridgeError(stderr or f"playerctl exited with {result.returncode}")

        fields = (result.stdout.rstrip("\n").split("\t") + [""] * 6)[:6]
        status, title, artist, album, length, track_id = (f.strip() for f in fields)
        if status.lower() != "playing":
            return BridgeSnapshot(is_playing=False)

        duration = _parse_float(length)
        return BridgeSnapshot(
            is_playing=True,
            track_name=title or None,
            artist=artist or None,
            album=album or None,
            # mpris:length is in microseconds
            duration_seconds=duration / 1_000_000 if duration else None,
            external_id=track_id if track_id and not track_id.endswith("/NoTrack") else None,
        )


class PollingBridge(BaseSignalSource):
    def __init__(self, bridge: AutomationBridge, interval: float = DEFAULT_POLL_INTERVAL):
        self._bridge = bridge
        super().__init__()
        self._interval = interval

    def get_config(self) -> SourceConfig:
        return SourceConfig(name=f"poll_{self._bridge.name}", display_name=f"Polling ({self._bridge.name})")

    @classmethod
    def capabilities(cls) -> SourceCapability:
        return SourceCapability.POLL | SourceCapability.EXTERNAL_ID | SourceCapability.DURATION

    @property
    def interval(self) -> float:
        return self._interval

    def is_available(self) -> bool:
        return self._bridge.is_available()

    async def poll_once(self) -> SourceEvent:
        loop = asyncio.get_running_loop()
        try:
            snapshot = await loop.run_in_executor(None, self._bridge.query)
        except PlayerNotRunning:
            return PlaybackSignal(source=self.name, is_playing=False)
        except Exception as e:
            logger.debug(f"{self._bridge.name} query failed: {e}")
            return SourceUnavailable(self.name, str(e) or type(e).__name__)

        if not snapshot.is_playing:
            return PlaybackSignal(source=self.name, is_playing=False)
        if not snapshot.track_name:
            # Playing but unreadable; no information about the track
            return PlaybackSignal(source=self.name, is_playing=True)

        external_id = snapshot.external_id
        if external_id is None:
            try:
                external_id = await loop.run_in_executor(None, self._bridge.get_external_id, snapshot)
            except Exception as e:
                logger.debug(f"{self._bridge.name} external ID lookup failed: {e}")

        track = TrackSignal(
            name=snapshot.track_name,
            artist=snapshot.artist or "",
            album=snapshot.album,
            source_id=external_id,
            duration_seconds=snapshot.duration_seconds,
        )
        return PlaybackSignal(source=self.name, is_playing=True, track=track)

    async def run(self, emit: Emit) -> None:
        logger.info(f"Polling {self._bridge.name} every {self._interval}s")
        while True:
            emit(await self.poll_once())
            await asyncio.sleep(self._interval)
