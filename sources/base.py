"""
Base class for playback signal sources.

A source observes one player through one channel (OS notifications, an
automation bridge, an MPRIS follower) and reports what it sees by calling
``emit`` with a PlaybackSignal or SourceUnavailable. Sources never touch the
canonical state; the Reconciler does.

To create a new source:
1. Subclass BaseSignalSource
2. Implement get_config(), capabilities(), run()
3. Register it in sources.build_sources() for the modes it applies to
"""
import platform
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Callable, List, Union

from engine.models import PlaybackSignal, SourceUnavailable

SourceEvent = Union[PlaybackSignal, SourceUnavailable]
Emit = Callable[[SourceEvent], None]


class SourceCapability(Flag):
    """
    Capabilities a source can declare.

    Combine with bitwise OR: PUSH | EXTERNAL_ID
    """
    NONE = 0
    PUSH = auto()           # Delivers changes as they happen
    POLL = auto()           # Queries on a fixed interval
    EXTERNAL_ID = auto()    # Reports a player ID usable for exact catalog lookup
    DURATION = auto()       # Reports track duration


@dataclass
class SourceConfig:
    """Static identity of a signal source."""
    name: str                              # Internal ID, used as PlaybackSignal.source
    display_name: str                      # Human-readable name for logs
    platforms: List[str] = field(default_factory=lambda: ["Windows", "Linux", "Darwin"])


class BaseSignalSource(ABC):
    def __init__(self):
        self._config = self.get_config()

    @classmethod
    @abstractmethod
    def get_config(cls) -> SourceConfig:
        pass

    @classmethod
    @abstractmethod
    def capabilities(cls) -> SourceCapability:
        pass

    @property
    def name(self) -> str:
        return self._config.name

    def is_available(self) -> bool:
        """
        Check if this source can run here.

        Default implementation checks the current platform against config.platforms.
        Override to also check for external tools (osascript, playerctl).
        """
        return platform.system() in self._config.platforms

    @abstractmethod
    async def run(self, emit: Emit) -> None:
        """
        Observe the player until cancelled, calling ``emit`` for every observation.

        Must not raise on player or bridge failures: report them as
        SourceUnavailable and keep going.
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
