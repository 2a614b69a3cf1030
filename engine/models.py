"""
Value types shared by the signal sources, the reconciler and the catalog layer.

Everything here is immutable. The reconciler replaces state objects instead of
mutating them, so a snapshot handed to a consumer never changes underneath it.
"""
from __future__ import annotations
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .helpers import normalize_text, normalize_track_id


@dataclass(frozen=True)
class TrackSignal:
    """A best-effort observation of the track a player reports."""
    name: str
    artist: str
    album: Optional[str] = None
    source_id: Optional[str] = None        # Player-specific ID (persistent ID, Spotify URI, MPRIS track id)
    duration_seconds: Optional[float] = None
    observed_at: float = field(default_factory=time.time, compare=False)

    @property
    def identity(self) -> str:
        return normalize_track_id(self.artist, self.name, self.source_id)

    def same_track(self, other: Optional["TrackSignal"]) -> bool:
        """
        True when both signals denote the same song.

        Name and artist must match after normalization. Source IDs must match
        only when both sides carry one, since push and poll sources differ in
        whether they can report an ID at all.
        """
        if other is None:
            return False
        if normalize_text(self.name) != normalize_text(other.name):
            return False
        if normalize_text(self.artist) != normalize_text(other.artist):
            return False
        if self.source_id and other.source_id:
            return self.source_id.strip() == other.source_id.strip()
        return True

    @property
    def display(self) -> str:
        return f"{self.name} - {self.artist}" if self.artist else self.name


@dataclass(frozen=True)
class PlaybackState:
    is_playing: bool = False
    track: Optional[TrackSignal] = None

    def __post_init__(self):
        if not self.is_playing and self.track is not None:
            raise ValueError("PlaybackState.track must be None while not playing")


IDLE = PlaybackState()


@dataclass(frozen=True)
class ResolvedSong:
    """A song that exists in the remote catalog. Search candidates use the same type."""
    catalog_id: str
    title: str
    artist_name: str
    album_title: Optional[str] = None
    duration_seconds: Optional[float] = None

    @property
    def display(self) -> str:
        return f"{self.title} - {self.artist_name}"


class FavoriteStatus(Enum):
    FAVORITED = "favorited"
    NOT_FAVORITED = "not_favorited"
    UNKNOWN = "unknown"

    @classmethod
    def from_bool(cls, value: bool) -> "FavoriteStatus":
        return cls.FAVORITED if value else cls.NOT_FAVORITED


@dataclass(frozen=True)
class RatingCacheEntry:
    catalog_id: str
    is_favorited: bool
    expires_at: float

    def is_stale(self, now: float) -> bool:
        return now > self.expires_at


# =============================================================================
# Source events (producers -> reconciler)
# =============================================================================

@dataclass(frozen=True)
class PlaybackSignal:
    """
    What one source observed. ``track`` may be None while playing when the
    source could not read track info; the reconciler treats that as no information.
    """
    source: str
    is_playing: bool
    track: Optional[TrackSignal] = None


@dataclass(frozen=True)
class SourceUnavailable:
    """A source failed or has nothing to say. Never interpreted as a stop."""
    source: str
    reason: str = ""


# =============================================================================
# Engine events (reconciler -> consumers)
# =============================================================================

@dataclass(frozen=True)
class TrackChanged:
    track: TrackSignal
    generation: int


@dataclass(frozen=True)
class Stopped:
    generation: int


@dataclass(frozen=True)
class ResolvedSongChanged:
    song: Optional[ResolvedSong]
    generation: int


@dataclass(frozen=True)
class FavoriteStatusChanged:
    catalog_id: str
    status: FavoriteStatus
