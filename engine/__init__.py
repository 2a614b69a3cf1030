"""
StarTrack engine: playback reconciliation, catalog resolution and favorites.

Construct everything through engine.service.NowPlayingService; the pieces
below are exported for tests and alternative wiring.
"""
from .analytics import ErrorAnalytics
from .errors import (
    CatalogError,
    ErrorKind,
    NetworkTransientError,
    NoSubscriptionError,
    NotAuthorizedError,
    NotFoundError,
    UnknownCatalogError,
    classify_exception,
)
from .favorites import FavoriteCache
from .models import (
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
from .reconciler import Reconciler
from .resolver import CatalogResolver, Resolution, score_candidate, select_best_match
from .retry import CRITICAL, NETWORK, QUICK, RetryExecutor, RetryPolicy

__all__ = [
    "ErrorAnalytics",
    "CatalogError",
    "ErrorKind",
    "NetworkTransientError",
    "NoSubscriptionError",
    "NotAuthorizedError",
    "NotFoundError",
    "UnknownCatalogError",
    "classify_exception",
    "FavoriteCache",
    "FavoriteStatus",
    "FavoriteStatusChanged",
    "PlaybackSignal",
    "PlaybackState",
    "ResolvedSong",
    "ResolvedSongChanged",
    "SourceUnavailable",
    "Stopped",
    "TrackChanged",
    "TrackSignal",
    "Reconciler",
    "CatalogResolver",
    "Resolution",
    "score_candidate",
    "select_best_match",
    "CRITICAL",
    "NETWORK",
    "QUICK",
    "RetryExecutor",
    "RetryPolicy",
]
