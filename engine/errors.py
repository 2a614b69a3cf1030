"""
Typed errors for catalog and rating operations.

Library exceptions (spotipy, requests, asyncio) are mapped onto five kinds.
Only NETWORK_TRANSIENT is retried; everything else fails fast.
"""
from __future__ import annotations
import asyncio
from enum import Enum
from typing import Optional

import requests
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOauthError


class ErrorKind(Enum):
    NOT_AUTHORIZED = "NotAuthorized"
    NO_SUBSCRIPTION = "NoSubscription"
    NETWORK_TRANSIENT = "NetworkTransient"
    NOT_FOUND = "NotFound"
    UNKNOWN = "Unknown"


_TITLES = {
    ErrorKind.NOT_AUTHORIZED: "Authorization Required",
    ErrorKind.NO_SUBSCRIPTION: "Subscription Required",
    ErrorKind.NETWORK_TRANSIENT: "Connection Problem",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.UNKNOWN: "Unexpected Error",
}

_RECOVERY_HINTS = {
    ErrorKind.NOT_AUTHORIZED: "Re-authorize StarTrack with your Spotify account (run with --authorize)",
    ErrorKind.NO_SUBSCRIPTION: "Check that your Spotify subscription is active",
    ErrorKind.NETWORK_TRANSIENT: "Check your internet connection and try again in a few moments",
    ErrorKind.NOT_FOUND: "Try playing a different song",
    ErrorKind.UNKNOWN: "If the problem persists, please restart the app",
}


class CatalogError(Exception):
    """Base class for every classified catalog/rating failure."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", retry_after: Optional[float] = None):
        super().__init__(message or _TITLES[self.kind])
        self.message = message or _TITLES[self.kind]
        # Server-provided wait (Retry-After), only meaningful for transient errors
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.NETWORK_TRANSIENT

    @property
    def title(self) -> str:
        return _TITLES[self.kind]

    @property
    def recovery_hint(self) -> str:
        return _RECOVERY_HINTS[self.kind]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class NotAuthorizedError(CatalogError):
    kind = ErrorKind.NOT_AUTHORIZED


class NoSubscriptionError(CatalogError):
    kind = ErrorKind.NO_SUBSCRIPTION


class NetworkTransientError(CatalogError):
    kind = ErrorKind.NETWORK_TRANSIENT


class NotFoundError(CatalogError):
    kind = ErrorKind.NOT_FOUND


class UnknownCatalogError(CatalogError):
    kind = ErrorKind.UNKNOWN


def _retry_after(headers) -> Optional[float]:
    if not headers:
        return None
    value = headers.get('Retry-After') or headers.get('retry-after')
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _classify_spotify(error: SpotifyException) -> CatalogError:
    status = error.http_status
    message = str(getattr(error, 'msg', '') or error)
    reason = (getattr(error, 'reason', None) or '')

    if status == 401:
        return NotAuthorizedError(message)
    if status == 403:
        if reason == 'PREMIUM_REQUIRED' or 'premium' in message.lower():
            return NoSubscriptionError(message)
        return NotAuthorizedError(message)
    if status == 404:
        return NotFoundError(message)
    if status == 429:
        return NetworkTransientError(message or "Rate limited", retry_after=_retry_after(getattr(error, 'headers', None)))
    if status is not None and status >= 500:
        return NetworkTransientError(message)
    return UnknownCatalogError(message)


def classify_exception(error: BaseException) -> CatalogError:
    """
    Map any exception onto the catalog error taxonomy.

    Already-classified errors are returned unchanged.
    """
    if isinstance(error, CatalogError):
        return error
    if isinstance(error, SpotifyException):
        return _classify_spotify(error)
    if isinstance(error, SpotifyOauthError):
        return NotAuthorizedError(str(error))
    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return NetworkTransientError(str(error) or type(error).__name__)
    if isinstance(error, requests.exceptions.HTTPError):
        response = error.response
        if response is not None and response.status_code >= 500:
            return NetworkTransientError(str(error))
        return UnknownCatalogError(str(error))
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return NetworkTransientError(str(error) or type(error).__name__)
    return UnknownCatalogError(str(error) or type(error).__name__)
