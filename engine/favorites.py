"""
Favorite (Liked Songs) status cache.

Entries live for ``ttl`` seconds. Mutations write through to the rating
service and then overwrite the cached entry, so a lookup that was already in
flight can't resurrect the old value.
"""
from __future__ import annotations
import time
from typing import Callable, Dict, Optional

from logging_config import get_logger
from providers.base import RatingService
from .analytics import ErrorAnalytics
from .errors import CatalogError
from .models import FavoriteStatus, RatingCacheEntry
from .retry import CRITICAL, NETWORK, QUICK, RetryExecutor

logger = get_logger(__name__)

DEFAULT_TTL = 300.0


class FavoriteCache:
    def __init__(
        self,
        rating_service: RatingService,
        retry: RetryExecutor,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
        error_sink: Optional[ErrorAnalytics] = None,
    ):
        self._ratings = rating_service
        self._retry = retry
        self._ttl = ttl
        self._clock = clock
        self._error_sink = error_sink
        self._entries: Dict[str, RatingCacheEntry] = {}
        # Bumped on every write so an older lookup can tell it lost the race
        self._versions: Dict[str, int] = {}
        self.fetch_count = 0

    async def get(self, catalog_id: str) -> FavoriteStatus:
        """
        Current favorite status for ``catalog_id``.

        Fresh entries are served without I/O. Failures return UNKNOWN and
        are not cached, so the next call tries again.
        """
        entry = self._entries.get(catalog_id)
        if entry is not None and not entry.is_stale(self._clock()):
            return FavoriteStatus.from_bool(entry.is_favorited)

        version = self._versions.get(catalog_id, 0)
        self.fetch_count += 1
        try:
            is_favorited = await self._retry.run(
                lambda: self._ratings.get_rating(catalog_id),
                QUICK,
                operation_name="getRating",
            )
        except CatalogError as e:
            logger.warning(f"Favorite status lookup failed: {e.kind.value}")
            if self._error_sink:
                self._error_sink.record(e, operation="getRating")
            return FavoriteStatus.UNKNOWN

        if self._versions.get(catalog_id, 0) != version:
            # mark_favorited ran while we were waiting; it wins
            marked = self._entries.get(catalog_id)
            if marked is not None:
                return FavoriteStatus.from_bool(marked.is_favorited)

        self._store(catalog_id, bool(is_favorited))
        return FavoriteStatus.from_bool(bool(is_favorited))

    def mark_favorited(self, catalog_id: str, value: bool) -> None:
        self._versions[catalog_id] = self._versions.get(catalog_id, 0) + 1
        self._store(catalog_id, value)

    async def update(self, catalog_id: str, value: bool) -> FavoriteStatus:
        """
        Add or remove a favorite in the catalog, then update the cache.

        Raises:
            CatalogError: when the rating service call ultimately fails
        """
        operation = "addFavorite" if value else "removeFavorite"
        try:
            if value:
                await self._retry.run(lambda: self._ratings.add_favorite(catalog_id), CRITICAL, operation_name=operation)
            else:
                await self._retry.run(lambda: self._ratings.remove_favorite(catalog_id), NETWORK, operation_name=operation)
        except CatalogError as e:
            logger.error(f"{operation} failed: {e.kind.value} - {e.recovery_hint}")
            if self._error_sink:
                self._error_sink.record(e, operation=operation)
            raise

        self.mark_favorited(catalog_id, value)
        return FavoriteStatus.from_bool(value)

    def peek(self, catalog_id: str) -> Optional[RatingCacheEntry]:
        """Cached entry (fresh or stale) without any I/O."""
        return self._entries.get(catalog_id)

    def invalidate(self, catalog_id: Optional[str] = None) -> None:
        if catalog_id is None:
            self._entries.clear()
        else:
            self._entries.pop(catalog_id, None)

    def _store(self, catalog_id: str, value: bool) -> None:
        self._entries[catalog_id] = RatingCacheEntry(
            catalog_id=catalog_id,
            is_favorited=value,
            expires_at=self._clock() + self._ttl,
        )
