"""
NowPlayingService - wires sources, catalog, resolver, favorites and reconciler.

This is the only place where the engine's collaborators are constructed.
Everything else receives them as arguments.
"""
from __future__ import annotations
import asyncio
from typing import Dict, List, Optional, Set

from config import CATALOG, ENGINE, FAVORITES
from logging_config import get_logger
from providers.base import CatalogSearchAPI, RatingService
from providers.spotify_api import SpotifyCatalog
from sources import build_sources
from sources.base import BaseSignalSource
from .analytics import ErrorAnalytics
from .favorites import FavoriteCache
from .helpers import cancel_tasks, create_tracked_task
from .reconciler import Reconciler
from .resolver import CatalogResolver
from .retry import RetryExecutor

logger = get_logger(__name__)


class NowPlayingService:
    """
    Composition root for the engine.

    Args:
        mode: Deployment mode (push, poll, hybrid); defaults to engine.mode
        catalog: Catalog search API; defaults to a SpotifyCatalog
        ratings: Rating service; defaults to the catalog when it implements one
        sources: Signal sources; defaults to build_sources(mode)
    """

    def __init__(
        self,
        mode: Optional[str] = None,
        catalog: Optional[CatalogSearchAPI] = None,
        ratings: Optional[RatingService] = None,
        sources: Optional[List[BaseSignalSource]] = None,
        retry: Optional[RetryExecutor] = None,
        debounce_seconds: Optional[float] = None,
    ):
        self.mode = mode or ENGINE["mode"]

        if catalog is None:
            catalog = SpotifyCatalog()
        if ratings is None:
            if not isinstance(catalog, RatingService):
                raise TypeError("A RatingService is required when the catalog does not provide one")
            ratings = catalog

        self.catalog = catalog
        self.ratings = ratings
        self.analytics = ErrorAnalytics()
        self.retry = retry or RetryExecutor()
        self.resolver = CatalogResolver(
            catalog,
            self.retry,
            search_limit=CATALOG["search_limit"],
            error_sink=self.analytics,
        )
        self.favorites = FavoriteCache(
            ratings,
            self.retry,
            ttl=FAVORITES["ttl_seconds"],
            error_sink=self.analytics,
        )
        self.reconciler = Reconciler(
            self.resolver,
            self.favorites,
            debounce_seconds=ENGINE["debounce_seconds"] if debounce_seconds is None else debounce_seconds,
            error_sink=self.analytics,
        )
        if sources is None:
            sources = build_sources(self.mode, player=ENGINE["player"], poll_interval=ENGINE["poll_interval"])
        self.sources = sources

        self._source_tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self.reconciler.running

    async def start(self) -> None:
        if self.running:
            return
        self.reconciler.start()
        for source in self.sources:
            if not source.is_available():
                logger.warning(f"Source {source.name} is not available on this system, skipping")
                continue
            create_tracked_task(source.run(self.reconciler.submit), self._source_tasks, name=f"source-{source.name}")
            logger.info(f"Started source: {source.name}")
        logger.info(f"NowPlayingService running in {self.mode} mode")

    async def stop(self) -> None:
        await cancel_tasks(set(self._source_tasks))
        await self.reconciler.stop()
        logger.info("NowPlayingService stopped")

    def statistics(self) -> Dict:
        """Retry and error statistics, without track content."""
        stats = {
            "retry": {
                name: {
                    "success": s.success_count,
                    "failure": s.failure_count,
                    "average_attempts": round(s.average_attempts, 2),
                    "error_kinds": dict(s.error_kinds),
                }
                for name, s in self.retry.statistics().items()
            },
            "errors": self.analytics.summary(),
        }
        if hasattr(self.catalog, "get_request_stats"):
            stats["requests"] = self.catalog.get_request_stats()
        return stats
