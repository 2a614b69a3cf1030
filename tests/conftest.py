"""Pytest configuration and shared fixtures"""
import asyncio
from typing import Dict, List, Optional

import pytest

from engine.analytics import ErrorAnalytics
from engine.models import ResolvedSong
from engine.retry import RetryExecutor
from providers.base import CatalogSearchAPI, RatingService


class MockCatalog(CatalogSearchAPI):
    """In-memory catalog. Results are keyed by search term."""

    def __init__(self, results: Optional[Dict[str, List[ResolvedSong]]] = None, default=None):
        self.results = results or {}
        self.default = list(default or [])
        self.external_ids: Dict[str, str] = {}
        self.searches: List[str] = []
        self.last_limit: Optional[int] = None
        self.lookups: List[str] = []
        self.search_errors: List[Exception] = []
        self.lookup_errors: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None

    async def search(self, term, limit=5):
        self.searches.append(term)
        self.last_limit = limit
        if self.gate is not None:
            await self.gate.wait()
        if self.search_errors:
            raise self.search_errors.pop(0)
        return list(self.results.get(term, self.default))[:limit]

    async def lookup_by_external_id(self, external_id):
        self.lookups.append(external_id)
        if self.lookup_errors:
            raise self.lookup_errors.pop(0)
        return self.external_ids.get(external_id)


class MockRatingService(RatingService):
    """Idempotent in-memory Liked Songs with scripted failures."""

    def __init__(self, liked=None):
        self.liked = set(liked or [])
        self.calls: List[tuple] = []
        self.failures: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None

    def _maybe_fail(self):
        if self.failures:
            raise self.failures.pop(0)

    async def add_favorite(self, catalog_id):
        self.calls.append(("add", catalog_id))
        self._maybe_fail()
        self.liked.add(catalog_id)

    async def remove_favorite(self, catalog_id):
        self.calls.append(("remove", catalog_id))
        self._maybe_fail()
        self.liked.discard(catalog_id)

    async def get_rating(self, catalog_id):
        self.calls.append(("get", catalog_id))
        if self.gate is not None:
            await self.gate.wait()
        self._maybe_fail()
        return catalog_id in self.liked


class MockSpotify(MockCatalog, MockRatingService):
    """Catalog and rating service in one object, like SpotifyCatalog."""

    def __init__(self, *args, liked=None, **kwargs):
        MockCatalog.__init__(self, *args, **kwargs)
        MockRatingService.__init__(self, liked=liked)


class RecordingSleep:
    """Stands in for asyncio.sleep; records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll ``predicate`` until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met in time")
        await asyncio.sleep(interval)


def drain_events(queue: asyncio.Queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def song(catalog_id="id1", title="Hello", artist="Adele", album=None, duration=None) -> ResolvedSong:
    return ResolvedSong(catalog_id, title, artist, album_title=album, duration_seconds=duration)


@pytest.fixture
def sleep_recorder():
    return RecordingSleep()


@pytest.fixture
def retry(sleep_recorder):
    """RetryExecutor with no jitter and no real waiting."""
    return RetryExecutor(sleep=sleep_recorder, uniform=lambda low, high: 0.0)


@pytest.fixture
def analytics():
    return ErrorAnalytics()


@pytest.fixture
def clock():
    return FakeClock()
