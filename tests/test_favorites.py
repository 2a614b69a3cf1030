"""Tests for the favorite status cache"""
import asyncio

import pytest
from conftest import MockRatingService, wait_until

from engine.errors import NetworkTransientError, NotAuthorizedError
from engine.favorites import FavoriteCache
from engine.models import FavoriteStatus


@pytest.fixture
def ratings():
    return MockRatingService(liked={"liked-id"})


@pytest.fixture
def cache(ratings, retry, clock, analytics):
    return FavoriteCache(ratings, retry, ttl=300, clock=clock, error_sink=analytics)


async def test_fresh_entry_needs_no_io(cache, ratings):
    assert await cache.get("liked-id") is FavoriteStatus.FAVORITED
    assert await cache.get("liked-id") is FavoriteStatus.FAVORITED
    assert await cache.get("other-id") is FavoriteStatus.NOT_FAVORITED

    assert cache.fetch_count == 2
    assert ratings.calls == [("get", "liked-id"), ("get", "other-id")]


async def test_expired_entry_is_refetched_once(cache, clock):
    await cache.get("liked-id")

    clock.advance(300)
    await cache.get("liked-id")
    assert cache.fetch_count == 1

    clock.advance(1)
    await cache.get("liked-id")
    await cache.get("liked-id")
    assert cache.fetch_count == 2


async def test_lookup_error_is_unknown_and_not_cached(cache, ratings, analytics):
    ratings.failures = [NotAuthorizedError()]

    assert await cache.get("liked-id") is FavoriteStatus.UNKNOWN
    assert cache.peek("liked-id") is None
    assert analytics.summary()["by_operation"] == {"getRating": {"NotAuthorized": 1}}

    assert await cache.get("liked-id") is FavoriteStatus.FAVORITED
    assert cache.fetch_count == 2


async def test_lookup_retries_transient_errors(cache, ratings, sleep_recorder):
    ratings.failures = [NetworkTransientError()]

    assert await cache.get("liked-id") is FavoriteStatus.FAVORITED
    assert sleep_recorder.delays == [0.5]


async def test_mark_wins_over_in_flight_lookup(cache, ratings):
    ratings.gate = asyncio.Event()
    lookup = asyncio.create_task(cache.get("other-id"))
    await wait_until(lambda: ("get", "other-id") in ratings.calls)

    cache.mark_favorited("other-id", True)
    ratings.gate.set()

    assert await lookup is FavoriteStatus.FAVORITED
    assert cache.peek("other-id").is_favorited is True


async def test_adding_twice_succeeds(cache, ratings):
    assert await cache.update("new-id", True) is FavoriteStatus.FAVORITED
    assert await cache.update("new-id", True) is FavoriteStatus.FAVORITED

    assert ratings.calls == [("add", "new-id"), ("add", "new-id")]
    assert "new-id" in ratings.liked
    assert await cache.get("new-id") is FavoriteStatus.FAVORITED
    assert cache.fetch_count == 0


async def test_remove_updates_cache(cache, ratings):
    await cache.get("liked-id")

    assert await cache.update("liked-id", False) is FavoriteStatus.NOT_FAVORITED
    assert "liked-id" not in ratings.liked
    assert cache.peek("liked-id").is_favorited is False


async def test_failed_update_raises_and_keeps_cache(cache, ratings, analytics):
    await cache.get("other-id")
    ratings.failures = [NotAuthorizedError()]

    with pytest.raises(NotAuthorizedError):
        await cache.update("other-id", True)

    assert cache.peek("other-id").is_favorited is False
    assert analytics.count("NotAuthorized") == 1


async def test_add_uses_critical_policy(cache, ratings, sleep_recorder):
    ratings.failures = [NetworkTransientError()] * 4

    assert await cache.update("new-id", True) is FavoriteStatus.FAVORITED
    assert sleep_recorder.delays == [0.5, 1.0, 2.0, 4.0]


async def test_invalidate(cache):
    await cache.get("liked-id")
    await cache.get("other-id")

    cache.invalidate("liked-id")
    assert cache.peek("liked-id") is None
    assert cache.peek("other-id") is not None

    cache.invalidate()
    assert cache.peek("other-id") is None
