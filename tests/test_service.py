"""End-to-end wiring: sources -> reconciler -> resolver -> favorites"""
import asyncio

import pytest
from conftest import MockCatalog, MockSpotify, song, wait_until

from engine.models import PlaybackSignal, ResolvedSongChanged, TrackSignal
from engine.service import NowPlayingService
from sources.base import BaseSignalSource, SourceCapability, SourceConfig


class OneShotSource(BaseSignalSource):
    """Emits one playing signal, then idles until cancelled."""

    def __init__(self, available=True):
        super().__init__()
        self.available = available
        self.started = False

    @classmethod
    def get_config(cls):
        return SourceConfig(name="one_shot", display_name="One shot")

    @classmethod
    def capabilities(cls):
        return SourceCapability.PUSH

    def is_available(self):
        return self.available

    async def run(self, emit):
        self.started = True
        emit(PlaybackSignal(self.name, True, TrackSignal(name="Hello", artist="Adele")))
        await asyncio.Event().wait()


@pytest.fixture
def spotify():
    return MockSpotify(default=[song("hello-id")], liked={"hello-id"})


async def test_service_resolves_what_sources_report(spotify, retry):
    source = OneShotSource()
    service = NowPlayingService(catalog=spotify, sources=[source], retry=retry, debounce_seconds=0.01)
    events = service.reconciler.subscribe()

    await service.start()
    try:
        await wait_until(lambda: service.reconciler.is_favorited)
    finally:
        await service.stop()

    assert service.reconciler.current_resolved_song.catalog_id == "hello-id"
    assert not service.running
    received = []
    while not events.empty():
        received.append(events.get_nowait())
    assert ResolvedSongChanged(song("hello-id"), 1) in received


async def test_unavailable_sources_are_skipped(spotify, retry):
    source = OneShotSource(available=False)
    service = NowPlayingService(catalog=spotify, sources=[source], retry=retry)

    await service.start()
    await service.stop()

    assert not source.started


async def test_statistics_have_no_track_content(spotify, retry):
    spotify.search_errors = [ConnectionError()]
    service = NowPlayingService(catalog=spotify, sources=[OneShotSource()], retry=retry, debounce_seconds=0.01)

    await service.start()
    try:
        await wait_until(lambda: service.reconciler.current_resolved_song is not None)
    finally:
        await service.stop()

    stats = service.statistics()
    assert stats["retry"]["search"]["success"] == 1
    assert stats["retry"]["search"]["error_kinds"] == {}
    assert "Hello" not in str(stats)


def test_catalog_without_ratings_needs_rating_service(retry):
    with pytest.raises(TypeError):
        NowPlayingService(catalog=MockCatalog(), sources=[], retry=retry)
