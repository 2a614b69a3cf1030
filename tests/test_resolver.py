"""Tests for catalog resolution and candidate scoring"""
from conftest import MockCatalog, song

from engine.errors import ErrorKind, NetworkTransientError, NotAuthorizedError
from engine.models import TrackSignal
from engine.resolver import CatalogResolver, score_candidate, select_best_match

HELLO = TrackSignal(name="Hello", artist="Adele")


def test_scoring_weights():
    assert score_candidate(song(title="Hello", artist="Adele"), "Hello", "Adele") == 5
    assert score_candidate(song(title="Hello (Live)", artist="Adele"), "Hello", "Adele") == 3
    assert score_candidate(song(title="hello ", artist="ADELE"), "Hello", "Adele") == 5
    assert score_candidate(song(title="Hello", artist="Adele", album="25", duration=295.5), "Hello", "Adele") == 6
    assert score_candidate(song(title="Skyfall", artist="Someone Else"), "Hello", "Adele") == 0


def test_empty_strings_never_match():
    assert score_candidate(song(title="", artist=""), "Hello", "Adele") == 0
    assert score_candidate(song(title="Hello", artist="Adele"), "Hello", "") == 3


def test_exact_artist_beats_title_only_match():
    title_only = song("a", title="Hello", artist="Lionel Richie")
    exact = song("b", title="Hello", artist="Adele")

    best, score = select_best_match([title_only, exact], "Hello", "Adele")

    assert best is exact
    assert score == 5


def test_ties_keep_catalog_order():
    first = song("a", title="Hello", artist="Adele")
    second = song("b", title="Hello", artist="Adele")

    best, _ = select_best_match([first, second], "Hello", "Adele")

    assert best is first


def test_no_positive_score_means_no_match():
    best, score = select_best_match([song(title="Other", artist="Nobody")], "Hello", "Adele")
    assert best is None
    assert score == 0


async def test_resolves_best_candidate(retry):
    catalog = MockCatalog({"Hello Adele": [song("a", artist="Lionel Richie"), song("b")]})
    resolver = CatalogResolver(catalog, retry)

    resolution = await resolver.resolve(HELLO, generation=1)

    assert resolution.song.catalog_id == "b"
    assert resolution.generation == 1
    assert resolution.error is None
    assert catalog.searches == ["Hello Adele"]


async def test_same_track_is_resolved_once(retry):
    catalog = MockCatalog(default=[song()])
    resolver = CatalogResolver(catalog, retry)

    first = await resolver.resolve(HELLO)
    second = await resolver.resolve(TrackSignal(name="hello", artist="adele"))

    assert catalog.searches == ["Hello Adele"]
    assert second.from_cache
    assert second.song == first.song


async def test_no_match_is_remembered(retry):
    catalog = MockCatalog(default=[])
    resolver = CatalogResolver(catalog, retry)

    assert (await resolver.resolve(HELLO)).song is None
    assert (await resolver.resolve(HELLO)).song is None
    assert len(catalog.searches) == 1


async def test_new_track_searches_again(retry):
    catalog = MockCatalog(default=[song()])
    resolver = CatalogResolver(catalog, retry)

    await resolver.resolve(HELLO)
    await resolver.resolve(TrackSignal(name="Skyfall", artist="Adele"))

    assert catalog.searches == ["Hello Adele", "Skyfall Adele"]


async def test_external_id_skips_search(retry):
    catalog = MockCatalog(default=[song("wrong")])
    catalog.external_ids["spotify:track:4sPmO7WMQUAf45kwMOtONw"] = "4sPmO7WMQUAf45kwMOtONw"
    resolver = CatalogResolver(catalog, retry)
    track = TrackSignal(
        name="Hello", artist="Adele", album="25",
        source_id="spotify:track:4sPmO7WMQUAf45kwMOtONw", duration_seconds=295.5,
    )

    resolution = await resolver.resolve(track)

    assert resolution.song.catalog_id == "4sPmO7WMQUAf45kwMOtONw"
    assert resolution.song.album_title == "25"
    assert resolution.song.duration_seconds == 295.5
    assert catalog.searches == []


async def test_unknown_external_id_falls_back_to_search(retry):
    catalog = MockCatalog(default=[song("b")])
    resolver = CatalogResolver(catalog, retry)

    resolution = await resolver.resolve(TrackSignal(name="Hello", artist="Adele", source_id="A1B2C3D4E5F60718"))

    assert catalog.lookups == ["A1B2C3D4E5F60718"]
    assert resolution.song.catalog_id == "b"


async def test_lookup_failure_falls_back_to_search(retry, analytics):
    catalog = MockCatalog(default=[song("b")])
    catalog.lookup_errors = [NotAuthorizedError()]
    resolver = CatalogResolver(catalog, retry, error_sink=analytics)

    resolution = await resolver.resolve(TrackSignal(name="Hello", artist="Adele", source_id="spotify:track:x"))

    assert resolution.song.catalog_id == "b"
    assert analytics.summary()["by_operation"] == {"lookupByExternalID": {"NotAuthorized": 1}}


async def test_search_retries_transient_errors_with_quick_policy(retry, sleep_recorder):
    catalog = MockCatalog(default=[song()])
    catalog.search_errors = [NetworkTransientError()]
    resolver = CatalogResolver(catalog, retry)

    resolution = await resolver.resolve(HELLO)

    assert resolution.song is not None
    assert sleep_recorder.delays == [0.5]


async def test_errors_are_returned_not_raised(retry, analytics):
    catalog = MockCatalog(default=[song()])
    catalog.search_errors = [NotAuthorizedError()]
    resolver = CatalogResolver(catalog, retry, error_sink=analytics)

    resolution = await resolver.resolve(HELLO, generation=3)

    assert resolution.song is None
    assert resolution.error.kind is ErrorKind.NOT_AUTHORIZED
    assert analytics.count("NotAuthorized") == 1

    # Failures are not memoized
    retried = await resolver.resolve(HELLO, generation=3)
    assert retried.song is not None
    assert len(catalog.searches) == 2


async def test_superseded_result_is_marked_stale(retry):
    catalog = MockCatalog(default=[song()])
    resolver = CatalogResolver(catalog, retry)

    resolution = await resolver.resolve(HELLO, generation=1, current_generation=lambda: 2)

    assert resolution.stale
    assert resolution.song is not None


async def test_search_limit_is_passed_through(retry):
    catalog = MockCatalog(default=[song(str(i), title="Other", artist="Nobody") for i in range(10)])
    resolver = CatalogResolver(catalog, retry, search_limit=3)

    assert (await resolver.resolve(HELLO)).song is None
    assert catalog.last_limit == 3
    assert resolver.search_count == 1
