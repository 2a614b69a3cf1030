"""Tests for the Spotify catalog and Liked Songs provider (spotipy mocked)"""
from unittest.mock import MagicMock

import pytest
import requests
from spotipy.exceptions import SpotifyException

from engine.errors import NetworkTransientError, NotAuthorizedError
from providers.spotify_api import SpotifyCatalog, parse_track_id

TRACK_ID = "4sPmO7WMQUAf45kwMOtONw"

SEARCH_RESULT = {
    "tracks": {
        "items": [
            {
                "id": TRACK_ID,
                "name": "Hello",
                "artists": [{"name": "Adele"}, {"name": "Someone"}],
                "album": {"name": "25"},
                "duration_ms": 295502,
            },
            {"id": None, "name": "Local file"},
            {"id": "0ENSn4fwAbCGeFGVUbXEU3", "name": "Hello", "artists": [], "album": {}},
        ]
    }
}


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def catalog(client):
    return SpotifyCatalog(client=client)


def test_parse_track_id():
    assert parse_track_id(f"spotify:track:{TRACK_ID}") == TRACK_ID
    assert parse_track_id(f"https://open.spotify.com/track/{TRACK_ID}?si=abc") == TRACK_ID
    assert parse_track_id(f"https://open.spotify.com/intl-de/track/{TRACK_ID}") == TRACK_ID
    assert parse_track_id(f"/com/spotify/track/{TRACK_ID}") == TRACK_ID
    assert parse_track_id("A1B2C3D4E5F60718") is None
    assert parse_track_id("spotify:album:4sPmO7WMQUAf45kwMOtONw") is None
    assert parse_track_id(None) is None


async def test_search_converts_tracks(catalog, client):
    client.search.return_value = SEARCH_RESULT

    songs = await catalog.search("Hello Adele", limit=5)

    client.search.assert_called_once_with(q="Hello Adele", type="track", limit=5)
    assert [s.catalog_id for s in songs] == [TRACK_ID, "0ENSn4fwAbCGeFGVUbXEU3"]
    assert songs[0].artist_name == "Adele"
    assert songs[0].album_title == "25"
    assert songs[0].duration_seconds == 295.502
    assert songs[1].artist_name == ""
    assert songs[1].album_title is None
    assert songs[1].duration_seconds is None


async def test_search_with_empty_response(catalog, client):
    client.search.return_value = None
    assert await catalog.search("nothing") == []


async def test_lookup_by_external_id_needs_no_request(catalog, client):
    assert await catalog.lookup_by_external_id(f"spotify:track:{TRACK_ID}") == TRACK_ID
    assert await catalog.lookup_by_external_id("A1B2C3D4E5F60718") is None
    assert catalog.request_stats["total_requests"] == 0


async def test_liked_songs_calls(catalog, client):
    client.current_user_saved_tracks_contains.return_value = [True]

    await catalog.add_favorite(TRACK_ID)
    await catalog.remove_favorite(TRACK_ID)
    assert await catalog.get_rating(TRACK_ID) is True

    client.current_user_saved_tracks_add.assert_called_once_with([TRACK_ID])
    client.current_user_saved_tracks_delete.assert_called_once_with([TRACK_ID])
    client.current_user_saved_tracks_contains.assert_called_once_with([TRACK_ID])

    stats = catalog.get_request_stats()
    assert stats["Total Requests"] == 3
    assert stats["API Calls"]["saved_tracks_add"] == 1


async def test_spotify_errors_are_classified(catalog, client):
    original = SpotifyException(401, -1, "The access token expired")
    client.search.side_effect = original

    with pytest.raises(NotAuthorizedError) as excinfo:
        await catalog.search("Hello Adele")

    assert excinfo.value.__cause__ is original
    assert catalog.get_request_stats()["Errors"] == {"NotAuthorized": 1}


async def test_network_errors_are_transient(catalog, client):
    client.current_user_saved_tracks_contains.side_effect = requests.exceptions.ConnectionError()

    with pytest.raises(NetworkTransientError):
        await catalog.get_rating(TRACK_ID)


async def test_unconfigured_client_is_not_authorized(catalog):
    catalog.sp = None

    assert not catalog.initialized
    with pytest.raises(NotAuthorizedError):
        await catalog.add_favorite(TRACK_ID)


def test_auth_url_requires_auth_manager(catalog):
    assert catalog.get_auth_url() is None
