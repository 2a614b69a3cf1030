"""
Spotify API Integration
Catalog search and Liked Songs management through the Spotify Web API
"""
import asyncio
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import spotipy
from spotipy.oauth2 import SpotifyOAuth

from config import CATALOG
from engine.errors import NotAuthorizedError, classify_exception
from engine.models import ResolvedSong
from logging_config import get_logger
from .base import CatalogSearchAPI, RatingService

logger = get_logger(__name__)

# spotify:track:<id>, https://open.spotify.com/track/<id>, MPRIS /com/spotify/track/<id>
_TRACK_ID_PATTERNS = [
    re.compile(r"^spotify:track:([A-Za-z0-9]{22})$"),
    re.compile(r"^https?://open\.spotify\.com/(?:intl-[a-z]+/)?track/([A-Za-z0-9]{22})"),
    re.compile(r"^/com/spotify/track/([A-Za-z0-9]{22})$"),
]


def parse_track_id(external_id: Optional[str]) -> Optional[str]:
    """Extract a Spotify track ID from a URI, URL or MPRIS track path."""
    if not external_id:
        return None
    candidate = external_id.strip()
    for pattern in _TRACK_ID_PATTERNS:
        match = pattern.match(candidate)
        if match:
            return match.group(1)
    return None


def _to_song(item: Dict[str, Any]) -> Optional[ResolvedSong]:
    """Convert a Spotify track object into a ResolvedSong."""
    if not item or not item.get('id'):
        return None
    artists = item.get('artists') or []
    album = item.get('album') or {}
    duration_ms = item.get('duration_ms')
    return ResolvedSong(
        catalog_id=item['id'],
        title=item.get('name') or "",
        artist_name=artists[0].get('name', "") if artists else "",
        album_title=album.get('name') or None,
        duration_seconds=duration_ms / 1000 if duration_ms else None,
    )


class SpotifyCatalog(CatalogSearchAPI, RatingService):
    """
    Spotify-backed catalog and rating service.

    A song is a "favorite" when it is in the user's Liked Songs. The saved-tracks
    endpoints are idempotent, so repeated adds and removes succeed.

    All spotipy calls are blocking and run in the default executor.
    """

    def __init__(self, client: Optional[spotipy.Spotify] = None):
        self.timeout = CATALOG["timeout"]
        self.auth_manager: Optional[SpotifyOAuth] = None
        self.sp: Optional[spotipy.Spotify] = client

        # Request tracking
        self.request_stats = {
            'total_requests': 0,
            'api_calls': {
                'search': 0,
                'saved_tracks_add': 0,
                'saved_tracks_delete': 0,
                'saved_tracks_contains': 0,
                'other': 0
            },
            'errors': {}
        }

        if client is not None:
            return

        if not all([CATALOG["client_id"], CATALOG["client_secret"], CATALOG["redirect_uri"]]):
            logger.error("Missing Spotify credentials (SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET)")
            return

        # SPOTIPY_CACHE_PATH can point to a persistent location for the token cache
        cache_path = CATALOG["cache_path"]
        if cache_path:
            Path(cache_path).parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Using persistent Spotify cache: {cache_path}")

        self.auth_manager = SpotifyOAuth(
            client_id=CATALOG["client_id"],
            client_secret=CATALOG["client_secret"],
            redirect_uri=CATALOG["redirect_uri"],
            scope=CATALOG["scope"],
            cache_path=cache_path,
            open_browser=False
        )
        # Retries are handled by the engine's RetryExecutor
        self.sp = spotipy.Spotify(
            auth_manager=self.auth_manager,
            requests_timeout=self.timeout,
            retries=0,
            status_retries=0
        )

    @property
    def initialized(self) -> bool:
        return self.sp is not None

    async def _call(self, endpoint: str, method: str, *args, **kwargs) -> Any:
        """Run a blocking spotipy call in the executor and classify failures."""
        if self.sp is None:
            raise NotAuthorizedError("Spotify client is not configured")

        self.request_stats['total_requests'] += 1
        key = endpoint if endpoint in self.request_stats['api_calls'] else 'other'
        self.request_stats['api_calls'][key] += 1

        func = getattr(self.sp, method)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, lambda: func(*args, **kwargs))
        except Exception as e:
            error = classify_exception(e)
            kind = error.kind.value
            self.request_stats['errors'][kind] = self.request_stats['errors'].get(kind, 0) + 1
            logger.debug(f"Spotify {endpoint} failed: {kind} ({e})")
            raise error from e

    # === Catalog ===

    async def search(self, term: str, limit: int = 5) -> List[ResolvedSong]:
        results = await self._call('search', 'search', q=term, type='track', limit=limit)
        items = ((results or {}).get('tracks') or {}).get('items') or []
        songs = [song for song in (_to_song(item) for item in items) if song is not None]
        logger.debug(f"Spotify search returned {len(songs)} candidates")
        return songs

    async def lookup_by_external_id(self, external_id: str) -> Optional[str]:
        # Spotify track IDs are already catalog IDs; no round trip needed
        return parse_track_id(external_id)

    # === Ratings (Liked Songs) ===

    async def add_favorite(self, catalog_id: str) -> None:
        await self._call('saved_tracks_add', 'current_user_saved_tracks_add', [catalog_id])
        logger.info("Added track to Liked Songs")

    async def remove_favorite(self, catalog_id: str) -> None:
        await self._call('saved_tracks_delete', 'current_user_saved_tracks_delete', [catalog_id])
        logger.info("Removed track from Liked Songs")

    async def get_rating(self, catalog_id: str) -> bool:
        result = await self._call('saved_tracks_contains', 'current_user_saved_tracks_contains', [catalog_id])
        return bool(result and result[0])

    def get_request_stats(self) -> Dict[str, Any]:
        """Get current API request statistics"""
        return {
            'Total Requests': self.request_stats['total_requests'],
            'API Calls': dict(self.request_stats['api_calls']),
            'Errors': dict(self.request_stats['errors']),
        }

    # === Authorization ===

    def get_auth_url(self) -> Optional[str]:
        """
        Generate the Spotify authorization URL for the OAuth flow.
        Returns the URL that users should visit to authorize the application.
        """
        if not self.auth_manager:
            logger.error("Auth manager not initialized")
            return None
        return self.auth_manager.get_authorize_url()

    async def complete_auth(self, redirect_response: str) -> bool:
        """
        Complete the OAuth flow by exchanging the authorization code for tokens.

        Args:
            redirect_response: The full URL Spotify redirected to, or just the code

        Returns:
            True if authentication was successful, False otherwise
        """
        if not self.auth_manager:
            logger.error("Auth manager not initialized")
            return False

        code = self.auth_manager.parse_response_code(redirect_response)
        loop = asyncio.get_running_loop()
        started = time.monotonic()
        try:
            token_info = await loop.run_in_executor(
                None,
                lambda: self.auth_manager.get_access_token(code, as_dict=False)
            )
        except Exception as e:
            logger.error(f"Failed to complete authentication: {classify_exception(e).kind.value} ({e})")
            return False

        if not token_info:
            logger.error("Failed to get access token from Spotify")
            return False

        logger.info(f"Spotify authentication completed in {time.monotonic() - started:.1f}s")
        return True
