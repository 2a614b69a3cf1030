"""
Base Provider Classes
Catalog search and rating services consumed by the engine.

Implementations raise ``engine.errors.CatalogError`` subclasses on failure so
the retry executor can tell transient problems from permanent ones.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from engine.models import ResolvedSong


class CatalogSearchAPI(ABC):
    """Searchable song catalog."""

    @abstractmethod
    async def search(self, term: str, limit: int = 5) -> List[ResolvedSong]:
        """
        Search the catalog for songs.

        Args:
            term: Free-text query ("<title> <artist>")
            limit: Maximum number of candidates to return

        Returns:
            Candidates in catalog relevance order (best first)
        """
        pass

    async def lookup_by_external_id(self, external_id: str) -> Optional[str]:
        """
        Exchange a player-provided ID for an exact catalog ID.

        Returns:
            Catalog ID, or None when the ID is not exchangeable for this catalog
        """
        return None


class RatingService(ABC):
    """
    Favorite ("liked") status in the remote catalog.

    Every method must be idempotent: adding an already-favorited song succeeds.
    """

    @abstractmethod
    async def add_favorite(self, catalog_id: str) -> None:
        pass

    @abstractmethod
    async def remove_favorite(self, catalog_id: str) -> None:
        pass

    @abstractmethod
    async def get_rating(self, catalog_id: str) -> bool:
        """Return True if the song is currently favorited."""
        pass
