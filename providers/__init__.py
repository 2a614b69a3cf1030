"""
Catalog Providers Package
Catalog search and rating services used by the engine.
"""
from .base import CatalogSearchAPI, RatingService
from .spotify_api import SpotifyCatalog, parse_track_id

__all__ = [
    'CatalogSearchAPI',
    'RatingService',
    'SpotifyCatalog',
    'parse_track_id',
]
