"""Data models for Scrobble Enricher."""

from .metadata import AlbumMetadata, ArtistMetadata, InsertResult, UserStats
from .scrobble import UNDEFINED_ALBUM, UNKNOWN, EnrichedScrobble, Scrobble

__all__ = [
    "AlbumMetadata",
    "ArtistMetadata",
    "EnrichedScrobble",
    "InsertResult",
    "Scrobble",
    "UNDEFINED_ALBUM",
    "UNKNOWN",
    "UserStats",
]
