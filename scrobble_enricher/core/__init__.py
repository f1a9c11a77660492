"""Core ingestion and enrichment pipeline for Scrobble Enricher."""

from .enricher import AlbumEnricher, ArtistEnricher
from .lastfm import LastFmClient
from .loader import FetchMode, ScrobbleLoader
from .musicbrainz import MusicBrainzClient
from .rate_limiter import RateLimiter
from .scheduler import LoadScheduler
from .transformer import TransformResult, transform_events

__all__ = [
    "AlbumEnricher",
    "ArtistEnricher",
    "FetchMode",
    "LastFmClient",
    "LoadScheduler",
    "MusicBrainzClient",
    "RateLimiter",
    "ScrobbleLoader",
    "TransformResult",
    "transform_events",
]
