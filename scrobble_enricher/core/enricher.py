"""Rate-limited metadata enrichment backed by the local cache."""

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from ..config.database import DatabaseHandler
from ..models.metadata import AlbumMetadata, ArtistMetadata, InsertResult
from ..models.scrobble import UNKNOWN
from .errors import MetadataResponseError
from .musicbrainz import MusicBrainzClient
from .rate_limiter import RateLimiter

MIN_TAG_COUNT = 2
COUNTRY_AREA_TYPE = "Country"
COMPILATION = "Compilation"

_YEAR_PATTERN = re.compile(r'^(\d{4})')

MetadataT = TypeVar('MetadataT', ArtistMetadata, AlbumMetadata)


def _country_of(area: Any) -> Optional[str]:
    if isinstance(area, dict) and area.get('type') == COUNTRY_AREA_TYPE:
        return area.get('name') or None
    return None


def resolve_artist(artist: str, candidate: Optional[Dict[str, Any]]) -> ArtistMetadata:
    """Build artist metadata from the best MusicBrainz search candidate.

    Country comes from the artist's area, falling back to its begin area,
    and only when that area is a country. Tags need at least two votes.

    Args:
        artist: Artist name the search was made for
        candidate: First search result, or None if there were none

    Returns:
        ArtistMetadata ("Unknown" country and no tags without a candidate)
    """
    if not candidate:
        return ArtistMetadata(artist=artist)

    country = _country_of(candidate.get('area')) or _country_of(candidate.get('begin-area')) or UNKNOWN
    tags = tuple(
        tag['name'] for tag in candidate.get('tags') or []
        if tag.get('name') and (tag.get('count') or 0) >= MIN_TAG_COUNT
    )
    return ArtistMetadata(artist=artist, country=country, tags=tags)


def resolve_album(album: str, candidate: Optional[Dict[str, Any]]) -> AlbumMetadata:
    """Build album metadata from the first MusicBrainz release group.

    Compilations never get a year.

    Args:
        album: Album identifier the search was made for
        candidate: First release group, or None if there were none

    Returns:
        AlbumMetadata, with year None when unresolved
    """
    if not candidate:
        return AlbumMetadata(album=album)

    if candidate.get('primary-type') == COMPILATION or COMPILATION in (candidate.get('secondary-types') or []):
        return AlbumMetadata(album=album)

    match = _YEAR_PATTERN.match(candidate.get('first-release-date') or '')
    return AlbumMetadata(album=album, year=int(match.group(1)) if match else None)


def _first_candidate(payload: Dict[str, Any], list_key: str) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict) or not isinstance(payload.get(list_key), list):
        raise MetadataResponseError(f"MusicBrainz response has no '{list_key}' list")
    candidates = payload[list_key]
    return candidates[0] if candidates else None


class MetadataEnricher(ABC, Generic[MetadataT]):
    """Looks up metadata for unique keys, cache first, then MusicBrainz.

    External calls are made one at a time through the shared RateLimiter,
    each followed by the configured delay. Cache hits cost neither a call
    nor a delay.
    """

    kind = "metadata"

    def __init__(
        self,
        db: DatabaseHandler,
        client: MusicBrainzClient,
        limiter: RateLimiter,
        logger: logging.Logger,
        delay: float = 1.0
    ):
        """Initialize enricher.

        Args:
            db: Database handler holding the metadata cache
            client: MusicBrainz client
            limiter: Rate limiter shared by every MusicBrainz caller
            logger: Logger instance
            delay: Seconds to wait after each MusicBrainz call
        """
        self.db = db
        self.client = client
        self.limiter = limiter
        self.logger = logger
        self.delay = delay

    @abstractmethod
    def find_cached(self, keys: Sequence[str]) -> Dict[str, MetadataT]:
        """Batched cache lookup."""

    @abstractmethod
    def fetch(self, key: str) -> Optional[MetadataT]:
        """One MusicBrainz lookup; None means skip the key."""

    @abstractmethod
    def store(self, records: List[MetadataT]) -> InsertResult:
        """Write freshly resolved records to the cache."""

    def enrich(self, keys: Sequence[str]) -> Dict[str, MetadataT]:
        """Resolve metadata for every key.

        Args:
            keys: Unique keys (artist names or album identifiers)

        Returns:
            Mapping of key to metadata for every resolvable key, in input order

        Raises:
            MetadataResponseError: If MusicBrainz returns an unparseable payload
        """
        keys = list(dict.fromkeys(k for k in keys if k))
        if not keys:
            return {}

        cached = self.find_cached(keys)
        fetched: Dict[str, MetadataT] = {}
        resolved: Dict[str, MetadataT] = {}

        for key in keys:
            if key in cached:
                self.logger.debug(f"Cache hit for {self.kind} '{key}'")
                resolved[key] = cached[key]
                continue

            with self.limiter.limit(self.delay):
                record = self.fetch(key)

            if record is None:
                continue
            fetched[key] = record
            resolved[key] = record

        if fetched:
            self._write_cache(list(fetched.values()))

        self.logger.info(f"Retrieved {self.kind} from api amount: {len(fetched)}")
        self.logger.info(f"Retrieved {self.kind} from db amount: {len(cached)}")

        return resolved

    def _write_cache(self, records: List[MetadataT]) -> None:
        try:
            result = self.store(records)
        except sqlite3.Error as e:
            self.logger.error(f"Failed to cache {len(records)} {self.kind} record(s): {e}")
            return

        if result.duplicates or result.failed:
            self.logger.warning(
                f"Cached {result.inserted} {self.kind} record(s), "
                f"{result.duplicates} already present, {result.failed} failed"
            )


class ArtistEnricher(MetadataEnricher[ArtistMetadata]):
    """Artist country and tags."""

    kind = "artist"

    def find_cached(self, keys: Sequence[str]) -> Dict[str, ArtistMetadata]:
        return self.db.find_artists(keys)

    def fetch(self, key: str) -> Optional[ArtistMetadata]:
        payload = self.client.search_artists(key)
        return resolve_artist(key, _first_candidate(payload, 'artists'))

    def store(self, records: List[ArtistMetadata]) -> InsertResult:
        return self.db.insert_artists(records)


class AlbumEnricher(MetadataEnricher[AlbumMetadata]):
    """Album release year."""

    kind = "album"

    def find_cached(self, keys: Sequence[str]) -> Dict[str, AlbumMetadata]:
        return self.db.find_albums(keys)

    def fetch(self, key: str) -> Optional[AlbumMetadata]:
        payload = self.client.search_release_groups(key)
        if payload is None:
            self.logger.warning(f"Album not found: {key}")
            return None
        return resolve_album(key, _first_candidate(payload, 'release-groups'))

    def store(self, records: List[AlbumMetadata]) -> InsertResult:
        return self.db.insert_albums(records)
