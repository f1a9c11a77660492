"""Incremental scrobble loading: fetch, enrich and persist until caught up."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..config.database import DatabaseHandler
from ..models.metadata import AlbumMetadata, ArtistMetadata, InsertResult
from ..models.scrobble import UNKNOWN, EnrichedScrobble, Scrobble
from .enricher import AlbumEnricher, ArtistEnricher
from .lastfm import LastFmClient
from .transformer import TransformResult, transform_events


class FetchMode(str, Enum):
    """Which stretch of a user's history a run walks through."""

    BACKFILL = "backfill"  # Everything older than the oldest stored scrobble
    SYNC = "sync"  # Everything newer than the newest stored scrobble at run start


class LoaderState(str, Enum):
    """States of one loading run."""

    IDLE = "idle"
    FETCH_CURSOR = "fetch_cursor"
    REQUEST_BATCH = "request_batch"
    TRANSFORM = "transform"
    ENRICH = "enrich"
    MERGE = "merge"
    PERSIST = "persist"
    STOPPED = "stopped"


@dataclass
class BatchResult:
    """Outcome of one fetch-enrich-persist iteration."""

    fetched: int = 0
    persistable: int = 0
    insert: InsertResult = field(default_factory=InsertResult)
    to: Optional[int] = None
    from_: Optional[int] = None


@dataclass
class LoadSummary:
    """Totals for a complete run."""

    user: str
    mode: FetchMode
    batches: int = 0
    persistable: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0

    def add(self, batch: BatchResult) -> None:
        self.batches += 1
        self.persistable += batch.persistable
        self.inserted += batch.insert.inserted
        self.duplicates += batch.insert.duplicates
        self.failed += batch.insert.failed


def merge_metadata(
    transformed: TransformResult,
    artist_info: Dict[str, ArtistMetadata],
    album_info: Dict[str, AlbumMetadata]
) -> List[EnrichedScrobble]:
    """Attach artist and album metadata to every grouped scrobble.

    Args:
        transformed: Grouped scrobbles
        artist_info: Metadata by artist name
        album_info: Metadata by album identifier

    Returns:
        Enriched scrobbles in group order
    """
    enriched = []
    for artist, album_key, scrobble in transformed.events():
        artist_data = artist_info.get(artist)
        album_data = album_info.get(album_key)
        enriched.append(EnrichedScrobble(
            scrobble=scrobble,
            artist_country=artist_data.country if artist_data else UNKNOWN,
            artist_tags=artist_data.tags if artist_data else (),
            album_year=album_data.year if album_data and album_data.year else UNKNOWN,
        ))
    return enriched


class ScrobbleLoader:
    """Loads a user's scrobbles page by page.

    Each iteration derives the cursor from the stored scrobbles, requests the
    next page strictly beyond it, enriches and persists it. The run stops on
    the first page without persistable scrobbles.

    Cursor policy: the cursor is the oldest stored timestamp above an
    optional floor, and pages are requested with ``to = cursor - 1`` (and
    ``from = floor + 1`` when a floor is set). Backfill runs have no floor;
    sync runs use the newest timestamp stored when the run starts.
    """

    def __init__(
        self,
        db: DatabaseHandler,
        lastfm: LastFmClient,
        artist_enricher: ArtistEnricher,
        album_enricher: AlbumEnricher,
        logger: logging.Logger,
        page_size: int = 200,
        max_batches: Optional[int] = None
    ):
        """Initialize loader.

        Args:
            db: Database handler (scrobble sink and cursor source)
            lastfm: Last.fm client
            artist_enricher: Artist metadata enricher
            album_enricher: Album metadata enricher
            logger: Logger instance
            page_size: Scrobbles requested per page
            max_batches: Stop a run after this many batches (None for no limit)
        """
        self.db = db
        self.lastfm = lastfm
        self.artist_enricher = artist_enricher
        self.album_enricher = album_enricher
        self.logger = logger
        self.page_size = page_size
        self.max_batches = max_batches
        self.state = LoaderState.IDLE

    def _enter(self, state: LoaderState) -> None:
        self.state = state
        self.logger.debug(f"Loader state: {state.value}")

    def load_batch(self, user: str, floor: Optional[int] = None) -> BatchResult:
        """Fetch, enrich and persist one page of scrobbles.

        Args:
            user: Last.fm user
            floor: Never request scrobbles at or before this timestamp

        Returns:
            BatchResult; ``persistable == 0`` means the user is caught up

        Raises:
            ValueError: If user is empty
            MetadataResponseError: If MusicBrainz returns an unparseable payload
            UpstreamResponseError: If Last.fm returns an unparseable payload
        """
        if not user:
            raise ValueError("User param not defined")

        self._enter(LoaderState.FETCH_CURSOR)
        cursor = self.db.get_oldest_timestamp(user, after=floor)
        result = BatchResult(
            to=cursor - 1 if cursor is not None else None,
            from_=floor + 1 if floor is not None else None,
        )
        self.logger.info(f"Cursor for {user}: {cursor} (to={result.to}, from={result.from_})")

        self._enter(LoaderState.REQUEST_BATCH)
        raw_tracks = self.lastfm.get_recent_tracks(
            user, limit=self.page_size, to=result.to, from_=result.from_
        )
        result.fetched = len(raw_tracks)
        if not raw_tracks:
            self._enter(LoaderState.STOPPED)
            return result

        self._enter(LoaderState.TRANSFORM)
        transformed = transform_events(Scrobble.from_lastfm(track, user) for track in raw_tracks)
        if transformed.size == 0:
            self.logger.info(f"Only now-playing tracks in the page for {user}")
            self._enter(LoaderState.STOPPED)
            return result

        self._enter(LoaderState.ENRICH)
        self.logger.info(f"Getting artist country and tags for {len(transformed.artists)} artist(s)...")
        artist_info = self.artist_enricher.enrich(transformed.artists)
        self.logger.info(f"Getting album years for {len(transformed.albums)} album(s)...")
        album_info = self.album_enricher.enrich(transformed.albums)

        self._enter(LoaderState.MERGE)
        enriched = merge_metadata(transformed, artist_info, album_info)
        result.persistable = len(enriched)

        self._enter(LoaderState.PERSIST)
        result.insert = self.db.insert_scrobbles(enriched)
        if result.insert.duplicates:
            self.logger.info(f"{result.insert.duplicates} scrobble(s) already stored, moving on...")
        if result.insert.failed:
            self.logger.error(f"{result.insert.failed} scrobble(s) could not be stored")

        self.logger.info(
            f"Batch for {user}: {result.fetched} fetched, {result.persistable} persistable, "
            f"{result.insert.inserted} inserted"
        )
        self._enter(LoaderState.REQUEST_BATCH)
        return result

    def run(self, user: str, mode: FetchMode = FetchMode.BACKFILL) -> LoadSummary:
        """Load batches until a page yields no persistable scrobbles.

        Termination relies on Last.fm eventually returning an empty page;
        ``max_batches`` bounds runs against providers that never do.

        Args:
            user: Last.fm user
            mode: Backfill older history or sync newer scrobbles

        Returns:
            LoadSummary for the run

        Raises:
            ValueError: If user is empty
        """
        if not user:
            raise ValueError("User param not defined")

        mode = FetchMode(mode)
        floor = self.db.get_newest_timestamp(user) if mode == FetchMode.SYNC else None
        summary = LoadSummary(user=user, mode=mode)
        self.logger.info(f"Starting {mode.value} run for {user} (floor={floor})")

        try:
            while self.max_batches is None or summary.batches < self.max_batches:
                batch = self.load_batch(user, floor=floor)
                if batch.persistable == 0:
                    break
                summary.add(batch)
                self.logger.info(f"Latest result amount: {batch.persistable}")
                if batch.insert.inserted == 0:
                    # Nothing new stored, so the cursor cannot move past this page
                    self.logger.warning(f"No scrobbles stored for {user} in the last batch, stopping")
                    break
            else:
                self.logger.warning(f"Stopped {user} after max_batches={self.max_batches}")
        finally:
            self._enter(LoaderState.STOPPED)

        self.logger.info(
            f"Finished {mode.value} run for {user}: {summary.batches} batch(es), "
            f"{summary.inserted} inserted, {summary.duplicates} duplicate(s), {summary.failed} failed"
        )
        return summary
