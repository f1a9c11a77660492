"""Database management for Scrobble Enricher."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.metadata import AlbumMetadata, ArtistMetadata, InsertResult, UserStats
from ..models.scrobble import EnrichedScrobble

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds
LOOKUP_CHUNK_SIZE = 500

SCROBBLE_COLUMNS = (
    'user', 'artist', 'artist_mbid', 'album', 'album_mbid', 'track', 'track_mbid',
    'url', 'uts', 'date_text', 'artist_country', 'artist_tags', 'album_year'
)


def _chunks(items: Sequence[str], size: int = LOOKUP_CHUNK_SIZE) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _is_unique_violation(error: sqlite3.IntegrityError) -> bool:
    message = str(error).upper()
    return 'UNIQUE' in message or 'PRIMARY KEY' in message


class DatabaseHandler:
    """SQLite store for the metadata cache and enriched scrobbles."""

    def __init__(self, db_path: Path, logger: Optional[logging.Logger] = None):
        """Initialize database handler.

        Args:
            db_path: Path to SQLite database file
            logger: Logger instance
        """
        self.db_path = Path(db_path)
        self.logger = logger or logging.getLogger(__name__)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self) -> None:
        """Initialize database schema."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS artist (
                    artist TEXT PRIMARY KEY,
                    country TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]'
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS album (
                    album TEXT PRIMARY KEY,
                    year INTEGER
                )
            """)

            # album_year holds either a year or the 'Unknown' sentinel
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS scrobbles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user TEXT NOT NULL,
                    artist TEXT NOT NULL,
                    artist_mbid TEXT,
                    album TEXT,
                    album_mbid TEXT,
                    track TEXT NOT NULL,
                    track_mbid TEXT,
                    url TEXT,
                    uts INTEGER,
                    date_text TEXT,
                    artist_country TEXT NOT NULL,
                    artist_tags TEXT NOT NULL DEFAULT '[]',
                    album_year INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(user, artist, track, uts)
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_scrobbles_user_uts ON scrobbles(user, uts)")

    def _insert_unordered(self, sql: str, rows: List[tuple], label: str) -> InsertResult:
        """Insert rows one by one so a failing row never blocks the others.

        Args:
            sql: Parameterized INSERT statement
            rows: Parameter tuples
            label: Table name for log messages

        Returns:
            InsertResult with per-outcome counts
        """
        result = InsertResult()
        if not rows:
            return result

        with self.get_connection() as conn:
            cursor = conn.cursor()
            for row in rows:
                try:
                    cursor.execute(sql, row)
                    result.inserted += 1
                except sqlite3.IntegrityError as e:
                    if _is_unique_violation(e):
                        result.duplicates += 1
                        self.logger.debug(f"Duplicate key in {label}, moving on: {e}")
                    else:
                        result.failed += 1
                        self.logger.error(f"Insert into {label} failed: {e}")
                except sqlite3.Error as e:
                    result.failed += 1
                    self.logger.error(f"Insert into {label} failed: {e}")

        return result

    # Metadata cache methods

    def find_artists(self, names: Sequence[str]) -> Dict[str, ArtistMetadata]:
        """Get cached artist metadata for a batch of names.

        Args:
            names: Artist names (exact match)

        Returns:
            Mapping of artist name to cached metadata
        """
        found: Dict[str, ArtistMetadata] = {}
        names = list(dict.fromkeys(names))
        if not names:
            return found

        with self.get_connection() as conn:
            cursor = conn.cursor()
            for chunk in _chunks(names):
                placeholders = ','.join('?' * len(chunk))
                cursor.execute(
                    f"SELECT artist, country, tags FROM artist WHERE artist IN ({placeholders})",
                    tuple(chunk)
                )
                for row in cursor.fetchall():
                    found[row['artist']] = ArtistMetadata(
                        artist=row['artist'],
                        country=row['country'],
                        tags=tuple(json.loads(row['tags'] or '[]'))
                    )

        return found

    def find_albums(self, album_ids: Sequence[str]) -> Dict[str, AlbumMetadata]:
        """Get cached album metadata for a batch of identifiers.

        Args:
            album_ids: Album identifiers

        Returns:
            Mapping of album identifier to cached metadata
        """
        found: Dict[str, AlbumMetadata] = {}
        album_ids = list(dict.fromkeys(album_ids))
        if not album_ids:
            return found

        with self.get_connection() as conn:
            cursor = conn.cursor()
            for chunk in _chunks(album_ids):
                placeholders = ','.join('?' * len(chunk))
                cursor.execute(
                    f"SELECT album, year FROM album WHERE album IN ({placeholders})",
                    tuple(chunk)
                )
                for row in cursor.fetchall():
                    found[row['album']] = AlbumMetadata(album=row['album'], year=row['year'])

        return found

    def insert_artists(self, records: Iterable[ArtistMetadata]) -> InsertResult:
        """Add artist metadata to the cache, ignoring existing keys."""
        rows = [(r.artist, r.country, json.dumps(list(r.tags))) for r in records]
        return self._insert_unordered(
            "INSERT INTO artist (artist, country, tags) VALUES (?, ?, ?)", rows, 'artist'
        )

    def insert_albums(self, records: Iterable[AlbumMetadata]) -> InsertResult:
        """Add album metadata to the cache, ignoring existing keys."""
        rows = [(r.album, r.year) for r in records]
        return self._insert_unordered(
            "INSERT INTO album (album, year) VALUES (?, ?)", rows, 'album'
        )

    # Scrobble methods

    def insert_scrobbles(self, records: Iterable[EnrichedScrobble]) -> InsertResult:
        """Persist enriched scrobbles.

        Rows already stored by an earlier run are counted as duplicates.

        Args:
            records: Enriched scrobbles to persist

        Returns:
            InsertResult with per-outcome counts
        """
        columns = ', '.join(SCROBBLE_COLUMNS)
        placeholders = ', '.join('?' * len(SCROBBLE_COLUMNS))
        rows = []
        for record in records:
            row = record.to_row()
            rows.append(tuple(row[column] for column in SCROBBLE_COLUMNS))

        return self._insert_unordered(
            f"INSERT INTO scrobbles ({columns}) VALUES ({placeholders})", rows, 'scrobbles'
        )

    def get_oldest_timestamp(self, user: str, after: Optional[int] = None) -> Optional[int]:
        """Get the oldest stored scrobble timestamp for a user.

        Args:
            user: Last.fm user
            after: Only consider scrobbles strictly newer than this timestamp

        Returns:
            Epoch seconds or None if nothing is stored
        """
        query = "SELECT uts FROM scrobbles WHERE user = ? AND uts IS NOT NULL"
        params: List[Any] = [user]
        if after is not None:
            query += " AND uts > ?"
            params.append(after)
        query += " ORDER BY uts ASC LIMIT 1"

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            row = cursor.fetchone()
            return row['uts'] if row else None

    def get_newest_timestamp(self, user: str) -> Optional[int]:
        """Get the newest stored scrobble timestamp for a user."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT uts FROM scrobbles WHERE user = ? AND uts IS NOT NULL ORDER BY uts DESC LIMIT 1",
                (user,)
            )
            row = cursor.fetchone()
            return row['uts'] if row else None

    def count_scrobbles(self, user: str) -> int:
        """Count stored scrobbles for a user."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM scrobbles WHERE user = ?", (user,))
            return cursor.fetchone()['count']

    def get_user_stats(self) -> List[UserStats]:
        """Get stored scrobble counts per user.

        Returns:
            List of UserStats ordered by user
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT user, COUNT(*) AS count, MIN(uts) AS oldest, MAX(uts) AS newest
                FROM scrobbles
                GROUP BY user
                ORDER BY user
            """)

            return [
                UserStats(
                    user=row['user'],
                    scrobbles=row['count'],
                    oldest_uts=row['oldest'],
                    newest_uts=row['newest']
                )
                for row in cursor.fetchall()
            ]

    def get_cache_stats(self) -> Dict[str, int]:
        """Get the number of cached artists and albums.

        Returns:
            Dictionary with 'artists' and 'albums' counts
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM artist")
            artists = cursor.fetchone()['count']
            cursor.execute("SELECT COUNT(*) AS count FROM album")
            albums = cursor.fetchone()['count']

        return {'artists': artists, 'albums': albums}
