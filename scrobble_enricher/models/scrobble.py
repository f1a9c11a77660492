"""Scrobble data models."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

UNKNOWN = "Unknown"
UNDEFINED_ALBUM = "Undefined"  # Shared key for every album without an identifier


def _text(value: Any) -> str:
    """Extract the text of a Last.fm ``{"#text": ..., "mbid": ...}`` object."""
    if isinstance(value, dict):
        return value.get('#text') or ''
    return value or ''


def _mbid(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get('mbid') or None
    return None


def _parse_uts(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Scrobble:
    """A single listening event fetched from Last.fm."""

    user: str
    artist: str
    track: str
    album: str = ""
    artist_mbid: Optional[str] = None
    album_mbid: Optional[str] = None
    track_mbid: Optional[str] = None
    url: Optional[str] = None
    uts: Optional[int] = None  # Epoch seconds
    date_text: Optional[str] = None  # None when the event had no date at all

    @property
    def is_now_playing(self) -> bool:
        """Events without a date are the track currently playing."""
        return self.date_text is None and self.uts is None

    @property
    def album_key(self) -> str:
        """Grouping and cache key for the album."""
        return self.album_mbid or UNDEFINED_ALBUM

    @classmethod
    def from_lastfm(cls, track: Dict[str, Any], user: str) -> 'Scrobble':
        """Build a scrobble from one ``recenttracks.track`` entry.

        Args:
            track: Raw track object from the Last.fm response
            user: Owning Last.fm user

        Returns:
            Scrobble instance
        """
        date = track.get('date')
        uts = None
        date_text = None
        if isinstance(date, dict):
            uts = _parse_uts(date.get('uts'))
            date_text = date.get('#text') or ''

        return cls(
            user=user,
            artist=_text(track.get('artist')),
            track=track.get('name') or '',
            album=_text(track.get('album')),
            artist_mbid=_mbid(track.get('artist')),
            album_mbid=_mbid(track.get('album')),
            track_mbid=track.get('mbid') or None,
            url=track.get('url'),
            uts=uts,
            date_text=date_text,
        )


@dataclass(frozen=True)
class EnrichedScrobble:
    """Scrobble with artist and album metadata merged in."""

    scrobble: Scrobble
    artist_country: str = UNKNOWN
    artist_tags: Tuple[str, ...] = field(default_factory=tuple)
    album_year: Union[int, str] = UNKNOWN

    def to_row(self) -> Dict[str, Any]:
        """Row for the scrobbles table."""
        s = self.scrobble
        return {
            'user': s.user,
            'artist': s.artist,
            'artist_mbid': s.artist_mbid,
            'album': s.album,
            'album_mbid': s.album_mbid,
            'track': s.track,
            'track_mbid': s.track_mbid,
            'url': s.url,
            'uts': s.uts,
            'date_text': s.date_text,
            'artist_country': self.artist_country,
            'artist_tags': json.dumps(list(self.artist_tags)),
            'album_year': self.album_year,
        }
