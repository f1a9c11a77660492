"""Grouping and sorting of fetched scrobbles."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple

from ..models.scrobble import Scrobble

GroupedScrobbles = Dict[str, Dict[str, List[Scrobble]]]


@dataclass
class TransformResult:
    """Scrobbles grouped by artist and album plus the keys to enrich."""

    groups: GroupedScrobbles = field(default_factory=dict)
    artists: List[str] = field(default_factory=list)
    albums: List[str] = field(default_factory=list)

    def events(self) -> Iterator[Tuple[str, str, Scrobble]]:
        """Iterate (artist, album key, scrobble) over every grouped event."""
        for artist, albums in self.groups.items():
            for album_key, scrobbles in albums.items():
                for scrobble in scrobbles:
                    yield artist, album_key, scrobble

    @property
    def size(self) -> int:
        return sum(len(s) for albums in self.groups.values() for s in albums.values())


def _timestamp_sort_key(scrobble: Scrobble) -> Tuple[bool, int]:
    # Missing timestamps sort after everything else
    return (scrobble.uts is None, scrobble.uts or 0)


def transform_events(events: Iterable[Scrobble]) -> TransformResult:
    """Group scrobbles by artist and album, oldest first.

    Now-playing events (no date at all) are dropped. Albums without an
    identifier share the "Undefined" key and are not collected for lookup.

    Args:
        events: Scrobbles in the order received from Last.fm

    Returns:
        TransformResult with grouped scrobbles and first-seen artist/album keys
    """
    groups: GroupedScrobbles = {}
    artists: Dict[str, None] = {}
    albums: Dict[str, None] = {}

    for event in events:
        if event.is_now_playing:
            continue

        if event.artist:
            artists.setdefault(event.artist)
        if event.album_mbid:
            albums.setdefault(event.album_mbid)

        groups.setdefault(event.artist, {}).setdefault(event.album_key, []).append(event)

    for album_groups in groups.values():
        for scrobbles in album_groups.values():
            scrobbles.sort(key=_timestamp_sort_key)

    return TransformResult(groups=groups, artists=list(artists), albums=list(albums))
