"""Artist and album metadata models."""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .scrobble import UNKNOWN


@dataclass(frozen=True)
class ArtistMetadata:
    """Country and tags for one artist name (exact, case-sensitive)."""

    artist: str
    country: str = UNKNOWN
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        """Normalize tags to a tuple and empty countries to the sentinel."""
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, 'tags', tuple(self.tags or ()))
        if not self.country:
            object.__setattr__(self, 'country', UNKNOWN)


@dataclass(frozen=True)
class AlbumMetadata:
    """Release year for one album identifier."""

    album: str
    year: Optional[int] = None  # None for compilations and unresolved releases


@dataclass
class InsertResult:
    """Outcome of an unordered bulk insert."""

    inserted: int = 0
    duplicates: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.inserted + self.duplicates + self.failed


@dataclass
class UserStats:
    """Stored scrobble counts for one user."""

    user: str
    scrobbles: int = 0
    oldest_uts: Optional[int] = None
    newest_uts: Optional[int] = None
