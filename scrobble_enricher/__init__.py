"""Last.fm scrobble loader with MusicBrainz artist and album enrichment."""

__version__ = "0.1.0"
