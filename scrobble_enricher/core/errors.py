"""Exceptions raised by the ingestion pipeline."""


class ScrobbleEnricherError(Exception):
    """Base class for pipeline errors."""


class UpstreamResponseError(ScrobbleEnricherError):
    """Last.fm returned a payload that is not valid JSON."""


class MetadataResponseError(ScrobbleEnricherError):
    """MusicBrainz returned a payload that is not valid JSON or lacks its result list.

    Aborts the whole enrichment call; nothing is written to the cache.
    """
