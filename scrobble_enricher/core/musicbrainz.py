"""MusicBrainz search client."""

import json
import logging
from typing import Any, Dict, Optional

import requests

from .errors import MetadataResponseError
from .http_client import ApiClient

MUSICBRAINZ_API_URL = "https://musicbrainz.org/ws/2"


class MusicBrainzClient(ApiClient):
    """Artist and release-group lookups against the MusicBrainz web service.

    MusicBrainz requires a descriptive User-Agent (application name, version
    and contact). Throttling is not done here; callers wrap every call in the
    shared RateLimiter.
    """

    def __init__(
        self,
        logger: logging.Logger,
        app_name: str = "ScrobbleEnricher",
        app_version: str = "0.1.0",
        contact: str = "",
        base_url: str = MUSICBRAINZ_API_URL,
        timeout: float = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        **kwargs
    ):
        """Initialize MusicBrainz client.

        Args:
            logger: Logger instance
            app_name: Application name for the User-Agent
            app_version: Application version for the User-Agent
            contact: Contact e-mail or URL for the User-Agent
            base_url: API base URL
            timeout: Per-request timeout in seconds
            max_retries: Retries for connection errors, 429 and 5xx
            session: Preconfigured session (injectable for tests)
        """
        user_agent = f"{app_name}/{app_version}"
        if contact:
            user_agent += f" ( {contact} )"

        super().__init__(
            base_url=base_url,
            logger=logger,
            headers={'User-Agent': user_agent, 'Accept': 'application/json'},
            timeout=timeout,
            max_retries=max_retries,
            session=session,
            **kwargs
        )

    def _decode(self, response: requests.Response, url: str) -> Dict[str, Any]:
        try:
            return json.loads(response.text)
        except ValueError as e:
            self.logger.error(f"Request: {url}")
            self.logger.error(f"Failed to decode MusicBrainz response: {response.text[:200]}")
            raise MetadataResponseError(f"Invalid JSON from MusicBrainz for {url}") from e

    def search_artists(self, name: str) -> Dict[str, Any]:
        """Search artists by name.

        Args:
            name: Artist name

        Returns:
            Decoded search result (``artists`` holds the candidates)

        Raises:
            MetadataResponseError: If the response is not valid JSON
            requests.HTTPError: If MusicBrainz keeps answering with an error status
        """
        response = self.get('artist/', params={'query': name, 'fmt': 'json'})
        response.raise_for_status()
        return self._decode(response, f"artist/?query={name}")

    def search_release_groups(self, release_mbid: str) -> Optional[Dict[str, Any]]:
        """Search the release groups of a release.

        Args:
            release_mbid: Release identifier

        Returns:
            Decoded search result (``release-groups`` holds the candidates),
            or None if MusicBrainz does not know the release

        Raises:
            MetadataResponseError: If the response is not valid JSON
            requests.HTTPError: If MusicBrainz keeps answering with an error status
        """
        response = self.get('release-group/', params={'release': release_mbid, 'fmt': 'json'})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return self._decode(response, f"release-group/?release={release_mbid}")
