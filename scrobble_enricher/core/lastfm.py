"""Last.fm recent tracks client."""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import UpstreamResponseError
from .http_client import ApiClient

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0"


class LastFmClient(ApiClient):
    """Fetches pages of a user's scrobbles from the Last.fm API."""

    def __init__(
        self,
        api_key: str,
        logger: logging.Logger,
        base_url: str = LASTFM_API_URL,
        timeout: float = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        **kwargs
    ):
        """Initialize Last.fm client.

        Args:
            api_key: Last.fm API key
            logger: Logger instance
            base_url: API base URL
            timeout: Per-request timeout in seconds
            max_retries: Retries for connection errors, 429 and 5xx
            session: Preconfigured session (injectable for tests)
        """
        if not api_key:
            raise ValueError("Last.fm API key cannot be empty")

        super().__init__(
            base_url=base_url,
            logger=logger,
            headers={'Accept': 'application/json'},
            timeout=timeout,
            max_retries=max_retries,
            session=session,
            **kwargs
        )
        self.api_key = api_key

    def get_recent_tracks(
        self,
        user: str,
        limit: int = 200,
        to: Optional[int] = None,
        from_: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Get one page of a user's recent tracks.

        Args:
            user: Last.fm user name
            limit: Maximum number of tracks in the page
            to: Only return scrobbles up to this epoch timestamp
            from_: Only return scrobbles from this epoch timestamp

        Returns:
            Raw track objects, empty if the response carries no track list

        Raises:
            ValueError: If user is empty
            UpstreamResponseError: If the response is not valid JSON
        """
        if not user:
            raise ValueError("User param not defined")

        params: Dict[str, Any] = {
            'method': 'user.getrecenttracks',
            'user': user,
            'api_key': self.api_key,
            'limit': limit,
            'format': 'json',
        }
        if to is not None:
            params['to'] = to
        if from_ is not None:
            params['from'] = from_

        self.logger.info(f"Requesting recent tracks for {user} (to={to}, from={from_}, limit={limit})")
        response = self.get('', params=params)

        try:
            payload = json.loads(response.text)
        except ValueError as e:
            self.logger.error(
                f"Failed to decode Last.fm response (status {response.status_code}): {response.text[:200]}"
            )
            raise UpstreamResponseError(f"Invalid JSON from Last.fm for user {user}") from e

        recent = payload.get('recenttracks') if isinstance(payload, dict) else None
        tracks = recent.get('track') if isinstance(recent, dict) else None

        if not tracks:
            self.logger.warning(
                f"No tracks found, or error in the response from Last.fm: {str(payload)[:200]}"
            )
            return []

        # A page holding a single scrobble comes back as an object
        if isinstance(tracks, dict):
            tracks = [tracks]

        return tracks
