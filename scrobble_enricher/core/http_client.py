"""Shared HTTP plumbing for the Last.fm and MusicBrainz clients."""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

# Base delay in seconds for retries on rate limit / server errors
RETRY_BASE_DELAY = 2
# Upper bound for a server-provided Retry-After
MAX_RETRY_AFTER = 60


class ApiClient:
    """requests.Session wrapper with timeouts and retries."""

    def __init__(
        self,
        base_url: str,
        logger: logging.Logger,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize API client.

        Args:
            base_url: Base URL of the API
            logger: Logger instance
            headers: Headers sent with every request
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first attempt for retryable failures
            session: Preconfigured session (injectable for tests)
            sleep: Sleep function used between retries
        """
        self.base_url = base_url.rstrip('/')
        self.logger = logger
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()
        self.session.headers.update(headers or {})
        self._sleep = sleep

    def _retry_delay(self, attempt: int, response: Optional[requests.Response] = None) -> float:
        if response is not None and response.status_code == 429:
            retry_after = response.headers.get('Retry-After')
            if retry_after and retry_after.isdigit():
                return max(1, min(int(retry_after), MAX_RETRY_AFTER))
        return RETRY_BASE_DELAY * (2 ** (attempt - 1))

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """GET a path, retrying connection errors, 429 and 5xx responses.

        Other statuses (including 4xx) are returned as-is for the caller to
        interpret.

        Args:
            path: Path relative to the base URL
            params: Query parameters

        Returns:
            The final response

        Raises:
            requests.RequestException: If every attempt failed to connect
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                self.logger.debug(f"Attempt {attempt}/{attempts}: GET {url} {params or ''}")
                response = self.session.get(url, params=params, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                if attempt == attempts:
                    self.logger.error(f"Request failed after {attempts} attempts for {url}: {e}")
                    raise
                delay = self._retry_delay(attempt)
                self.logger.warning(f"Request error for {url}: {e}. Retrying in {delay}s...")
                self._sleep(delay)
                continue

            retryable = response.status_code == 429 or response.status_code >= 500
            if not retryable or attempt == attempts:
                return response

            delay = self._retry_delay(attempt, response)
            self.logger.warning(
                f"HTTP {response.status_code} from {url}. Retrying in {delay}s..."
            )
            self._sleep(delay)

        raise RuntimeError(f"No response for {url}")
