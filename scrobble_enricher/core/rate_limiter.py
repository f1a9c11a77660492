"""Global rate limiter for metadata provider calls."""

import logging
import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """Serializes external calls and spaces them by a fixed delay.

    A single permit is held for the duration of each call plus the delay
    that follows it, so calls never overlap even when several threads share
    the limiter. Use it as a context manager around exactly one call:

        with limiter:
            client.search_artists(name)
    """

    def __init__(
        self,
        delay: float = 1.0,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize rate limiter.

        Args:
            delay: Seconds to wait after every call
            logger: Logger instance
            sleep: Sleep function (injectable for tests)
        """
        if delay < 0:
            raise ValueError("delay must be >= 0")

        self.delay = delay
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._pending_delay = delay
        self.calls = 0

    def acquire(self, delay: Optional[float] = None) -> 'RateLimiter':
        """Take the permit for one call.

        Args:
            delay: Override of the post-call delay for this call

        Returns:
            The limiter itself
        """
        self._lock.acquire()
        self._pending_delay = self.delay if delay is None else delay
        self.calls += 1
        return self

    def release(self) -> None:
        """Wait out the post-call delay and hand the permit back."""
        try:
            if self._pending_delay > 0:
                self.logger.debug(f"Waiting {self._pending_delay}s before next request...")
                self._sleep(self._pending_delay)
        finally:
            self._lock.release()

    def __enter__(self) -> 'RateLimiter':
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def limit(self, delay: float):
        """Context manager for one call with a specific post-call delay."""
        return _DelayedPermit(self, delay)


class _DelayedPermit:
    def __init__(self, limiter: RateLimiter, delay: float):
        self.limiter = limiter
        self.delay = delay

    def __enter__(self) -> RateLimiter:
        return self.limiter.acquire(self.delay)

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.limiter.release()
        return False
