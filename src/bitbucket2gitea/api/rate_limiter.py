"""Request pacing and retry backoff for API calls."""

import asyncio
import time
from typing import Optional


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, requests_per_second: float = 10.0):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
        """
        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock: Optional[asyncio.Lock] = None

    async def acquire(self) -> None:
        """Acquire a token for making a request.

        Blocks until a token is available.
        """
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update

            # Add tokens based on elapsed time
            self.tokens = min(
                self.requests_per_second,
                self.tokens + elapsed * self.requests_per_second,
            )
            self.last_update = now

            if self.tokens >= 1:
                self.tokens -= 1
                return

            sleep_time = (1 - self.tokens) / self.requests_per_second
            await asyncio.sleep(sleep_time)
            self.tokens = 0
            self.last_update = time.monotonic()


class Backoff:
    """Exponential backoff schedule for transient request failures."""

    def __init__(
        self, max_retries: int = 0, base_delay: float = 0.5, max_delay: float = 8.0
    ):
        """Initialize backoff schedule.

        Args:
            max_retries: Number of retries after the first attempt
            base_delay: Delay before the first retry in seconds
            max_delay: Upper bound for a single delay in seconds
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Get the delay before retry number ``attempt`` (starting at 1)."""
        if retry_after is not None:
            return min(float(retry_after), self.max_delay)
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt <= self.max_retries
