"""Rate limiting functionality for Reddit API requests."""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from comment_mop.config import RateLimitConfig

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SEC = 60.0


class RateLimiter:
    """
    Rate limiter for Reddit API requests.

    Tracks the remaining-call budget reported by Reddit and makes callers wait
    for the window reset when the budget runs low, so a wave of concurrent
    mutations does not run into 429 errors.
    """

    def __init__(self, config: RateLimitConfig):
        """
        Initialize the rate limiter with configuration.

        Args:
            config: Rate limiting configuration
        """
        self.config = config
        self.remaining_calls: Optional[int] = None
        self.reset_timestamp: Optional[float] = None
        self._lock = asyncio.Lock()

    async def pre_request(self) -> None:
        """
        Check rate limits before making a request and sleep if necessary.

        This should be called before each Reddit API request. Concurrent callers
        share a single wait.
        """
        async with self._lock:
            if (self.remaining_calls is not None and
                    self.reset_timestamp is not None and
                    self.remaining_calls < self.config.min_remaining_calls):

                wait_time = self.reset_timestamp - time.time() + self.config.sleep_buffer_sec
                if wait_time > 0:
                    logger.info(f"Rate limit approaching: {self.remaining_calls} calls remaining. "
                                f"Sleeping for {wait_time:.2f}s until reset.")
                    await asyncio.sleep(wait_time)
                self.remaining_calls = None
                self.reset_timestamp = None

    def update_from_limits(self, limits: Dict[str, Any]) -> None:
        """
        Update rate limit tracking from asyncpraw's ``reddit.auth.limits``.

        Args:
            limits: Mapping with ``remaining`` and ``reset_timestamp`` keys
        """
        remaining = limits.get("remaining")
        if remaining is not None:
            try:
                self.remaining_calls = int(float(remaining))
            except (ValueError, TypeError):
                logger.warning("Failed to parse remaining rate limit value")

        reset_timestamp = limits.get("reset_timestamp")
        if reset_timestamp is not None:
            try:
                self.reset_timestamp = float(reset_timestamp)
            except (ValueError, TypeError):
                logger.warning("Failed to parse rate limit reset timestamp")

        if self.remaining_calls is not None and self.reset_timestamp is not None:
            reset_in = self.reset_timestamp - time.time()
            logger.debug(f"Rate limit status: {self.remaining_calls} calls remaining, "
                         f"reset in {reset_in:.2f}s")

    async def handle_429(self, retry_after: Optional[str] = None) -> None:
        """
        Handle a 429 Too Many Requests response.

        Args:
            retry_after: Value of the Retry-After header, if available
        """
        wait_seconds = DEFAULT_RETRY_AFTER_SEC
        if retry_after:
            try:
                wait_seconds = float(retry_after)
            except (ValueError, TypeError):
                wait_seconds = DEFAULT_RETRY_AFTER_SEC

        wait_seconds += self.config.sleep_buffer_sec

        logger.warning(f"Rate limited (429). Waiting for {wait_seconds:.2f}s before retrying.")
        await asyncio.sleep(wait_seconds)

        self.remaining_calls = None
        self.reset_timestamp = None
