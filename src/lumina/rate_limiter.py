"""
Per-user sliding-window rate limiter for Lumina requests.

Counts a user's usage records newer than ``now - window`` in the external
store and rejects the request before any model spend once the count reaches
the limit. Recording usage is a separate, best-effort write path.

Usage:
    limiter = UserRateLimiter(store)

    count = await limiter.check_and_count(user_id)   # raises RateLimitError
    ...
    await limiter.record_usage(user_id, UsageRecord(status="success", latency_ms=840))
"""
import asyncio
import time
from typing import Callable

import structlog

from shared.usage_store import UsageRecord, UsageStore

logger = structlog.get_logger()

RATE_LIMIT_WINDOW_SECONDS = 60
RATE_LIMIT_MAX_REQUESTS = 20


class RateLimitError(Exception):
    """The user exceeded their request quota for the current window."""

    def __init__(self, message: str, count: int):
        super().__init__(message)
        self.message = message
        self.count = count


class UserRateLimiter:
    """
    Sliding-window limiter backed by an append-only usage store.

    The limiter holds no per-user state of its own; window consistency is
    delegated to the store.
    """

    def __init__(
        self,
        store: UsageStore,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        write_timeout: float = 2.0,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            store: Usage persistence backend
            window_seconds: Length of the sliding window
            max_requests: Requests allowed per window
            write_timeout: Seconds a usage write may take before it is abandoned
            clock: Epoch-seconds source (injectable for tests)
        """
        self.store = store
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.write_timeout = write_timeout
        self.clock = clock

    async def check_and_count(self, user_id: str) -> int:
        """
        Return the number of requests already made in the current window.

        Raises:
            RateLimitError: if the count has reached the limit
        """
        window_start = self.clock() - self.window_seconds
        count = await self.store.count_since(user_id, window_start)

        if count >= self.max_requests:
            logger.warning("rate_limit_exceeded", user_id=user_id, count=count, limit=self.max_requests)
            raise RateLimitError(
                f"Rate limit exceeded: {count}/{self.max_requests} requests per minute. "
                f"Please wait a moment.",
                count=count
            )

        return count

    async def record_usage(self, user_id: str, record: UsageRecord) -> bool:
        """
        Append one usage record. Failures are logged and swallowed so that
        persistence problems never mask or delay the user's result.

        Returns:
            True if the record was written
        """
        try:
            await asyncio.wait_for(
                self.store.append_usage(user_id, record, self.clock()),
                timeout=self.write_timeout
            )
            return True
        except Exception as e:
            logger.error(
                "usage_record_failed",
                user_id=user_id,
                status=record.status,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

    def get_status(self) -> dict:
        """Get current rate limiter configuration."""
        return {
            "window_seconds": self.window_seconds,
            "max_requests": self.max_requests,
        }
