"""Token bucket rate limiter for outbound AIRS API calls."""

from typing import Any, Awaitable, Callable, Dict, Optional
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import asyncio
import contextlib
import time
import structlog

from ..exceptions import RateLimiterError

logger = structlog.get_logger(__name__)

# Idle buckets are never collected sooner than this
MIN_CLEANUP_INTERVAL_SECONDS = 60.0

# Upper bound for a single sleep inside wait_for_limit
MAX_WAIT_POLL_SECONDS = 1.0


@dataclass
class TokenBucket:
    tokens: int
    last_refill: float
    last_used: float


@dataclass
class RateLimitStatus:
    available: int
    limit: int
    reset_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "limit": self.limit,
            "reset_at": self.reset_at.isoformat(),
        }


class RateLimiter:
    """Per-key token bucket limiter.

    Each key (an operation class such as ``scan`` or ``results``) gets its own
    bucket of ``max_requests`` tokens. Tokens come back only in whole windows:
    ``floor(elapsed / window) * max_requests``, capped at ``max_requests``.
    A partial window grants nothing.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_ms: int = 60000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Bucket capacity and tokens granted per window
            window_ms: Refill window in milliseconds
            enabled: When False every check succeeds without accounting
            clock: Monotonic time source in seconds
            sleep: Awaitable used by wait_for_limit
        """
        self.max_requests = max_requests
        self.window_seconds = window_ms / 1000
        self.enabled = enabled
        self.cleanup_interval = max(self.window_seconds * 2, MIN_CLEANUP_INTERVAL_SECONDS)

        self._clock = clock
        self._sleep = sleep
        self._buckets: Dict[str, TokenBucket] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

        logger.info(
            "AIRS rate limiter initialized",
            max_requests=max_requests,
            window_ms=window_ms,
            enabled=enabled,
        )

    def try_consume(self, key: str = "default") -> bool:
        """Consume one token for ``key`` if available. Never blocks."""
        if not self.enabled:
            return True

        bucket = self._get_bucket(key)
        bucket.last_used = self._clock()

        if bucket.tokens > 0:
            bucket.tokens -= 1
            logger.debug("Rate limit check passed", key=key, remaining=bucket.tokens)
            return True

        logger.debug(
            "Rate limit exhausted",
            key=key,
            retry_in=self._seconds_until_refill(bucket),
        )
        return False

    async def wait_for_limit(self, key: str = "default") -> None:
        """Suspend until a token for ``key`` is available, then consume it."""
        if not self.enabled:
            return

        while not self.try_consume(key):
            bucket = self._buckets.get(key)
            if bucket is None:
                # Bucket was reset while we were waiting
                continue

            wait = min(self._seconds_until_refill(bucket), MAX_WAIT_POLL_SECONDS)
            logger.debug("Waiting for rate limit", key=key, wait_seconds=wait)
            await self._sleep(wait)

    def status(self, key: str = "default") -> RateLimitStatus:
        """Current bucket state for ``key`` without consuming anything."""
        now = self._clock()
        bucket = self._buckets.get(key)

        if bucket is None:
            remaining = self.window_seconds
            available = self.max_requests
        else:
            self._refill(bucket, now)
            remaining = self._seconds_until_refill(bucket)
            available = bucket.tokens

        return RateLimitStatus(
            available=available,
            limit=self.max_requests,
            reset_at=datetime.now(timezone.utc) + timedelta(seconds=remaining),
        )

    def reset(self, key: str = "default") -> None:
        """Drop the bucket for ``key``. The next use starts full."""
        self._buckets.pop(key, None)
        logger.debug("Rate limit reset", key=key)

    def clear(self) -> None:
        """Drop all buckets."""
        self._buckets.clear()
        logger.debug("All rate limits cleared")

    def stats(self) -> Dict[str, Any]:
        return {"bucket_count": len(self._buckets), "enabled": self.enabled}

    def cleanup_idle(self) -> int:
        """Remove buckets unused for at least ``cleanup_interval`` seconds."""
        cutoff = self._clock() - self.cleanup_interval
        idle = [key for key, bucket in self._buckets.items() if bucket.last_used <= cutoff]
        for key in idle:
            del self._buckets[key]

        if idle:
            logger.debug("Rate limiter cleanup completed", removed=len(idle))
        return len(idle)

    def start_cleanup(self) -> None:
        """Start periodic idle-bucket cleanup on the running event loop."""
        if not self.enabled or self._cleanup_task is not None:
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup_idle()

    def _get_bucket(self, key: str) -> TokenBucket:
        if not isinstance(key, str) or not key:
            raise RateLimiterError("Rate limit key must be a non-empty string", {"key": repr(key)})

        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(tokens=self.max_requests, last_refill=now, last_used=now)
            self._buckets[key] = bucket
            return bucket

        self._refill(bucket, now)
        return bucket

    def _refill(self, bucket: TokenBucket, now: float) -> None:
        windows = int((now - bucket.last_refill) // self.window_seconds)
        if windows > 0:
            bucket.tokens = min(self.max_requests, bucket.tokens + windows * self.max_requests)
            bucket.last_refill = now

    def _seconds_until_refill(self, bucket: TokenBucket) -> float:
        return max(0.0, self.window_seconds - (self._clock() - bucket.last_refill))
