"""Per-user, per-operation quota for priced AI operations.

Fixed window counters kept in process memory. Correct for a single
instance; a horizontally scaled deployment needs a shared counter store
implementing the same ``RateLimiter`` protocol.
"""

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Protocol

from loguru import logger

ONE_HOUR_MS = 60 * 60 * 1000


@dataclass
class RateLimitBucket:
    """Counter state for one (user, operation) key."""

    count: int
    window_started_at: int  # epoch ms


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch ms


class RateLimiter(Protocol):
    def consume(self, user_id: str, operation: str, limit: int, window_ms: int = ONE_HOUR_MS) -> RateLimitResult:
        ...


def _now_ms() -> int:
    return int(time.time() * 1000)


class InMemoryRateLimiter:
    """
    In-memory fixed window rate limiter.

    Thread-safe: a single lock guards each read-modify-write, so concurrent
    requests for the same key never both observe the last free slot.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._lock = Lock()
        self._clock = clock

    def _get_key(self, user_id: str, operation: str) -> str:
        """Generate a unique key for rate limiting."""
        return f"{user_id}:{operation}"

    def consume(self, user_id: str, operation: str, limit: int, window_ms: int = ONE_HOUR_MS) -> RateLimitResult:
        """
        Count one request against the caller's quota.

        Args:
            user_id: Authenticated user id
            operation: Operation name (e.g., "extract-reservation")
            limit: Requests allowed per window
            window_ms: Window length in milliseconds

        Returns:
            RateLimitResult; ``allowed`` is False once the window is exhausted
        """
        key = self._get_key(user_id, operation)
        now = self._clock()

        with self._lock:
            bucket = self._buckets.get(key)

            # Lazy reset when the window has elapsed
            if bucket is None or now - bucket.window_started_at >= window_ms:
                self._buckets[key] = RateLimitBucket(count=1, window_started_at=now)
                return RateLimitResult(
                    allowed=limit > 0,
                    remaining=max(0, limit - 1),
                    reset_at=now + window_ms,
                )

            reset_at = bucket.window_started_at + window_ms
            if bucket.count >= limit:
                logger.warning(
                    f"Rate limit exceeded: operation={operation}, user={user_id}, "
                    f"limit={limit}, reset_at={reset_at}"
                )
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            bucket.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=max(0, limit - bucket.count),
                reset_at=reset_at,
            )

    def reset(self, user_id: str | None = None, operation: str | None = None) -> None:
        """Drop one key, or every bucket when called without arguments."""
        with self._lock:
            if user_id is None:
                self._buckets.clear()
            else:
                self._buckets.pop(self._get_key(user_id, operation or ""), None)
