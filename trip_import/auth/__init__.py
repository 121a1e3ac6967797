"""Authentication and quota enforcement."""

from .dependencies import (
    get_rate_limiter,
    get_supabase_client,
    verify_current_user,
)
from .rate_limit import (
    ONE_HOUR_MS,
    InMemoryRateLimiter,
    RateLimitBucket,
    RateLimiter,
    RateLimitResult,
)
from .schemas import User

__all__ = [
    "get_rate_limiter",
    "get_supabase_client",
    "verify_current_user",
    "ONE_HOUR_MS",
    "InMemoryRateLimiter",
    "RateLimitBucket",
    "RateLimiter",
    "RateLimitResult",
    "User",
]
