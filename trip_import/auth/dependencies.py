from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from supabase import AsyncClient

from trip_import.shared import ApiError, ErrorCode
from .rate_limit import InMemoryRateLimiter, RateLimiter
from .schemas import User

# auto_error=False so a missing token renders the shared error envelope
bearer_scheme = HTTPBearer(auto_error=False)


def _require_token(token: Optional[HTTPAuthorizationCredentials]) -> str:
    if token is None or not token.credentials:
        raise ApiError(ErrorCode.UNAUTHORIZED, "Missing bearer token")
    return token.credentials


def get_supabase_client(request: Request) -> AsyncClient:
    """
    Dependency to get the Supabase client (ANON_KEY) created at startup.
    """
    client = getattr(request.app.state, "supabase", None)
    if client is None:
        raise ApiError(ErrorCode.MISCONFIGURED, "Supabase client not initialized")
    return client


def get_rate_limiter(request: Request) -> RateLimiter:
    """The process-wide limiter stored on ``app.state``."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = InMemoryRateLimiter()
        request.app.state.rate_limiter = limiter
    return limiter


async def verify_current_user(
    token: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    client: AsyncClient = Depends(get_supabase_client),
) -> User:
    """
    Verify the bearer token with Supabase Auth.
    Returns the User if valid, raises UNAUTHORIZED otherwise.
    """
    credentials = _require_token(token)
    try:
        # get_user verifies signature, expiry and revocation server-side
        response = await client.auth.get_user(credentials)
    except Exception as e:
        # Security: log error type only, the message may contain the token
        logger.error(f"Token verification failed: {type(e).__name__}")
        raise ApiError(ErrorCode.UNAUTHORIZED, "Could not validate credentials")

    if not response or not response.user:
        raise ApiError(ErrorCode.UNAUTHORIZED, "Invalid authentication credentials")

    supabase_user = response.user
    return User(
        id=str(supabase_user.id),
        aud=supabase_user.aud or "authenticated",
        role=supabase_user.role or "authenticated",
        email=supabase_user.email,
        app_metadata=supabase_user.app_metadata or {},
        user_metadata=supabase_user.user_metadata or {},
        created_at=supabase_user.created_at,
    )
