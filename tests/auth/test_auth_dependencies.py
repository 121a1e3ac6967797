import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.security import HTTPAuthorizationCredentials

from trip_import.auth import User, get_rate_limiter, get_supabase_client, verify_current_user
from trip_import.auth.rate_limit import InMemoryRateLimiter
from trip_import.shared import ApiError, ErrorCode


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase AsyncClient"""
    mock = AsyncMock()
    mock.auth = AsyncMock()
    return mock


@pytest.fixture
def mock_token():
    """Mock HTTPAuthorizationCredentials"""
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials="valid_token")


@pytest.mark.asyncio
async def test_verify_current_user_success(mock_supabase_client, mock_token):
    """Valid token resolves to a User"""
    mock_user = MagicMock()
    mock_user.id = "user-123"
    mock_user.aud = "authenticated"
    mock_user.role = "authenticated"
    mock_user.email = "traveler@example.com"
    mock_user.app_metadata = {"provider": "email"}
    mock_user.user_metadata = {}
    mock_user.created_at = "2026-01-01T00:00:00Z"

    mock_response = MagicMock()
    mock_response.user = mock_user
    mock_supabase_client.auth.get_user.return_value = mock_response

    result = await verify_current_user(mock_token, mock_supabase_client)

    assert isinstance(result, User)
    assert result.id == "user-123"
    assert result.email == "traveler@example.com"
    mock_supabase_client.auth.get_user.assert_called_once_with("valid_token")


@pytest.mark.asyncio
async def test_verify_current_user_invalid_token(mock_supabase_client, mock_token):
    """Supabase answers without a user"""
    mock_response = MagicMock()
    mock_response.user = None
    mock_supabase_client.auth.get_user.return_value = mock_response

    with pytest.raises(ApiError) as exc_info:
        await verify_current_user(mock_token, mock_supabase_client)

    assert exc_info.value.code == ErrorCode.UNAUTHORIZED
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid authentication credentials"


@pytest.mark.asyncio
async def test_verify_current_user_exception(mock_supabase_client, mock_token):
    """Verification call raises"""
    mock_supabase_client.auth.get_user.side_effect = Exception("Network error")

    with pytest.raises(ApiError) as exc_info:
        await verify_current_user(mock_token, mock_supabase_client)

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Could not validate credentials"


@pytest.mark.asyncio
async def test_verify_current_user_missing_token(mock_supabase_client):
    with pytest.raises(ApiError) as exc_info:
        await verify_current_user(None, mock_supabase_client)

    assert exc_info.value.code == ErrorCode.UNAUTHORIZED
    mock_supabase_client.auth.get_user.assert_not_called()


def test_get_supabase_client_not_initialized():
    request = MagicMock()
    request.app.state = MagicMock(spec=[])

    with pytest.raises(ApiError) as exc_info:
        get_supabase_client(request)

    assert exc_info.value.code == ErrorCode.MISCONFIGURED
    assert exc_info.value.status_code == 500


def test_get_rate_limiter_is_created_once():
    request = MagicMock()
    request.app.state = MagicMock(spec=[])

    first = get_rate_limiter(request)

    assert isinstance(first, InMemoryRateLimiter)
    assert get_rate_limiter(request) is first
