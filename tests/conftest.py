import json

import pytest

from trip_import.auth import User
from tests.fakes import FLIGHT_REPLY, GROCERY_TEXT, LATAM_TEXT


@pytest.fixture
def mock_current_user():
    """Mock authenticated user"""
    return User(
        id="user-123",
        aud="authenticated",
        role="authenticated",
        email="test@example.com",
        app_metadata={"provider": "email"},
        user_metadata={},
        created_at="2026-01-01T00:00:00Z",
    )


@pytest.fixture
def flight_reply():
    return json.loads(json.dumps(FLIGHT_REPLY))


@pytest.fixture
def latam_text():
    return LATAM_TEXT


@pytest.fixture
def grocery_text():
    return GROCERY_TEXT
