"""Shared fixtures for the API route tests."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from querycompass.api.main import app
from querycompass.config import get_settings


@pytest.fixture
def client():
    """Test client without lifespan; tests patch app_state directly."""
    return TestClient(app)


@pytest.fixture
def make_token():
    """Build a signed access token for the test secret."""

    def _make(sub="u1", role="user", expires_in=timedelta(hours=1), **claims):
        payload = {
            "sub": sub,
            "role": role,
            "username": sub,
            "exp": datetime.now(UTC) + expires_in,
            **claims,
        }
        return jwt.encode(payload, get_settings().auth.jwt_secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers(make_token):
    return {"Authorization": f"Bearer {make_token(sub='a1', role='admin')}"}
