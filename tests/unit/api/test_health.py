"""
Unit Tests for Health Check Endpoints

Tests the /api/v1/health and /api/v1/health/live endpoints.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest


class TestLiveness:
    def test_live_returns_200(self, client):
        response = client.get("/api/v1/health/live")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert isinstance(data["timestamp"], str)

    def test_root_describes_api(self, client):
        assert client.get("/").json()["name"] == "QueryCompass API"


class TestReadiness:
    @pytest.fixture
    def store(self):
        store = AsyncMock()
        store.ping = AsyncMock(return_value=True)
        return store

    def test_ready_when_all_checks_pass(self, client, store):
        with patch.dict(
            "querycompass.api.main.app_state",
            {"conversation_store": store, "pipeline": MagicMock()},
        ):
            response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["checks"] == {"system_database": True, "pipeline": True}

    def test_not_ready_without_system_database(self, client):
        with patch.dict(
            "querycompass.api.main.app_state",
            {"conversation_store": None, "pipeline": None},
        ):
            response = client.get("/api/v1/health")

        assert response.status_code == 503
        assert response.json()["checks"] == {"system_database": False, "pipeline": False}

    def test_ping_failure_is_not_ready(self, client, store):
        store.ping.side_effect = OSError("connection refused")
        with patch.dict(
            "querycompass.api.main.app_state",
            {"conversation_store": store, "pipeline": MagicMock()},
        ):
            response = client.get("/api/v1/health")

        assert response.status_code == 503
        assert response.json()["checks"]["system_database"] is False
