"""
Unit Tests for Database Endpoints

Tests the target database list and schema description endpoints.
"""

from unittest.mock import AsyncMock, patch

import pytest

from querycompass.connectors.base import SchemaError
from querycompass.database import DatabasePoolManager, UnknownDatabaseError


class TestDatabaseEndpoints:
    @pytest.fixture
    def schema_provider(self, mock_schema_provider):
        state = {"pool_manager": DatabasePoolManager(), "schema_provider": mock_schema_provider}
        with patch.dict("querycompass.api.main.app_state", state):
            yield mock_schema_provider

    def test_list_databases(self, client, schema_provider, auth_headers):
        response = client.get("/api/v1/databases", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"databases": ["sales_db"]}

    def test_get_schema(self, client, schema_provider, auth_headers):
        response = client.get("/api/v1/databases/sales_db/schema", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["databaseId"] == "sales_db"
        assert data["schema"].startswith('Table "customers" has columns:')
        schema_provider.get_schema.assert_awaited_once_with("sales_db")

    def test_unknown_database_returns_404(self, client, schema_provider, auth_headers):
        schema_provider.get_schema = AsyncMock(side_effect=UnknownDatabaseError("missing_db"))

        response = client.get("/api/v1/databases/missing_db/schema", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Database pool for 'missing_db' not found."

    def test_introspection_failure_returns_503(self, client, schema_provider, auth_headers):
        schema_provider.get_schema = AsyncMock(side_effect=SchemaError("permission denied"))

        response = client.get("/api/v1/databases/sales_db/schema", headers=auth_headers)

        assert response.status_code == 503


def test_without_pool_manager_returns_503(client, auth_headers):
    with patch.dict("querycompass.api.main.app_state", {"pool_manager": None}):
        response = client.get("/api/v1/databases", headers=auth_headers)

    assert response.status_code == 503
