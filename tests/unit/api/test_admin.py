"""
Unit Tests for Admin Endpoints

Tests the audit log view and its admin-only access rule.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from querycompass.constants import AuditAction
from querycompass.models import AuditLogEntry

LOGGED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestAuditLogEndpoint:
    @pytest.fixture
    def audit_log(self):
        audit_log = AsyncMock()
        audit_log.list_recent = AsyncMock(
            return_value=[
                AuditLogEntry(
                    action=AuditAction.SECURITY_BLOCK,
                    user_id="u1",
                    conversation_id="c1",
                    details={"sql": "DELETE FROM orders", "role": "user"},
                    timestamp=LOGGED_AT,
                )
            ]
        )
        audit_log.list_entries = AsyncMock(return_value=[])
        with patch.dict("querycompass.api.main.app_state", {"audit_log": audit_log}):
            yield audit_log

    def test_admin_reads_recent_entries(self, client, audit_log, admin_headers):
        response = client.get("/api/v1/admin/audit-logs", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == [
            {
                "action": "security-block",
                "user_id": "u1",
                "conversation_id": "c1",
                "details": {"sql": "DELETE FROM orders", "role": "user"},
                "timestamp": "2026-03-01T12:00:00Z",
            }
        ]
        audit_log.list_recent.assert_awaited_once_with(limit=20)

    def test_conversation_filter(self, client, audit_log, admin_headers):
        response = client.get(
            "/api/v1/admin/audit-logs",
            params={"conversationId": "c1", "limit": 50},
            headers=admin_headers,
        )

        assert response.status_code == 200
        audit_log.list_entries.assert_awaited_once_with(conversation_id="c1", limit=50)
        audit_log.list_recent.assert_not_awaited()

    def test_non_admin_is_forbidden(self, client, audit_log, auth_headers):
        response = client.get("/api/v1/admin/audit-logs", headers=auth_headers)

        assert response.status_code == 403
        audit_log.list_recent.assert_not_awaited()

    def test_requires_authentication(self, client, audit_log):
        response = client.get("/api/v1/admin/audit-logs")

        assert response.status_code == 401

    def test_store_failure_returns_500(self, client, audit_log, admin_headers):
        audit_log.list_recent.side_effect = asyncpg.PostgresError("relation does not exist")

        response = client.get("/api/v1/admin/audit-logs", headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to retrieve audit logs."

    def test_missing_audit_log_returns_503(self, client, admin_headers):
        with patch.dict("querycompass.api.main.app_state", {"audit_log": None}):
            response = client.get("/api/v1/admin/audit-logs", headers=admin_headers)

        assert response.status_code == 503
