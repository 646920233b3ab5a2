"""Admin-only routes."""

from __future__ import annotations

import logging
from typing import Any

import asyncpg
from fastapi import APIRouter, HTTPException, Query, status

from querycompass.api.auth import CurrentUserDep
from querycompass.audit.store import AuditLogStore

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_audit_log() -> AuditLogStore:
    from querycompass.api.main import app_state

    audit_log = app_state.get("audit_log")
    if audit_log is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit log is not available.",
        )
    return audit_log


@router.get("/admin/audit-logs")
async def list_audit_logs(
    user: CurrentUserDep,
    limit: int = Query(20, ge=1, le=1000),
    conversation_id: str | None = Query(None, alias="conversationId"),
) -> list[dict[str, Any]]:
    """
    Recent audit entries, newest first.

    With conversationId, that conversation's entries in write order.
    Only admins may read the audit log.
    """
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required.")

    audit_log = _get_audit_log()
    try:
        if conversation_id:
            entries = await audit_log.list_entries(conversation_id=conversation_id, limit=limit)
        else:
            entries = await audit_log.list_recent(limit=limit)
    except (asyncpg.PostgresError, OSError, RuntimeError) as exc:
        logger.error(f"Failed to read audit log: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve audit logs.",
        ) from exc
    return [entry.model_dump(mode="json") for entry in entries]
