"""Append-only audit log in the system database."""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

from querycompass.config import get_settings
from querycompass.constants import AuditAction
from querycompass.models import AuditLogEntry

logger = logging.getLogger(__name__)

_CREATE_AUDIT_TABLE = """
CREATE TABLE IF NOT EXISTS audit_logs (
    id BIGSERIAL PRIMARY KEY,
    created_at TIMESTAMPTZ NOT NULL,
    action TEXT NOT NULL,
    user_id TEXT,
    conversation_id TEXT,
    details JSONB NOT NULL DEFAULT '{}'::jsonb
);
"""

_CREATE_AUDIT_CONVERSATION_INDEX = """
CREATE INDEX IF NOT EXISTS audit_logs_conversation_idx
ON audit_logs (conversation_id, created_at);
"""


class AuditLogStore:
    """
    Record pipeline events.

    Writes are best-effort: log() never raises. A failed write is logged
    at WARNING and the request it describes carries on.
    """

    def __init__(self, database_url: str | None = None) -> None:
        settings = get_settings()
        self._database_url = database_url or (
            str(settings.system_database.url) if settings.system_database.url else None
        )
        self._pool: asyncpg.Pool | None = None

    async def initialize(self) -> None:
        if self._pool is None:
            if not self._database_url:
                raise ValueError("SYSTEM_DATABASE_URL must be set for audit logging.")
            dsn = self._database_url.replace("postgresql+asyncpg://", "postgresql://", 1)
            self._pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=3)
        await self._pool.execute(_CREATE_AUDIT_TABLE)
        await self._pool.execute(_CREATE_AUDIT_CONVERSATION_INDEX)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def log(
        self,
        action: AuditAction,
        *,
        user_id: str | None = None,
        conversation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry | None:
        """Append one entry. Returns None when the write failed."""
        entry = AuditLogEntry(
            action=action,
            user_id=user_id,
            conversation_id=conversation_id,
            details=details or {},
        )
        if self._pool is None:
            logger.warning(f"Audit log not initialized; dropped {action.value} entry")
            return None
        try:
            await self._pool.execute(
                """
                INSERT INTO audit_logs (created_at, action, user_id, conversation_id, details)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                """,
                entry.timestamp,
                entry.action.value,
                entry.user_id,
                entry.conversation_id,
                json.dumps(entry.details, default=str),
            )
        except Exception as exc:
            logger.warning(
                f"Audit write failed for {action.value}: {exc}",
                extra={"action": action.value, "conversation_id": conversation_id},
            )
            return None

        logger.debug(f"[AUDIT] Logged event: {action.value}", extra={"action": action.value})
        return entry

    async def list_entries(self, *, conversation_id: str, limit: int = 200) -> list[AuditLogEntry]:
        """Entries for one conversation in write order."""
        if self._pool is None:
            raise RuntimeError("AuditLogStore not initialized")
        rows = await self._pool.fetch(
            """
            SELECT created_at, action, user_id, conversation_id, details
            FROM audit_logs
            WHERE conversation_id = $1
            ORDER BY id
            LIMIT $2
            """,
            conversation_id,
            max(1, min(limit, 1000)),
        )
        return [_entry_from_row(row) for row in rows]

    async def list_recent(self, *, limit: int = 20) -> list[AuditLogEntry]:
        """Most recent entries across all conversations, newest first."""
        if self._pool is None:
            raise RuntimeError("AuditLogStore not initialized")
        rows = await self._pool.fetch(
            """
            SELECT created_at, action, user_id, conversation_id, details
            FROM audit_logs
            ORDER BY id DESC
            LIMIT $1
            """,
            max(1, min(limit, 1000)),
        )
        return [_entry_from_row(row) for row in rows]


def _entry_from_row(row: asyncpg.Record) -> AuditLogEntry:
    details = row["details"]
    return AuditLogEntry(
        action=AuditAction(row["action"]),
        user_id=row["user_id"],
        conversation_id=row["conversation_id"],
        details=json.loads(details) if isinstance(details, str) else details,
        timestamp=row["created_at"],
    )
