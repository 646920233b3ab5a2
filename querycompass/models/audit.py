"""Audit log entry model."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from querycompass.constants import AuditAction


class AuditLogEntry(BaseModel):
    """One append-only audit record, correlated by identifiers only."""

    action: AuditAction
    user_id: str | None = None
    conversation_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
