"""Audit trail persistence."""

from .store import AuditLogStore

__all__ = ["AuditLogStore"]
