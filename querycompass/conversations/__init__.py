"""Conversation persistence."""

from .store import (
    ConversationNotFoundError,
    ConversationStore,
    StoreError,
    append_sql_version,
)

__all__ = ["ConversationNotFoundError", "ConversationStore", "StoreError", "append_sql_version"]
