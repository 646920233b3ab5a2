"""Conversation persistence in the system database."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import asyncpg

from querycompass.config import get_settings
from querycompass.constants import DEFAULT_CONVERSATION_TITLE
from querycompass.models import ChatMessage, Conversation, ConversationSummary, SqlVersion

logger = logging.getLogger(__name__)

_CREATE_CONVERSATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS conversations (
    id UUID PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT 'New Chat',
    database_id TEXT NOT NULL,
    messages JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_CONVERSATIONS_USER_INDEX = """
CREATE INDEX IF NOT EXISTS conversations_user_created_idx
ON conversations (user_id, created_at DESC);
"""

_CREATE_CONVERSATIONS_DATABASE_INDEX = """
CREATE INDEX IF NOT EXISTS conversations_database_updated_idx
ON conversations (database_id, updated_at DESC);
"""


class StoreError(Exception):
    """The conversation store could not complete an operation."""


class ConversationNotFoundError(LookupError):
    """No conversation with this id is visible to the caller."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


def append_sql_version(
    versions: list[dict[str, Any]] | None,
    entry: dict[str, Any],
    limit: int,
) -> list[dict[str, Any]]:
    """Return ``versions`` plus ``entry``, keeping the newest ``limit`` entries."""
    updated = [*(versions or []), entry]
    return updated[-limit:] if limit > 0 else []


def _parse_id(conversation_id: str) -> UUID | None:
    try:
        return UUID(str(conversation_id))
    except ValueError:
        return None


class ConversationStore:
    """
    Persist conversations and their embedded message arrays.

    Messages are stored as a JSONB array with camelCase keys. Appends are
    single-statement array concatenations; the only read-modify-write
    (recording a SQL version on an earlier message) holds a row lock.
    """

    def __init__(self, database_url: str | None = None, sql_versions_limit: int | None = None) -> None:
        settings = get_settings()
        self._database_url = database_url or (
            str(settings.system_database.url) if settings.system_database.url else None
        )
        self._sql_versions_limit = sql_versions_limit or settings.pipeline.sql_versions_limit
        self._pool: asyncpg.Pool | None = None

    async def initialize(self) -> None:
        if self._pool is None:
            if not self._database_url:
                raise ValueError("SYSTEM_DATABASE_URL must be set for conversation storage.")
            dsn = self._normalize_postgres_url(self._database_url)
            self._pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=5)
        await self._pool.execute(_CREATE_CONVERSATIONS_TABLE)
        await self._pool.execute(_CREATE_CONVERSATIONS_USER_INDEX)
        await self._pool.execute(_CREATE_CONVERSATIONS_DATABASE_INDEX)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> bool:
        self._ensure_pool()
        with self._errors("ping"):
            return await self._pool.fetchval("SELECT 1") == 1

    async def create_conversation(self, *, user_id: str, database_id: str) -> Conversation:
        self._ensure_pool()
        now = datetime.now(UTC)
        conversation_id = uuid4()
        with self._errors("create_conversation"):
            await self._pool.execute(
                """
                INSERT INTO conversations (id, user_id, title, database_id, messages, created_at, updated_at)
                VALUES ($1, $2, $3, $4, '[]'::jsonb, $5, $5)
                """,
                conversation_id,
                user_id,
                DEFAULT_CONVERSATION_TITLE,
                database_id,
                now,
            )
        logger.info(
            "Created conversation",
            extra={"conversation_id": str(conversation_id), "database_id": database_id},
        )
        return Conversation(
            id=str(conversation_id),
            user_id=user_id,
            database_id=database_id,
            created_at=now,
            updated_at=now,
        )

    async def get_conversation(self, conversation_id: str, *, user_id: str) -> Conversation | None:
        """Full conversation, or None when missing or owned by someone else."""
        self._ensure_pool()
        parsed_id = _parse_id(conversation_id)
        if parsed_id is None:
            return None
        with self._errors("get_conversation"):
            row = await self._pool.fetchrow(
                """
                SELECT id, user_id, title, database_id, messages, created_at, updated_at
                FROM conversations
                WHERE id = $1 AND user_id = $2
                """,
                parsed_id,
                user_id,
            )
        return self._row_to_conversation(row) if row is not None else None

    async def list_conversations(self, *, user_id: str, limit: int = 50) -> list[ConversationSummary]:
        self._ensure_pool()
        bounded_limit = max(1, min(limit, 200))
        with self._errors("list_conversations"):
            rows = await self._pool.fetch(
                """
                SELECT id, title, database_id, created_at
                FROM conversations
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                user_id,
                bounded_limit,
            )
        return [
            ConversationSummary(
                id=str(row["id"]),
                title=row["title"],
                database_id=row["database_id"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def append_message(self, conversation_id: str, message: ChatMessage) -> None:
        """
        Append one message to the end of the conversation.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        self._ensure_pool()
        parsed_id = _parse_id(conversation_id)
        if parsed_id is None:
            raise ConversationNotFoundError(conversation_id)
        with self._errors("append_message"):
            status = await self._pool.execute(
                """
                UPDATE conversations
                SET messages = messages || $2::jsonb, updated_at = $3
                WHERE id = $1
                """,
                parsed_id,
                json.dumps([message.to_payload()]),
                datetime.now(UTC),
            )
        if self._affected(status) == 0:
            raise ConversationNotFoundError(conversation_id)

    async def get_last_executed_sql(self, conversation_id: str) -> str | None:
        """Most recent bot message's executedSql, scanning newest first."""
        self._ensure_pool()
        parsed_id = _parse_id(conversation_id)
        if parsed_id is None:
            return None
        with self._errors("get_last_executed_sql"):
            raw = await self._pool.fetchval(
                "SELECT messages FROM conversations WHERE id = $1",
                parsed_id,
            )
        messages = self._decode_json_field(raw) or []
        _, message = self._last_executed(messages)
        return message.get("executedSql") if message else None

    async def add_sql_version(self, conversation_id: str, sql: str, reason: str) -> bool:
        """
        Record a new statement on the latest message that carries executedSql.

        The read-modify-write runs in a transaction holding the row lock,
        so concurrent refinements cannot drop each other's versions.
        Returns False when there is no such message.
        """
        self._ensure_pool()
        parsed_id = _parse_id(conversation_id)
        if parsed_id is None:
            return False
        entry = SqlVersion(sql=sql, modification_reason=reason).to_payload()

        with self._errors("add_sql_version"):
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    raw = await conn.fetchval(
                        "SELECT messages FROM conversations WHERE id = $1 FOR UPDATE",
                        parsed_id,
                    )
                    messages = self._decode_json_field(raw) or []
                    index, message = self._last_executed(messages)
                    if message is None:
                        return False
                    message["sqlVersions"] = append_sql_version(
                        message.get("sqlVersions"), entry, self._sql_versions_limit
                    )
                    await conn.execute(
                        """
                        UPDATE conversations
                        SET messages = jsonb_set(messages, $2::text[], $3::jsonb), updated_at = $4
                        WHERE id = $1
                        """,
                        parsed_id,
                        [str(index)],
                        json.dumps(message),
                        datetime.now(UTC),
                    )
        return True

    async def set_title_if_default(
        self, conversation_id: str, title: str, *, user_id: str | None = None
    ) -> bool:
        """Set the title only while it is still the default; True when it changed."""
        self._ensure_pool()
        parsed_id = _parse_id(conversation_id)
        if parsed_id is None:
            return False
        with self._errors("set_title_if_default"):
            status = await self._pool.execute(
                """
                UPDATE conversations
                SET title = $2, updated_at = $3
                WHERE id = $1 AND title = $4 AND ($5::text IS NULL OR user_id = $5)
                """,
                parsed_id,
                title,
                datetime.now(UTC),
                DEFAULT_CONVERSATION_TITLE,
                user_id,
            )
        return self._affected(status) > 0

    async def delete_conversation(self, conversation_id: str, *, user_id: str) -> bool:
        self._ensure_pool()
        parsed_id = _parse_id(conversation_id)
        if parsed_id is None:
            return False
        with self._errors("delete_conversation"):
            status = await self._pool.execute(
                "DELETE FROM conversations WHERE id = $1 AND user_id = $2",
                parsed_id,
                user_id,
            )
        return self._affected(status) > 0

    async def recent_user_messages(self, database_id: str, *, conversations: int = 100) -> list[str]:
        """User message texts from the most recently updated conversations on a database."""
        self._ensure_pool()
        with self._errors("recent_user_messages"):
            rows = await self._pool.fetch(
                """
                SELECT messages
                FROM conversations
                WHERE database_id = $1
                ORDER BY updated_at DESC
                LIMIT $2
                """,
                database_id,
                conversations,
            )
        texts = []
        for row in rows:
            for message in self._decode_json_field(row["messages"]) or []:
                if message.get("sender") == "user" and message.get("text"):
                    texts.append(message["text"])
        return texts

    def _ensure_pool(self) -> None:
        if self._pool is None:
            raise RuntimeError("ConversationStore not initialized")

    @staticmethod
    @contextmanager
    def _errors(operation: str) -> Iterator[None]:
        try:
            yield
        except (asyncpg.PostgresError, OSError) as exc:
            logger.error(f"Conversation store {operation} failed: {exc}")
            raise StoreError(f"Conversation store {operation} failed") from exc

    @staticmethod
    def _affected(status: Any) -> int:
        try:
            return int(str(status).split()[-1])
        except (ValueError, IndexError):
            return 0

    @staticmethod
    def _last_executed(messages: list[dict[str, Any]]) -> tuple[int, dict[str, Any] | None]:
        for index in range(len(messages) - 1, -1, -1):
            message = messages[index]
            if message.get("sender") == "bot" and message.get("executedSql"):
                return index, message
        return -1, None

    @staticmethod
    def _normalize_postgres_url(url: str) -> str:
        if url.startswith("postgresql+asyncpg://"):
            return "postgresql://" + url[len("postgresql+asyncpg://") :]
        return url

    @staticmethod
    def _decode_json_field(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None
        return value

    @classmethod
    def _row_to_conversation(cls, row: asyncpg.Record) -> Conversation:
        return Conversation(
            id=str(row["id"]),
            user_id=row["user_id"],
            title=row["title"],
            database_id=row["database_id"],
            messages=cls._decode_json_field(row["messages"]) or [],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
