"""
Query suggestions.

Three independent lookups, fanned out concurrently and joined:
    - getStarted: completion-generated questions from the schema (cached)
    - contextual: rule-based follow-ups to the conversation's last statement
    - peopleAlsoAsked: most frequent user questions on the same database (cached)

Every lookup degrades to a fixed list instead of failing the request.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import Counter
from typing import Any

from querycompass.agents.parsing import parse_json_object
from querycompass.config import get_settings
from querycompass.conversations.store import ConversationStore
from querycompass.database.schema import SchemaProvider
from querycompass.llm.base import TextCompletion
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

SCHEMA_FALLBACK = [
    "How many records do we have?",
    "Show me recent data",
    "What are the totals?",
]
POPULAR_FALLBACK = [
    "Show me all data",
    "What's the total count?",
    "Display recent records",
]
MAX_GET_STARTED = 5
MAX_CONTEXTUAL = 3
MAX_POPULAR = 5

_NUMBER_PATTERN = re.compile(r"\d+")
_QUOTED_PATTERN = re.compile(r"""['"][^'"]*['"]""")


def normalize_question(text: str) -> str:
    """Lowercase, numbers to N, quoted literals to X."""
    normalized = _NUMBER_PATTERN.sub("N", text.lower())
    return _QUOTED_PATTERN.sub("X", normalized).strip()


def contextual_for_sql(sql: str) -> list[str]:
    """Follow-up questions suggested by the shape of the last statement."""
    lowered = sql.lower()
    suggestions = []
    if "customers" in lowered:
        suggestions += ["Show orders for these customers", "Group these by state"]
    if "orders" in lowered:
        suggestions += ["What's the total amount?", "Show this by month"]
    if re.search(r"\bwhere\b", lowered):
        suggestions += ["Show all results (remove filter)", "Change the filter criteria"]
    if not re.search(r"\blimit\b", lowered):
        suggestions.append("Show only top 10")
    return suggestions[:MAX_CONTEXTUAL]


def most_asked(questions: list[str], limit: int = MAX_POPULAR) -> list[str]:
    """Most frequent question patterns, each represented by a real example."""
    examples: dict[str, str] = {}
    counts: Counter[str] = Counter()
    for question in questions:
        pattern = normalize_question(question)
        if not pattern:
            continue
        counts[pattern] += 1
        examples.setdefault(pattern, question.strip())
    return [examples[pattern] for pattern, _ in counts.most_common(limit)]


class SuggestionService:
    """Build the suggestion lists shown next to the chat input."""

    def __init__(
        self,
        conversation_store: ConversationStore,
        schema_provider: SchemaProvider,
        llm_provider: TextCompletion,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        self.conversation_store = conversation_store
        self.schema_provider = schema_provider
        self.llm = llm_provider
        self.cache_ttl_seconds = (
            cache_ttl_seconds
            if cache_ttl_seconds is not None
            else get_settings().pipeline.suggestion_cache_ttl_seconds
        )
        self.prompts = PromptLoader()
        self._cache: dict[str, tuple[float, list[str]]] = {}

    async def get_all(
        self, database_id: str, *, user_id: str, conversation_id: str | None = None
    ) -> dict[str, list[str]]:
        get_started, contextual, popular = await asyncio.gather(
            self.schema_suggestions(database_id),
            self.contextual_suggestions(conversation_id, user_id=user_id),
            self.people_also_asked(database_id),
        )
        return {
            "get_started": get_started[:MAX_GET_STARTED],
            "contextual": contextual,
            "people_also_asked": popular,
        }

    async def schema_suggestions(self, database_id: str) -> list[str]:
        cache_key = f"schema:{database_id}"
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        try:
            schema = await self.schema_provider.get_schema(database_id)
            prompt = self.prompts.render(
                "agents/suggestion_analyzer.md", schema=schema, database_id=database_id
            )
            response = await self.llm.complete(prompt)
        except Exception as exc:
            logger.warning(f"Schema suggestions unavailable for {database_id}: {exc}")
            return list(SCHEMA_FALLBACK)

        result = parse_json_object(response)
        suggestions = result.value.get("suggestions") if result.ok else None
        if not isinstance(suggestions, list):
            logger.warning(f"Malformed schema suggestions for {database_id}")
            return list(SCHEMA_FALLBACK)

        suggestions = [item.strip() for item in suggestions if isinstance(item, str) and item.strip()]
        self._store(cache_key, suggestions)
        logger.info(f"Generated {len(suggestions)} schema suggestions for {database_id}")
        return suggestions

    async def contextual_suggestions(self, conversation_id: str | None, *, user_id: str) -> list[str]:
        if not conversation_id:
            return []
        try:
            conversation = await self.conversation_store.get_conversation(
                conversation_id, user_id=user_id
            )
        except Exception as exc:
            logger.warning(f"Contextual suggestions unavailable: {exc}")
            return []
        if conversation is None:
            return []

        for message in reversed(conversation.messages[-3:]):
            if message.sender == "bot" and message.executed_sql:
                return contextual_for_sql(message.executed_sql)
        return []

    async def people_also_asked(self, database_id: str) -> list[str]:
        cache_key = f"popular:{database_id}"
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        try:
            questions = await self.conversation_store.recent_user_messages(database_id)
        except Exception as exc:
            logger.warning(f"Popular questions unavailable for {database_id}: {exc}")
            return list(POPULAR_FALLBACK)

        suggestions = most_asked(questions) or list(POPULAR_FALLBACK)
        self._store(cache_key, suggestions)
        return suggestions

    def clear_cache(self) -> None:
        self._cache.clear()

    def _cached(self, key: str) -> list[str] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if time.monotonic() - stored_at >= self.cache_ttl_seconds:
            del self._cache[key]
            return None
        return list(value)

    def _store(self, key: str, value: list[Any]) -> None:
        self._cache[key] = (time.monotonic(), list(value))
