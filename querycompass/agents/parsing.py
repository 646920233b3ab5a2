"""
Completion output parsing.

Completions that were asked for JSON may come back fenced, prefixed with
prose, or not JSON at all. Decoding never raises: callers get a tagged
ParseResult and must handle the failed variant explicitly.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

_FENCE_PATTERN = re.compile(r"```[ \t]*([A-Za-z]*)[ \t]*\n?(.*?)```", re.DOTALL)
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class ParseResult:
    """Outcome of decoding a structured completion."""

    ok: bool
    value: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def success(cls, value: dict[str, Any]) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(ok=False, error=error)


def strip_code_fence(text: str, language: str) -> str:
    """
    Remove markdown fencing and a leading language tag.

    ``language`` is the tag to drop when a model writes it as the first
    word without a fence (e.g. "sql\\nSELECT 1").
    """
    text = (text or "").strip()
    match = _FENCE_PATTERN.search(text)
    if match:
        text = match.group(2).strip()
    text = text.replace("```", "").strip()
    if text.lower().startswith(language.lower()):
        rest = text[len(language):]
        if not rest or rest[0].isspace():
            text = rest.strip()
    return text


def parse_json_object(text: str) -> ParseResult:
    """Decode the single JSON object contained in a completion."""
    cleaned = strip_code_fence(text, "json")
    if not cleaned:
        return ParseResult.failure("empty completion")

    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _OBJECT_PATTERN.search(cleaned)
        if not match:
            return ParseResult.failure("no JSON object found")
        try:
            value = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            return ParseResult.failure(f"invalid JSON: {exc.msg}")

    if not isinstance(value, dict):
        return ParseResult.failure(f"expected an object, got {type(value).__name__}")
    return ParseResult.success(value)
