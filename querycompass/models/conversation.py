"""
Conversation Models

Persisted conversation documents and the message shapes embedded in them.
Messages serialize with camelCase keys, the layout stored in the
conversation table and returned to clients.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from querycompass.constants import DEFAULT_CONVERSATION_TITLE

_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = _CAMEL_CONFIG

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class HistoryMessage(CamelModel):
    """One prior turn as supplied by the client."""

    sender: Literal["user", "bot"]
    text: str = ""

    @property
    def speaker(self) -> str:
        return "User" if self.sender == "user" else "Bot"


class SqlVersion(CamelModel):
    """One entry of a message's refinement log."""

    sql: str
    timestamp: datetime = Field(default_factory=_utcnow)
    modification_reason: str


class ExecutionMetadata(CamelModel):
    """
    Metadata of an executed statement.

    Read results carry columns and a hash of the full row set;
    modification results carry the command tag as operation.
    """

    row_count: int = Field(..., ge=0)
    columns: list[str] | None = None
    result_hash: str | None = Field(
        None, description="sha256 of the full result set, computed before truncation"
    )
    operation: str | None = Field(None, description="INSERT, UPDATE, DELETE, ...")


class VisualizationPackage(CamelModel):
    type: Literal["table", "bar", "line", "pie", "scalar"] = "table"
    vis_spec: dict[str, Any] = Field(default_factory=dict)
    summary: str = ""


class ChatMessage(CamelModel):
    """A single persisted message (user utterance or bot reply)."""

    sender: Literal["user", "bot"]
    text: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    executed_sql: str | None = None
    sql_versions: list[SqlVersion] | None = None
    execution_metadata: ExecutionMetadata | None = None
    masked_sample: list[dict[str, Any]] | None = None
    vis_package: VisualizationPackage | None = None
    verifier_output: dict[str, Any] | None = None
    is_error: bool | None = None
    is_modification: bool | None = None
    was_refined: bool | None = None

    @model_validator(mode="after")
    def read_results_carry_sample(self) -> "ChatMessage":
        """A read result must carry both its sample and its column list."""
        if self.execution_metadata is not None and not self.is_modification:
            if self.masked_sample is None or self.execution_metadata.columns is None:
                raise ValueError(
                    "Read results require maskedSample and executionMetadata.columns"
                )
        return self


class Conversation(CamelModel):
    id: str
    user_id: str
    database_id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def has_default_title(self) -> bool:
        return self.title == DEFAULT_CONVERSATION_TITLE

    def history(self) -> list[HistoryMessage]:
        return [HistoryMessage(sender=m.sender, text=m.text) for m in self.messages]


class ConversationSummary(CamelModel):
    """List view of a conversation (messages omitted)."""

    id: str
    title: str
    database_id: str
    created_at: datetime
