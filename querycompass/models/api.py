"""
API Request/Response Models

Pydantic models for FastAPI endpoints. Request and response bodies use
camelCase keys; snake_case is accepted on input as well.
"""

import json
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator

from querycompass.models.conversation import CamelModel, ChatMessage, HistoryMessage


class ChatRequest(CamelModel):
    """One user turn for the agent."""

    conversation_id: str | None = Field(
        None, description="Existing conversation; omitted on the first turn"
    )
    prompt: str = Field(..., min_length=1, description="The user's utterance")
    database_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("databaseId", "database_id", "dbName"),
        description="Target database identifier",
    )
    conversation_history: list[HistoryMessage] = Field(default_factory=list)
    last_result: dict[str, Any] | None = Field(
        None, description="Metadata and data sample of the previous result"
    )

    model_config = {
        **CamelModel.model_config,
        "json_schema_extra": {
            "example": {
                "conversationId": None,
                "prompt": "show all customers",
                "databaseId": "sales_db",
                "conversationHistory": [],
                "lastResult": None,
            }
        },
    }

    @field_validator("conversation_history", mode="before")
    @classmethod
    def decode_history(cls, value: Any) -> Any:
        """The stream endpoint passes history as a JSON-encoded query parameter."""
        if isinstance(value, str):
            return json.loads(value) if value.strip() else []
        return value

    @field_validator("last_result", mode="before")
    @classmethod
    def decode_last_result(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value.strip() and value != "null" else None
        return value


class ChatResponse(ChatMessage):
    """Terminal bot message plus the conversation id it was appended to."""

    conversation_id: str


class StreamEvent(CamelModel):
    """One Server-Sent Event on the progressive chat channel."""

    type: Literal["thinking", "complete", "error"]
    step: str | None = None
    data: dict[str, Any] | None = None
    error: str | None = None
    is_error: bool | None = None


class TitleUpdateRequest(BaseModel):
    title: str | None = Field(
        None, max_length=120, description="Explicit title; generated from history when omitted"
    )


class SuggestionsResponse(CamelModel):
    get_started: list[str] = Field(default_factory=list)
    contextual: list[str] = Field(default_factory=list)
    people_also_asked: list[str] = Field(default_factory=list)


class SchemaResponse(CamelModel):
    database_id: str
    schema_text: str = Field(..., alias="schema")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""

    status: str = Field(..., description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Current timestamp (ISO 8601)")


class ReadinessResponse(BaseModel):
    """Response model for readiness check endpoint."""

    status: str = Field(..., description="Readiness status: 'ready' or 'not_ready'")
    version: str
    timestamp: str
    checks: dict[str, bool] = Field(..., description="Individual readiness checks")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    agent: str | None = Field(None, description="Agent that caused the error")
    recoverable: bool = Field(default=False)
