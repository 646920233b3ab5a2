"""
Agent I/O Models

Pydantic models for agent inputs, outputs, and error handling.
Every agent in the pipeline extends these base models so the
orchestrator can treat them uniformly.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from querycompass.constants import Intent
from querycompass.models.auth import CurrentUser
from querycompass.models.conversation import (
    ExecutionMetadata,
    HistoryMessage,
    VisualizationPackage,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AgentMetadata(BaseModel):
    """Metadata about agent execution."""

    agent_name: str
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    duration_ms: float | None = None
    llm_calls: int = 0
    error: str | None = None

    model_config = ConfigDict(frozen=False)

    def mark_complete(self) -> None:
        """Mark execution as complete and calculate duration."""
        self.completed_at = _utcnow()
        delta = self.completed_at - self.started_at
        self.duration_ms = delta.total_seconds() * 1000


class AgentInput(BaseModel):
    """
    Base input model for all agents.

    The user's utterance and the conversation history travel with every
    call; agents extend this with their specific fields.
    """

    query: str = Field(..., description="User's natural language utterance")
    conversation_history: list[HistoryMessage] = Field(
        default_factory=list, description="Previous turns of the conversation"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "query": "show all customers",
                "conversation_history": [{"sender": "user", "text": "hi"}],
            }
        }
    )


class AgentOutput(BaseModel):
    """Base output model for all agents."""

    success: bool = Field(..., description="Whether the agent produced a usable result")
    metadata: AgentMetadata = Field(..., description="Execution metadata")


class AgentError(Exception):
    """
    Custom exception for agent execution errors.

    Attributes:
        agent: Name of the agent that raised the error
        message: Error description
        recoverable: Whether the call may be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        agent: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{agent}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/API responses."""
        return {
            "agent": self.agent,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class ValidationError(AgentError):
    """Invalid agent input (not recoverable)."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=False, context=context)


class LLMError(AgentError):
    """Text-completion call failed (recoverable with retry)."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=True, context=context)


class DatabaseError(AgentError):
    """Error during database operation outside statement execution."""

    def __init__(
        self,
        agent: str,
        message: str,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(agent, message, recoverable=recoverable, context=context)


class SQLGenerationError(AgentError):
    """The generator produced no usable statement."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=False, context=context)


class PermissionDeniedError(AgentError):
    """A modification statement was attempted by a non-admin actor."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=False, context=context)


# ============================================================================
# Router
# ============================================================================


class RouterAgentInput(AgentInput):
    pass


class RouterAgentOutput(AgentOutput):
    intent: Intent = Field(..., description="Resolved handling path")
    parse_failed: bool = Field(
        default=False, description="True when the verdict could not be decoded"
    )


# ============================================================================
# SQL Generator / Refiner / Verifier
# ============================================================================


class SQLGeneratorInput(AgentInput):
    database_id: str = Field(..., description="Target database identifier")


class SQLGeneratorOutput(AgentOutput):
    sql: str = Field(..., description="Complete SQL statement with fencing stripped")


class RefinementResult(BaseModel):
    """Outcome of an attempt to patch a previous statement."""

    sql: str | None = Field(None, description="Patched statement when was_modified")
    explanation: str = Field(default="", description="What was changed, or why not")
    was_modified: bool = Field(default=False)


class QueryRefinerInput(AgentInput):
    database_id: str
    previous_sql: str = Field(..., description="Most recently executed statement")


class QueryRefinerOutput(AgentOutput):
    refinement: RefinementResult
    parse_failed: bool = False


class VerificationResult(BaseModel):
    """The Verifier's verdict on a candidate statement."""

    is_safe: bool = Field(default=False)
    reasoning: str = Field(default="")
    corrected_sql: str | None = Field(None, description="Replacement statement to run instead")

    def final_sql(self, candidate_sql: str) -> str:
        """Return the statement that should actually run."""
        return self.corrected_sql or candidate_sql


class SQLVerifierInput(AgentInput):
    database_id: str
    candidate_sql: str


class SQLVerifierOutput(AgentOutput):
    verification: VerificationResult
    parse_failed: bool = False


# ============================================================================
# SQL Executor
# ============================================================================


class ExecutionResult(BaseModel):
    """
    Tagged outcome of one statement execution.

    Exactly one of these shapes is populated:
        - failure: error/details set
        - modification: is_modification with row_count and operation
        - read: execution_metadata with columns/result_hash plus a bounded sample
    """

    is_modification: bool = False
    execution_metadata: ExecutionMetadata | None = None
    sample: list[dict[str, Any]] | None = None
    error: str | None = None
    details: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class SQLExecutorInput(BaseModel):
    sql: str = Field(..., description="Verified statement to run")
    database_id: str
    user: CurrentUser = Field(..., description="Acting user, used for the RBAC gate")


class SQLExecutorOutput(AgentOutput):
    execution: ExecutionResult


# ============================================================================
# Visualization Composer
# ============================================================================


class VisualizationInput(AgentInput):
    sql: str
    execution_metadata: ExecutionMetadata
    sample: list[dict[str, Any]] = Field(default_factory=list)


class VisualizationOutput(AgentOutput):
    vis_package: VisualizationPackage
    parse_failed: bool = False


# ============================================================================
# Lightweight handlers
# ============================================================================


class ResultInterpreterInput(AgentInput):
    last_result: dict[str, Any] | None = Field(
        None, description="Metadata and data sample of the previous result, supplied by the client"
    )


class TextReplyOutput(AgentOutput):
    text: str


class TitleGeneratorOutput(AgentOutput):
    title: str | None = None
