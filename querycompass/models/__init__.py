"""
QueryCompass Models Module

Pydantic models for type-safe data validation throughout the application.

Available Models:
    Agent Models: AgentInput, AgentOutput, AgentMetadata, the AgentError
        hierarchy and the per-agent input/output pairs.
    Conversation Models: Conversation, ChatMessage, HistoryMessage,
        SqlVersion, ExecutionMetadata, VisualizationPackage.
    API Models: ChatRequest, ChatResponse, StreamEvent and friends.

Usage:
    from querycompass.models import ChatMessage, RouterAgentInput
"""

from querycompass.models.agent import (
    AgentError,
    AgentInput,
    AgentMetadata,
    AgentOutput,
    DatabaseError,
    ExecutionResult,
    LLMError,
    PermissionDeniedError,
    QueryRefinerInput,
    QueryRefinerOutput,
    RefinementResult,
    ResultInterpreterInput,
    RouterAgentInput,
    RouterAgentOutput,
    SQLExecutorInput,
    SQLExecutorOutput,
    SQLGenerationError,
    SQLGeneratorInput,
    SQLGeneratorOutput,
    SQLVerifierInput,
    SQLVerifierOutput,
    TextReplyOutput,
    TitleGeneratorOutput,
    ValidationError,
    VerificationResult,
    VisualizationInput,
    VisualizationOutput,
)
from querycompass.models.api import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    ReadinessResponse,
    SchemaResponse,
    StreamEvent,
    SuggestionsResponse,
    TitleUpdateRequest,
)
from querycompass.models.audit import AuditLogEntry
from querycompass.models.auth import CurrentUser
from querycompass.models.conversation import (
    ChatMessage,
    Conversation,
    ConversationSummary,
    ExecutionMetadata,
    HistoryMessage,
    SqlVersion,
    VisualizationPackage,
)

__all__ = [
    # Agent
    "AgentError",
    "AgentInput",
    "AgentMetadata",
    "AgentOutput",
    "DatabaseError",
    "ExecutionResult",
    "LLMError",
    "PermissionDeniedError",
    "QueryRefinerInput",
    "QueryRefinerOutput",
    "RefinementResult",
    "ResultInterpreterInput",
    "RouterAgentInput",
    "RouterAgentOutput",
    "SQLExecutorInput",
    "SQLExecutorOutput",
    "SQLGenerationError",
    "SQLGeneratorInput",
    "SQLGeneratorOutput",
    "SQLVerifierInput",
    "SQLVerifierOutput",
    "TextReplyOutput",
    "TitleGeneratorOutput",
    "ValidationError",
    "VerificationResult",
    "VisualizationInput",
    "VisualizationOutput",
    # API
    "ChatRequest",
    "ChatResponse",
    "ErrorResponse",
    "HealthResponse",
    "ReadinessResponse",
    "SchemaResponse",
    "StreamEvent",
    "SuggestionsResponse",
    "TitleUpdateRequest",
    # Conversation / audit / auth
    "AuditLogEntry",
    "ChatMessage",
    "Conversation",
    "ConversationSummary",
    "CurrentUser",
    "ExecutionMetadata",
    "HistoryMessage",
    "SqlVersion",
    "VisualizationPackage",
]
