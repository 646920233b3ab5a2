"""Shared identifiers and fixed user-facing texts."""

from enum import Enum


class Intent(str, Enum):
    """Handling path chosen by the Router."""

    DATABASE_QUERY = "database_query"
    QUERY_REFINEMENT = "query_refinement"
    RESULT_INTERPRETER = "result_interpreter"
    GENERAL_CONVERSATION = "general_conversation"


class AuditAction(str, Enum):
    ROUTE = "route"
    VERIFY = "verify"
    EXECUTE = "execute"
    ADD_MESSAGE = "add-message"
    SECURITY_BLOCK = "security-block"
    AUTH = "auth"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    VIEWER = "viewer"


class SqlVersionReason(str, Enum):
    """Reasons recorded in a message's sqlVersions log besides refinement explanations."""

    INITIAL = "initial"
    REFINED = "refined"
    REGENERATED = "regenerated"


DEFAULT_CONVERSATION_TITLE = "New Chat"

INTENT_DETECTED_STEPS = {
    Intent.DATABASE_QUERY: "Database query detected",
    Intent.QUERY_REFINEMENT: "Query refinement detected",
    Intent.RESULT_INTERPRETER: "Result analysis detected",
    Intent.GENERAL_CONVERSATION: "General conversation detected",
}

STEP_ANALYZING = "Analyzing your question..."
STEP_ROUTING = "Determining request type..."
STEP_REFINING = "Refining previous query..."
STEP_REFINE_FALLBACK = "Refinement not possible, generating new query..."
STEP_GENERATING = "Generating SQL query..."
STEP_VERIFYING = "Verifying SQL safety..."
STEP_EXECUTING = "Executing query..."
STEP_VISUALIZING = "Creating visualization..."
STEP_INTERPRETING = "Analyzing previous results..."
STEP_CONVERSING = "Composing a response..."

NOTHING_TO_REFINE_TEXT = "I don't have a previous query to refine. Please run a query first."
UNSAFE_QUERY_TEXT = "I'm sorry, I cannot run that query. Reason: {reasoning}"
UNSAFE_REFINEMENT_TEXT = "The refined query doesn't look safe. Reason: {reasoning}"
EXECUTION_FAILED_TEXT = "Sorry, the query failed to execute."
MODIFICATION_DONE_TEXT = "Successfully executed {operation}. {row_count} row(s) were affected."
PERMISSION_DENIED_TEXT = "Permission denied. Only admins can modify data."
GENERATION_FAILED_TEXT = "Sorry, I couldn't produce a query for that request. Please try rephrasing it."
ASSISTANT_UNAVAILABLE_TEXT = "Sorry, I'm having trouble answering right now. Please try again."
NO_PREVIOUS_RESULT_TEXT = (
    "I'm sorry, there are no previous results to analyze. "
    "Please ask a new question to fetch some data first."
)
UNEXPECTED_ERROR_TEXT = "An unexpected error occurred."
