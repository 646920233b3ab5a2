"""
FastAPI Application

Main FastAPI application for QueryCompass with:
- Lifespan management for stores, database pools and the pipeline
- CORS middleware for frontend integration
- Global exception handlers for agent, connector and store errors
- Agent, conversation, database, suggestion and health endpoints

Usage:
    uvicorn querycompass.api.main:app --reload --port 8000
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from querycompass.api.routes import admin, agent, conversations, databases, health, suggestions
from querycompass.audit import AuditLogStore
from querycompass.config import get_settings
from querycompass.connectors.base import ConnectionError as ConnectorConnectionError
from querycompass.connectors.base import ConnectorError
from querycompass.constants import UNEXPECTED_ERROR_TEXT
from querycompass.conversations import ConversationNotFoundError, ConversationStore, StoreError
from querycompass.database import DatabasePoolManager, SchemaProvider
from querycompass.llm import LLMProviderFactory
from querycompass.models import AgentError, ErrorResponse
from querycompass.pipeline import QueryCompassPipeline
from querycompass.suggestions import SuggestionService

logger = logging.getLogger(__name__)

# Global state for pipeline and components
app_state = {
    "pipeline": None,
    "conversation_store": None,
    "audit_log": None,
    "pool_manager": None,
    "schema_provider": None,
    "suggestion_service": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for startup and shutdown.

    Initializes:
    - Conversation store and audit log (system database)
    - Target database pool manager and schema provider
    - Pipeline orchestrator
    - Suggestion service
    """
    config = get_settings()
    logger.info("Starting QueryCompass API server...")

    try:
        logger.info("Initializing target database pools...")
        pool_manager = DatabasePoolManager(config.database)
        schema_provider = SchemaProvider(pool_manager)
        app_state["pool_manager"] = pool_manager
        app_state["schema_provider"] = schema_provider
        if not pool_manager.database_ids():
            logger.warning("DATABASE_TARGETS is empty; no database can be queried.")

        if config.system_database.url:
            logger.info("Initializing conversation store...")
            conversation_store = ConversationStore()
            await conversation_store.initialize()
            app_state["conversation_store"] = conversation_store

            logger.info("Initializing audit log...")
            audit_log = AuditLogStore()
            try:
                await audit_log.initialize()
            except Exception as e:
                # The audit log is best-effort; log() drops entries while uninitialized.
                logger.warning(f"Audit log unavailable: {e}")
            app_state["audit_log"] = audit_log
        else:
            logger.warning("SYSTEM_DATABASE_URL not set; conversations and audit log disabled.")

        logger.info("Initializing pipeline orchestrator...")
        if app_state["conversation_store"] is not None:
            app_state["pipeline"] = QueryCompassPipeline(
                conversation_store=app_state["conversation_store"],
                audit_log=app_state["audit_log"],
                pool_manager=pool_manager,
                schema_provider=schema_provider,
            )
            app_state["suggestion_service"] = SuggestionService(
                conversation_store=app_state["conversation_store"],
                schema_provider=schema_provider,
                llm_provider=LLMProviderFactory.create_default_provider(config.llm, model_type="mini"),
            )
        else:
            logger.warning("Pipeline not initialized; the system database is missing.")

        logger.info("QueryCompass API server started successfully")

        yield  # Application runs here

    finally:
        logger.info("Shutting down QueryCompass API server...")

        for name in ("pool_manager", "conversation_store", "audit_log"):
            component = app_state.get(name)
            if component is None:
                continue
            try:
                await component.close()
                logger.info(f"Closed {name}")
            except Exception as e:
                logger.error(f"Error closing {name}: {e}")
            app_state[name] = None

        app_state["pipeline"] = None
        app_state["suggestion_service"] = None
        logger.info("QueryCompass API server shut down complete")


# Create FastAPI app
app = FastAPI(
    title="QueryCompass API",
    description="Natural language questions answered with verified, role-checked SQL",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AgentError)
async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    """Handle agent errors that escaped the pipeline."""
    logger.error(f"Agent error: {exc}", extra={"agent_error": exc.to_dict()})
    body = ErrorResponse(
        error="agent_error",
        message=str(exc),
        agent=exc.agent,
        recoverable=exc.recoverable,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(),
    )


@app.exception_handler(ConnectorConnectionError)
async def connection_error_handler(request: Request, exc: ConnectorConnectionError) -> JSONResponse:
    """Handle database connection errors."""
    logger.error(f"Database connection error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "connection_error",
            "message": "Database connection failed. Please try again later.",
        },
    )


@app.exception_handler(ConnectorError)
async def connector_error_handler(request: Request, exc: ConnectorError) -> JSONResponse:
    """Handle other connector faults."""
    logger.error(f"Connector error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "connector_error", "message": "Failed to read from the database."},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Conversation store faults fail the request."""
    logger.error(f"Conversation store error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"text": UNEXPECTED_ERROR_TEXT, "error": str(exc), "isError": True},
    )


@app.exception_handler(ConversationNotFoundError)
async def conversation_not_found_handler(
    request: Request, exc: ConversationNotFoundError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "not_found", "message": str(exc)},
    )


# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(agent.router, prefix="/api/v1", tags=["agent"])
app.include_router(conversations.router, prefix="/api/v1", tags=["conversations"])
app.include_router(databases.router, prefix="/api/v1", tags=["databases"])
app.include_router(suggestions.router, prefix="/api/v1", tags=["suggestions"])
app.include_router(admin.router, prefix="/api/v1", tags=["admin"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "QueryCompass API",
        "version": "0.1.0",
        "description": "Natural language questions answered with verified, role-checked SQL",
        "docs": "/docs",
    }
