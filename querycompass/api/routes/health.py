"""
Health Check Routes

FastAPI endpoints for service health and readiness checks.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from querycompass.models import HealthResponse, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> JSONResponse:
    """
    Liveness plus readiness of the service dependencies.

    Checks:
    - System database (conversations, audit log) answers a ping
    - Pipeline is initialized, which implies the LLM providers were configured

    Returns:
        200 OK if all checks pass
        503 Service Unavailable if any check fails
    """
    from querycompass.api.main import app_state

    checks: dict[str, bool] = {}

    store = app_state.get("conversation_store")
    try:
        checks["system_database"] = store is not None and await store.ping()
    except Exception as e:
        checks["system_database"] = False
        logger.warning(f"System database check: FAILED ({e})")

    checks["pipeline"] = app_state.get("pipeline") is not None
    if not checks["pipeline"]:
        logger.warning("Pipeline check: FAILED (not initialized)")

    all_ready = all(checks.values())
    response_data = ReadinessResponse(
        status="ready" if all_ready else "not_ready",
        version="0.1.0",
        timestamp=datetime.now(UTC).isoformat(),
        checks=checks,
    )
    status_code = status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=response_data.model_dump())


@router.get("/health/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Always 200 while the process is serving requests."""
    return HealthResponse(
        status="healthy",
        version="0.1.0",
        timestamp=datetime.now(UTC).isoformat(),
    )
