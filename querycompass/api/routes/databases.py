"""Target database routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from querycompass.api.auth import CurrentUserDep
from querycompass.connectors.base import ConnectorError
from querycompass.database.manager import DatabasePoolManager, UnknownDatabaseError
from querycompass.database.schema import SchemaProvider
from querycompass.models import SchemaResponse

router = APIRouter()


def _get_manager() -> DatabasePoolManager:
    from querycompass.api.main import app_state

    manager = app_state.get("pool_manager")
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No target databases are configured. Set DATABASE_TARGETS.",
        )
    return manager


def _get_schema_provider() -> SchemaProvider:
    from querycompass.api.main import app_state

    return app_state.get("schema_provider") or SchemaProvider(_get_manager())


@router.get("/databases")
async def list_databases(user: CurrentUserDep) -> dict[str, list[str]]:
    """Registered target database ids."""
    return {"databases": _get_manager().database_ids()}


@router.get("/databases/{database_id}/schema")
async def get_database_schema(database_id: str, user: CurrentUserDep) -> dict[str, str]:
    """Schema description text, one line per table."""
    provider = _get_schema_provider()
    try:
        schema = await provider.get_schema(database_id)
    except UnknownDatabaseError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConnectorError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Failed to read schema: {exc}",
        ) from exc
    return SchemaResponse(database_id=database_id, schema_text=schema).to_payload()
