"""Suggestion routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from querycompass.api.auth import CurrentUserDep
from querycompass.models import SuggestionsResponse
from querycompass.suggestions import SuggestionService

router = APIRouter()


def _get_suggestion_service() -> SuggestionService:
    from querycompass.api.main import app_state

    service = app_state.get("suggestion_service")
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Suggestions are unavailable.",
        )
    return service


@router.get("/suggestions/{database_id}")
async def get_suggestions(
    database_id: str,
    user: CurrentUserDep,
    conversation_id: str | None = Query(None, alias="conversationId"),
) -> dict[str, list[str]]:
    """Get-started, contextual and people-also-asked questions for a database."""
    service = _get_suggestion_service()
    suggestions = await service.get_all(
        database_id, user_id=user.user_id, conversation_id=conversation_id
    )
    return SuggestionsResponse(**suggestions).to_payload()
