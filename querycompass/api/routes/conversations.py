"""Routes for the caller's persisted conversations."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from querycompass.api.auth import CurrentUserDep
from querycompass.conversations.store import ConversationStore
from querycompass.models import TitleUpdateRequest
from querycompass.pipeline import QueryCompassPipeline

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_conversation_store() -> ConversationStore:
    from querycompass.api.main import app_state

    store = app_state.get("conversation_store")
    if store is None:
        raise RuntimeError("Conversation store not initialized")
    return store


def _get_pipeline() -> QueryCompassPipeline:
    from querycompass.api.main import app_state

    pipeline = app_state.get("pipeline")
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Title generation is not available.",
        )
    return pipeline


def _not_found(conversation_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Conversation not found: {conversation_id}",
    )


@router.get("/conversations")
async def list_conversations(user: CurrentUserDep, limit: int = 50) -> list[dict[str, Any]]:
    """List the caller's conversations, newest first."""
    store = _get_conversation_store()
    summaries = await store.list_conversations(user_id=user.user_id, limit=limit)
    return [summary.to_payload() for summary in summaries]


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, user: CurrentUserDep) -> dict[str, Any]:
    """Return one conversation with all of its messages."""
    store = _get_conversation_store()
    conversation = await store.get_conversation(conversation_id, user_id=user.user_id)
    if conversation is None:
        raise _not_found(conversation_id)
    return conversation.to_payload()


@router.put("/conversations/{conversation_id}/title")
async def update_title(
    conversation_id: str,
    user: CurrentUserDep,
    payload: TitleUpdateRequest | None = None,
) -> dict[str, str]:
    """
    Name a conversation that is still called "New Chat".

    Uses the title from the body when given, otherwise generates one from
    the conversation's messages. Returns 409 once a title has been set.
    """
    store = _get_conversation_store()
    conversation = await store.get_conversation(conversation_id, user_id=user.user_id)
    if conversation is None:
        raise _not_found(conversation_id)
    if not conversation.has_default_title:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conversation already has a title.",
        )

    title = payload.title.strip() if payload and payload.title else None
    if not title:
        title = await _get_pipeline().generate_title(conversation)
    if not title:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not generate a title right now.",
        )

    updated = await store.set_title_if_default(conversation_id, title, user_id=user.user_id)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conversation already has a title.",
        )
    logger.info("Conversation titled", extra={"conversation_id": conversation_id})
    return {"id": conversation_id, "title": title}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, user: CurrentUserDep) -> dict[str, bool]:
    """Delete one of the caller's conversations."""
    store = _get_conversation_store()
    deleted = await store.delete_conversation(conversation_id, user_id=user.user_id)
    if not deleted:
        raise _not_found(conversation_id)
    return {"ok": True, "deleted": True}
