"""
Agent Routes

Buffered and progressive (Server-Sent Events) delivery of one chat turn.
Both modes run the same pipeline turn; only the transport differs.
"""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from querycompass.api.auth import CurrentUserDep
from querycompass.api.streaming import SSE_HEADERS, SSEChannel
from querycompass.constants import UNEXPECTED_ERROR_TEXT
from querycompass.conversations.store import ConversationNotFoundError
from querycompass.models import ChatRequest, CurrentUser
from querycompass.pipeline import QueryCompassPipeline

logger = logging.getLogger(__name__)

router = APIRouter()

# Background turns outlive their response when the client disconnects.
_running_turns: set[asyncio.Task] = set()


def _get_pipeline() -> QueryCompassPipeline:
    from querycompass.api.main import app_state

    pipeline = app_state.get("pipeline")
    if pipeline is None:
        raise RuntimeError("Pipeline not initialized")
    return pipeline


def _ensure_known_database(database_id: str) -> None:
    from querycompass.api.main import app_state

    pool_manager = app_state.get("pool_manager")
    if pool_manager is not None and database_id not in pool_manager:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Database pool for '{database_id}' not found.",
        )


@router.post("/agent/chat")
async def chat(chat_request: ChatRequest, user: CurrentUserDep) -> JSONResponse:
    """
    Process one turn and return the terminal bot message.

    Returns:
        200 with {conversationId, sender, text, ...}; 403 with the same
        shape when the statement was refused for the caller's role
    """
    logger.info(
        "Chat request received",
        extra={"database_id": chat_request.database_id, "conversation_id": chat_request.conversation_id},
    )
    _ensure_known_database(chat_request.database_id)
    pipeline = _get_pipeline()

    try:
        result = await pipeline.run(chat_request, user)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    status_code = status.HTTP_403_FORBIDDEN if result.rejected else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=result.to_payload())


@router.get("/agent/chat/stream")
async def chat_stream(
    user: CurrentUserDep,
    prompt: str = Query(..., min_length=1),
    database_id: str = Query(..., alias="databaseId"),
    conversation_id: str | None = Query(None, alias="conversationId"),
    conversation_history: str | None = Query(None, alias="conversationHistory"),
    last_result: str | None = Query(None, alias="lastResult"),
) -> StreamingResponse:
    """
    Process one turn over Server-Sent Events.

    Emits ``: connected``, then ``{"type": "thinking", "step": ...}`` events,
    then exactly one ``complete`` (same data as the buffered response) or
    ``error`` event. History and lastResult arrive JSON-encoded.
    """
    try:
        chat_request = ChatRequest.model_validate(
            {
                "prompt": prompt,
                "databaseId": database_id,
                "conversationId": conversation_id,
                "conversationHistory": conversation_history or [],
                "lastResult": last_result,
            }
        )
    except (ValidationError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc

    _ensure_known_database(chat_request.database_id)
    pipeline = _get_pipeline()
    channel = SSEChannel()

    task = asyncio.create_task(_run_streaming_turn(pipeline, chat_request, user, channel))
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    return StreamingResponse(channel.events(), media_type="text/event-stream", headers=SSE_HEADERS)


async def _run_streaming_turn(
    pipeline: QueryCompassPipeline,
    chat_request: ChatRequest,
    user: CurrentUser,
    channel: SSEChannel,
) -> None:
    try:
        result = await pipeline.run_with_streaming(chat_request, user, event_callback=channel.thinking)
    except ConversationNotFoundError as exc:
        channel.error(str(exc))
    except Exception as exc:
        logger.error(f"Streaming turn failed: {exc}", exc_info=True)
        channel.error(UNEXPECTED_ERROR_TEXT)
    else:
        if result.rejected:
            # Role refusals end the stream the way the buffered 403 does.
            channel.error(result.message.text, data=result.to_payload())
        else:
            channel.complete(result.to_payload())
