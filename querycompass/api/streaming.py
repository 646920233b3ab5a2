"""
Server-Sent Events helpers.

An SSEChannel decouples the pipeline from the HTTP response: the pipeline
pushes events into a queue, the response drains it. Once the channel is
closed (terminal event sent or client gone) further pushes are dropped.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi.encoders import jsonable_encoder

from querycompass.models import StreamEvent

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
CONNECTED_COMMENT = ": connected\n\n"
TERMINAL_EVENTS = frozenset({"complete", "error"})


def format_sse(payload: dict[str, Any]) -> str:
    """Encode one event as an SSE data frame."""
    return f"data: {json.dumps(jsonable_encoder(payload))}\n\n"


class SSEChannel:
    """One progressive turn's event stream."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, payload: dict[str, Any]) -> bool:
        """Queue an event. Returns False when the channel is already closed."""
        if self._closed:
            logger.debug(f"Dropped {payload.get('type')} event on closed channel")
            return False
        self._queue.put_nowait(payload)
        if payload.get("type") in TERMINAL_EVENTS:
            self._closed = True
        return True

    async def thinking(self, event_type: str, event_data: dict[str, Any]) -> None:
        """Pipeline event callback."""
        self.send({"type": event_type, **event_data})

    def complete(self, data: dict[str, Any]) -> None:
        self.send(StreamEvent(type="complete", data=data).to_payload())

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Terminal failure; ``data`` carries the bot message when there is one."""
        self.send(StreamEvent(type="error", error=message, data=data, is_error=True).to_payload())

    def close(self) -> None:
        self._closed = True

    async def events(self) -> AsyncIterator[str]:
        """Yield encoded frames until the terminal event has been sent."""
        try:
            yield CONNECTED_COMMENT
            while True:
                payload = await self._queue.get()
                yield format_sse(payload)
                if payload.get("type") in TERMINAL_EVENTS:
                    break
        finally:
            # Client disconnects cancel this generator; the turn keeps running.
            self.close()
