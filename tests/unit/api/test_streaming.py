"""Unit tests for the Server-Sent Events channel."""

import json

import pytest

from querycompass.api.streaming import CONNECTED_COMMENT, SSEChannel, format_sse


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


def test_format_sse_encodes_one_data_frame():
    assert format_sse({"type": "thinking", "step": "Executing query..."}) == (
        'data: {"type": "thinking", "step": "Executing query..."}\n\n'
    )


class TestSSEChannel:
    def test_send_after_terminal_event_is_dropped(self):
        channel = SSEChannel()

        assert channel.send({"type": "thinking", "step": "Analyzing your question..."}) is True
        channel.complete({"conversationId": "c1"})

        assert channel.closed is True
        assert channel.send({"type": "thinking", "step": "late"}) is False

    def test_send_after_close_is_dropped(self):
        channel = SSEChannel()
        channel.close()

        assert channel.send({"type": "thinking", "step": "Executing query..."}) is False
        channel.error("too late")

    def test_error_event_is_flagged(self):
        channel = SSEChannel()

        channel.error("Conversation not found: c9")

        event = channel._queue.get_nowait()
        assert event == {"type": "error", "error": "Conversation not found: c9", "isError": True}

    @pytest.mark.asyncio
    async def test_thinking_callback_queues_step(self):
        channel = SSEChannel()

        await channel.thinking("thinking", {"step": "Generating SQL query..."})

        assert channel._queue.get_nowait() == {"type": "thinking", "step": "Generating SQL query..."}

    @pytest.mark.asyncio
    async def test_events_stop_after_complete(self):
        channel = SSEChannel()
        channel.send({"type": "thinking", "step": "Executing query..."})
        channel.complete({"conversationId": "c1"})

        frames = [frame async for frame in channel.events()]

        assert frames[0] == CONNECTED_COMMENT
        assert [_decode(frame)["type"] for frame in frames[1:]] == ["thinking", "complete"]

    @pytest.mark.asyncio
    async def test_events_stop_after_error(self):
        channel = SSEChannel()
        channel.error("An unexpected error occurred.")
        channel._queue.put_nowait({"type": "thinking", "step": "never delivered"})

        frames = [frame async for frame in channel.events()]

        assert [_decode(frame)["type"] for frame in frames[1:]] == ["error"]

    @pytest.mark.asyncio
    async def test_disconnect_closes_channel(self):
        channel = SSEChannel()
        events = channel.events()

        assert await events.__anext__() == CONNECTED_COMMENT
        await events.aclose()

        assert channel.closed is True
        assert channel.send({"type": "thinking", "step": "Executing query..."}) is False
