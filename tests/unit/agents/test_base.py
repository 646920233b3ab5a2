"""Unit tests for BaseAgent retry and error handling."""

from unittest.mock import AsyncMock

import pytest

from querycompass.agents.base import BaseAgent, format_history
from querycompass.models import (
    AgentError,
    AgentInput,
    HistoryMessage,
    LLMError,
    TextReplyOutput,
    ValidationError,
)


class EchoAgent(BaseAgent):
    """Minimal agent that returns the completion as text."""

    def __init__(self, llm_provider, max_retries=None):
        super().__init__(name="EchoAgent", max_retries=max_retries)
        self.llm = llm_provider

    async def execute(self, input: AgentInput) -> TextReplyOutput:
        text = await self._complete(input.query)
        return TextReplyOutput(success=True, text=text, metadata=self._metadata)


class BrokenAgent(BaseAgent):
    def __init__(self, error: Exception):
        super().__init__(name="BrokenAgent", max_retries=2)
        self.error = error
        self.calls = 0

    async def execute(self, input: AgentInput) -> TextReplyOutput:
        self.calls += 1
        raise self.error


class TestBaseAgent:
    @pytest.mark.asyncio
    async def test_call_sets_metadata(self, mock_llm_provider):
        mock_llm_provider.set_response("hello")
        agent = EchoAgent(mock_llm_provider)

        output = await agent(AgentInput(query="hi"))

        assert output.text == "hello"
        assert output.metadata.agent_name == "EchoAgent"
        assert output.metadata.llm_calls == 1
        assert output.metadata.duration_ms is not None

    @pytest.mark.asyncio
    async def test_provider_failure_is_retried(self, mock_llm_provider, no_backoff):
        mock_llm_provider.set_responses([RuntimeError("503"), "recovered"])
        agent = EchoAgent(mock_llm_provider, max_retries=2)

        output = await agent(AgentInput(query="hi"))

        assert output.text == "recovered"
        assert mock_llm_provider.complete.await_count == 2
        BaseAgent._sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_provider_failure_raises_llm_error_after_retries(
        self, mock_llm_provider, no_backoff
    ):
        mock_llm_provider.set_responses([RuntimeError("down")] * 3)
        agent = EchoAgent(mock_llm_provider, max_retries=2)

        with pytest.raises(LLMError) as exc_info:
            await agent(AgentInput(query="hi"))

        assert exc_info.value.recoverable is True
        assert mock_llm_provider.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_non_recoverable_error_is_not_retried(self, no_backoff):
        agent = BrokenAgent(ValidationError("BrokenAgent", "bad input"))

        with pytest.raises(ValidationError):
            await agent(AgentInput(query="hi"))

        assert agent.calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, no_backoff):
        agent = BrokenAgent(KeyError("boom"))

        with pytest.raises(AgentError) as exc_info:
            await agent(AgentInput(query="hi"))

        assert exc_info.value.recoverable is False
        assert exc_info.value.context["error_type"] == "KeyError"
        assert agent.calls == 1

    @pytest.mark.asyncio
    async def test_missing_provider_is_an_error(self):
        agent = EchoAgent(None, max_retries=0)

        with pytest.raises(AgentError, match="No text-completion provider"):
            await agent(AgentInput(query="hi"))

    def test_max_retries_defaults_to_settings(self, monkeypatch):
        from querycompass.config import clear_settings_cache

        monkeypatch.setenv("LLM_MAX_RETRIES", "4")
        clear_settings_cache()

        agent = EchoAgent(AsyncMock())

        assert agent.max_retries == 4


def test_format_history_labels_speakers():
    history = [
        HistoryMessage(sender="user", text="show all customers"),
        HistoryMessage(sender="bot", text="Here are 4 customers."),
    ]

    assert format_history(history) == "User: show all customers\nBot: Here are 4 customers."


def test_format_history_empty():
    assert format_history([]) == ""
