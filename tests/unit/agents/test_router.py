"""Unit tests for RouterAgent."""

import pytest

from querycompass.agents.router import RouterAgent
from querycompass.constants import Intent
from querycompass.models import HistoryMessage, RouterAgentInput


class TestRouterAgent:
    @pytest.fixture
    def router(self, mock_llm_provider):
        return RouterAgent(llm_provider=mock_llm_provider)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("intent", list(Intent))
    async def test_routes_each_tool(self, router, mock_llm_provider, intent):
        mock_llm_provider.set_response(f'{{"tool": "{intent.value}"}}')

        output = await router(RouterAgentInput(query="anything"))

        assert output.intent is intent
        assert output.parse_failed is False
        assert output.success is True

    @pytest.mark.asyncio
    async def test_malformed_verdict_defaults_to_general_conversation(
        self, router, mock_llm_provider
    ):
        mock_llm_provider.set_response("database_query")

        output = await router(RouterAgentInput(query="show all customers"))

        assert output.intent is Intent.GENERAL_CONVERSATION
        assert output.parse_failed is True
        assert output.success is False

    @pytest.mark.asyncio
    async def test_unknown_tool_defaults_to_general_conversation(self, router, mock_llm_provider):
        mock_llm_provider.set_response('{"tool": "drop_everything"}')

        output = await router(RouterAgentInput(query="delete all orders"))

        assert output.intent is Intent.GENERAL_CONVERSATION
        assert output.parse_failed is True

    @pytest.mark.asyncio
    async def test_missing_tool_defaults_to_general_conversation(self, router, mock_llm_provider):
        mock_llm_provider.set_response('{"intent": "database_query"}')

        output = await router(RouterAgentInput(query="show all customers"))

        assert output.intent is Intent.GENERAL_CONVERSATION
        assert output.parse_failed is True

    @pytest.mark.asyncio
    async def test_extra_fields_are_ignored(self, router, mock_llm_provider):
        mock_llm_provider.set_response('{"tool": "query_refinement", "confidence": 0.9}')

        output = await router(RouterAgentInput(query="only those in CA"))

        assert output.intent is Intent.QUERY_REFINEMENT
        assert output.parse_failed is False

    @pytest.mark.asyncio
    async def test_prompt_includes_utterance_and_history(self, router, mock_llm_provider):
        mock_llm_provider.set_response('{"tool": "query_refinement"}')

        await router(
            RouterAgentInput(
                query="only those in CA",
                conversation_history=[HistoryMessage(sender="user", text="show all customers")],
            )
        )

        prompt = mock_llm_provider.prompts[0]
        assert "only those in CA" in prompt
        assert "User: show all customers" in prompt
