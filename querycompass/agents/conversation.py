"""GeneralConversationAgent: replies to turns that need no data."""

import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.config import get_settings
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import AgentInput, TextReplyOutput
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


class GeneralConversationAgent(BaseAgent):
    def __init__(self, llm_provider=None):
        super().__init__(name="GeneralConversationAgent")
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_default_provider(
                get_settings().llm, model_type="mini"
            )
        self.llm = llm_provider
        self.prompts = PromptLoader()

    async def execute(self, input: AgentInput) -> TextReplyOutput:
        prompt = self.prompts.render(
            "agents/general_conversation.md",
            prompt=input.query,
            history=format_history(input.conversation_history),
        )
        text = (await self._complete(prompt, temperature=0.7)).strip()
        return TextReplyOutput(success=True, text=text, metadata=self._metadata)
