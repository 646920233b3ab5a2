"""
RouterAgent: Intent classification.

Asks the completion capability which of four handling paths a turn
needs and decodes the single-field verdict {"tool": ...}. Anything that
does not decode to a known intent resolves to general_conversation, so
an unclassifiable request never reaches the database.
"""

import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.parsing import parse_json_object
from querycompass.config import get_settings
from querycompass.constants import Intent
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import RouterAgentInput, RouterAgentOutput
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

_VALID_INTENTS = {intent.value: intent for intent in Intent}


class RouterAgent(BaseAgent):
    """Classify (utterance, history) into an Intent. Uses the mini model."""

    def __init__(self, llm_provider=None):
        super().__init__(name="RouterAgent")
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_agent_provider(
                "router", get_settings().llm, model_type="mini"
            )
        self.llm = llm_provider
        self.prompts = PromptLoader()

    async def execute(self, input: RouterAgentInput) -> RouterAgentOutput:
        prompt = self.prompts.render(
            "agents/router.md",
            prompt=input.query,
            history=format_history(input.conversation_history),
        )
        response = await self._complete(prompt)

        intent, parse_failed = self._parse_verdict(response)
        logger.info(
            f"[{self.name}] Routed to {intent.value}",
            extra={"intent": intent.value, "parse_failed": parse_failed},
        )
        return RouterAgentOutput(
            success=not parse_failed,
            intent=intent,
            parse_failed=parse_failed,
            metadata=self._metadata,
        )

    def _parse_verdict(self, content: str) -> tuple[Intent, bool]:
        result = parse_json_object(content)
        if not result.ok:
            logger.warning(f"[{self.name}] Malformed verdict: {result.error}")
            return Intent.GENERAL_CONVERSATION, True

        tool = result.value.get("tool")
        intent = _VALID_INTENTS.get(tool) if isinstance(tool, str) else None
        if intent is None:
            logger.warning(f"[{self.name}] Unexpected tool in verdict: {tool!r}")
            return Intent.GENERAL_CONVERSATION, True
        return intent, False
