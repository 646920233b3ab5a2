"""TitleGeneratorAgent: short conversation titles from history."""

import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.config import get_settings
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import AgentInput, TitleGeneratorOutput
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 60
_QUOTES = "\"'`“”‘’"
_TRAILING_PUNCTUATION = ".!?:;,"


def clean_title(raw: str) -> str | None:
    """First line, quotes and trailing punctuation stripped, capped at 60 chars."""
    lines = [line.strip() for line in (raw or "").splitlines() if line.strip()]
    if not lines:
        return None
    title = lines[0].strip(_QUOTES).strip()
    if title.lower().startswith("title:"):
        title = title[len("title:"):].strip().strip(_QUOTES).strip()
    title = title.rstrip(_TRAILING_PUNCTUATION).strip()
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH].rstrip()
    return title or None


class TitleGeneratorAgent(BaseAgent):
    """Generate a title; ``input.query`` is unused, history carries the content."""

    def __init__(self, llm_provider=None):
        super().__init__(name="TitleGeneratorAgent", max_retries=0)
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_default_provider(
                get_settings().llm, model_type="mini"
            )
        self.llm = llm_provider
        self.prompts = PromptLoader()

    async def execute(self, input: AgentInput) -> TitleGeneratorOutput:
        prompt = self.prompts.render(
            "agents/title_generator.md",
            history=format_history(input.conversation_history),
        )
        title = clean_title(await self._complete(prompt, temperature=0.3))
        logger.debug(f"[{self.name}] Generated title", extra={"has_title": title is not None})
        return TitleGeneratorOutput(success=title is not None, title=title, metadata=self._metadata)
