"""ResultInterpreterAgent: answer questions about the previously shown result."""

import json
import logging

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.visualization import mask_sample
from querycompass.config import get_settings
from querycompass.constants import NO_PREVIOUS_RESULT_TEXT
from querycompass.llm.factory import LLMProviderFactory
from querycompass.models import ResultInterpreterInput, TextReplyOutput
from querycompass.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


class ResultInterpreterAgent(BaseAgent):
    """
    Explain or analyze the last result the client holds.

    Only the result's metadata and its bounded sample are sent to the
    provider, with sensitive column values replaced by placeholders.
    Without a previous result no completion call is made.
    """

    def __init__(self, llm_provider=None, sensitive_columns: list[str] | None = None):
        super().__init__(name="ResultInterpreterAgent")
        if llm_provider is None:
            llm_provider = LLMProviderFactory.create_default_provider(get_settings().llm)
        self.llm = llm_provider
        self.sensitive_columns = (
            sensitive_columns
            if sensitive_columns is not None
            else get_settings().pipeline.sensitive_columns
        )
        self.prompts = PromptLoader()

    async def execute(self, input: ResultInterpreterInput) -> TextReplyOutput:
        if not input.last_result:
            return TextReplyOutput(success=True, text=NO_PREVIOUS_RESULT_TEXT, metadata=self._metadata)

        sample = input.last_result.get("maskedSample") or []
        result_json = json.dumps(
            {
                "metadata": input.last_result.get("executionMetadata"),
                "dataSample": mask_sample(sample, self.sensitive_columns),
            },
            indent=2,
            ensure_ascii=False,
            default=str,
        )
        prompt = self.prompts.render(
            "agents/result_interpreter.md",
            prompt=input.query,
            history=format_history(input.conversation_history),
            result_json=result_json,
        )
        text = (await self._complete(prompt)).strip()
        return TextReplyOutput(success=True, text=text, metadata=self._metadata)
