"""
OpenAI LLM Provider

Chat Completions implementation of BaseLLMProvider.
"""

import logging

import openai
from openai import AsyncOpenAI

from querycompass.llm.base import BaseLLMProvider
from querycompass.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)

_FINISH_REASONS = {"stop", "length", "content_filter"}


class OpenAIProvider(BaseLLMProvider):
    """OpenAI text-completion provider using the async SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.0,
        max_tokens: int = 2048,
        timeout: int = 60,
    ):
        super().__init__(
            provider_name="openai",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, timeout=float(timeout))

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion with the Chat Completions API.

        Raises:
            openai.APIError: On API errors and timeouts
        """
        request = self._apply_defaults(request)
        try:
            response = await self.client.chat.completions.create(
                model=request.model or self.model,
                messages=[{"role": m.role, "content": m.content} for m in request.messages],
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        choice = response.choices[0]
        usage = response.usage
        llm_response = LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=LLMUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            finish_reason=choice.finish_reason if choice.finish_reason in _FINISH_REASONS else "stop",
            provider="openai",
            metadata={"id": response.id},
        )
        self._log_response(llm_response)
        return llm_response
