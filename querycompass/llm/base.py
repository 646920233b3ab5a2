"""
Base LLM Provider

The text-completion capability consumed by every agent, and the abstract
provider class implementing it for Google, OpenAI and local servers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from querycompass.llm.models import LLMMessage, LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


@runtime_checkable
class TextCompletion(Protocol):
    """Prompt in, completion text out. May be slow and may return malformed text."""

    async def complete(self, prompt: str, *, temperature: float | None = None) -> str:
        ...  # pragma: no cover - protocol


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Subclasses implement generate() against their SDK; complete() adapts it
    to the single-prompt TextCompletion interface the agents use.

    Attributes:
        provider_name: Unique identifier for this provider
        temperature: Default sampling temperature
        max_tokens: Default maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.0,
        max_tokens: int = 2048,
        timeout: int = 60,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider",
            extra={
                "provider": provider_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion from the provider.

        Raises:
            Exception: Provider-specific errors (API errors, timeouts, etc.)
        """
        pass  # pragma: no cover - abstract method

    async def complete(self, prompt: str, *, temperature: float | None = None) -> str:
        """Send one user prompt and return the raw completion text."""
        request = LLMRequest(
            messages=[LLMMessage(role="user", content=prompt)],
            temperature=temperature,
        )
        response = await self.generate(request)
        return response.content

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        """Fill temperature and max_tokens from provider defaults."""
        if request.temperature is None:
            request.temperature = self.temperature
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens
        return request

    def _log_response(self, response: LLMResponse) -> None:
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "total_tokens": response.usage.total_tokens,
                "finish_reason": response.finish_reason,
            },
        )
