"""
Google LLM Provider

Gemini implementation of BaseLLMProvider using the google-generativeai SDK.
This is the default text-completion provider.
"""

import logging
import warnings
from typing import Any

with warnings.catch_warnings():
    warnings.simplefilter("ignore", FutureWarning)
    import google.generativeai as genai

from querycompass.llm.base import BaseLLMProvider
from querycompass.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class GoogleProvider(BaseLLMProvider):
    """Google (Gemini) text-completion provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.0,
        max_tokens: int = 2048,
        timeout: int = 60,
    ):
        super().__init__(
            provider_name="google",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.model = model
        genai.configure(api_key=api_key)
        logger.info(f"Google provider initialized with model: {model}", extra={"model": model})

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate a completion with the Gemini API."""
        request = self._apply_defaults(request)
        model_name = request.model or self.model
        client = genai.GenerativeModel(model_name)

        # Gemini takes a single prompt; system text is folded in ahead of the turns.
        prompt = "\n\n".join(
            msg.content if msg.role == "user" else f"{msg.role.capitalize()}: {msg.content}"
            for msg in request.messages
        )

        response = await client.generate_content_async(
            prompt,
            generation_config=genai.types.GenerationConfig(
                temperature=request.temperature,
                max_output_tokens=request.max_tokens,
            ),
            request_options={"timeout": self.timeout},
        )
        text = self._extract_response_text(response)
        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = int(getattr(usage, "prompt_token_count", 0) or 0)
        completion_tokens = int(getattr(usage, "candidates_token_count", 0) or 0)

        llm_response = LLMResponse(
            content=text,
            model=model_name,
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=self._extract_finish_reason(response),
            provider="google",
        )
        self._log_response(llm_response)
        return llm_response

    @staticmethod
    def _extract_response_text(response: Any) -> str:
        # response.text raises when the candidate was blocked
        try:
            text = response.text
        except (ValueError, AttributeError):
            return ""
        return text if isinstance(text, str) else str(text or "")

    @staticmethod
    def _extract_finish_reason(response: Any) -> str:
        candidates = getattr(response, "candidates", None) or []
        raw = str(getattr(candidates[0], "finish_reason", "") if candidates else "").lower()
        if "max_tokens" in raw or "length" in raw:
            return "length"
        if any(token in raw for token in ("safety", "blocked", "recitation")):
            return "content_filter"
        return "stop"
