"""
Local LLM Provider

BaseLLMProvider for self-hosted model servers. Talks to Ollama's
/api/chat first and falls back to an OpenAI-compatible
/v1/chat/completions endpoint (vLLM, llama.cpp server).
"""

import logging

import httpx

from querycompass.llm.base import BaseLLMProvider
from querycompass.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """Text-completion provider for a local model server."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.0,
        max_tokens: int = 2048,
        timeout: int = 60,
    ):
        super().__init__(
            provider_name="local",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = httpx.AsyncClient(timeout=float(timeout))

    async def generate(self, request: LLMRequest) -> LLMResponse:
        request = self._apply_defaults(request)
        payload = {
            "model": request.model or self.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": False,
        }

        try:
            body = await self._post("/api/chat", payload)
            content = body.get("message", {}).get("content", "")
            prompt_tokens = body.get("prompt_eval_count", 0)
            completion_tokens = body.get("eval_count", 0)
        except httpx.HTTPError as exc:
            logger.debug(f"Ollama endpoint unavailable, trying OpenAI-compatible API: {exc}")
            body = await self._post("/v1/chat/completions", payload)
            content = body.get("choices", [{}])[0].get("message", {}).get("content", "")
            prompt_tokens = body.get("usage", {}).get("prompt_tokens", 0)
            completion_tokens = body.get("usage", {}).get("completion_tokens", 0)

        llm_response = LLMResponse(
            content=content or "",
            model=body.get("model", self.model),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason="stop",
            provider="local",
            metadata={"base_url": self.base_url},
        )
        self._log_response(llm_response)
        return llm_response

    async def _post(self, path: str, payload: dict) -> dict:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()
