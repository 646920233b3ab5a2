"""
LLM Provider Factory

Creates text-completion providers from configuration, with
per-agent provider overrides.
"""

import logging
from typing import Literal

from querycompass.config import LLMSettings
from querycompass.llm.base import BaseLLMProvider
from querycompass.llm.google import GoogleProvider
from querycompass.llm.local import LocalProvider
from querycompass.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)

ModelType = Literal["main", "mini"]


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    PROVIDERS = {
        "google": GoogleProvider,
        "openai": OpenAIProvider,
        "local": LocalProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: str,
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """
        Create an LLM provider instance.

        Raises:
            ValueError: If the provider type is unknown or its API key is missing
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS.keys())}"
            )

        logger.info(
            f"Creating {provider_type} provider with {model_type} model",
            extra={"provider": provider_type, "model_type": model_type},
        )
        common = {
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "timeout": config.timeout,
        }

        if provider_type == "google":
            if not config.google_api_key:
                raise ValueError("Google API key is required but not configured")
            model = config.google_model if model_type == "main" else config.google_model_mini
            return GoogleProvider(api_key=config.google_api_key, model=model, **common)

        if provider_type == "openai":
            if not config.openai_api_key:
                raise ValueError("OpenAI API key is required but not configured")
            model = config.openai_model if model_type == "main" else config.openai_model_mini
            return OpenAIProvider(api_key=config.openai_api_key, model=model, **common)

        # Local servers expose one model; model_type is accepted for a uniform call shape.
        return LocalProvider(base_url=config.local_base_url, model=config.local_model, **common)

    @staticmethod
    def create_default_provider(
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """Create the provider named by default_provider."""
        return LLMProviderFactory.create_provider(config.default_provider, config, model_type)

    @staticmethod
    def create_agent_provider(
        agent_name: str,
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """
        Create the provider for one agent.

        Uses the `<agent_name>_provider` override (e.g. router_provider)
        when set, otherwise default_provider.
        """
        override = getattr(config, f"{agent_name}_provider", None)
        provider_type = override or config.default_provider
        logger.debug(
            f"Creating provider for {agent_name} agent",
            extra={"agent": agent_name, "provider": provider_type, "has_override": bool(override)},
        )
        return LLMProviderFactory.create_provider(provider_type, config, model_type)
