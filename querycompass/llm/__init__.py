"""
LLM Provider Module

Text-completion capability and its providers (Google Gemini, OpenAI, local).

Usage:
    from querycompass.llm import LLMProviderFactory
    from querycompass.config import get_settings

    provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    text = await provider.complete("Hello!")
"""

from querycompass.llm.base import BaseLLMProvider, TextCompletion
from querycompass.llm.factory import LLMProviderFactory
from querycompass.llm.google import GoogleProvider
from querycompass.llm.local import LocalProvider
from querycompass.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from querycompass.llm.openai import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "TextCompletion",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "LLMProviderFactory",
    "GoogleProvider",
    "LocalProvider",
    "OpenAIProvider",
]
