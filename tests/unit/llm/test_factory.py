"""
Tests for LLM Provider Factory.

Tests provider creation, configuration, and agent-specific overrides.
"""

import pytest

from querycompass.config import LLMSettings
from querycompass.llm.factory import LLMProviderFactory
from querycompass.llm.google import GoogleProvider
from querycompass.llm.local import LocalProvider
from querycompass.llm.openai import OpenAIProvider


@pytest.fixture
def mock_config():
    """LLM configuration with every provider configured."""
    return LLMSettings(
        default_provider="google",
        verifier_provider="openai",
        router_provider="local",
        google_api_key="test-google-key-1234567890",
        google_model="gemini-2.5-flash",
        google_model_mini="gemini-2.5-flash-lite",
        openai_api_key="sk-test-openai-key-1234567890",
        openai_model="gpt-4o",
        openai_model_mini="gpt-4o-mini",
        local_base_url="http://localhost:11434/",
        local_model="llama3.1:8b",
        temperature=0.0,
        max_tokens=1500,
        timeout=20,
    )


class TestProviderRegistry:
    def test_provider_classes(self):
        assert LLMProviderFactory.PROVIDERS == {
            "google": GoogleProvider,
            "openai": OpenAIProvider,
            "local": LocalProvider,
        }

    def test_unknown_provider_raises(self, mock_config):
        with pytest.raises(ValueError, match="Unknown provider type: anthropic"):
            LLMProviderFactory.create_provider("anthropic", mock_config)


class TestCreateProvider:
    def test_google_main_and_mini(self, mock_config):
        main = LLMProviderFactory.create_provider("google", mock_config)
        mini = LLMProviderFactory.create_provider("google", mock_config, model_type="mini")

        assert isinstance(main, GoogleProvider)
        assert main.model == "gemini-2.5-flash"
        assert mini.model == "gemini-2.5-flash-lite"
        assert main.max_tokens == 1500
        assert main.timeout == 20

    def test_openai_mini(self, mock_config):
        provider = LLMProviderFactory.create_provider("openai", mock_config, model_type="mini")

        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"

    def test_local_ignores_model_type(self, mock_config):
        provider = LLMProviderFactory.create_provider("local", mock_config, model_type="mini")

        assert isinstance(provider, LocalProvider)
        assert provider.model == "llama3.1:8b"
        assert provider.base_url == "http://localhost:11434"

    def test_missing_key_raises(self):
        config = LLMSettings(default_provider="local", google_api_key=None)

        with pytest.raises(ValueError, match="Google API key is required"):
            LLMProviderFactory.create_provider("google", config)


class TestAgentProviders:
    def test_default_provider(self, mock_config):
        provider = LLMProviderFactory.create_default_provider(mock_config, model_type="mini")

        assert isinstance(provider, GoogleProvider)
        assert provider.model == "gemini-2.5-flash-lite"

    @pytest.mark.parametrize(
        "agent, expected",
        [
            ("verifier", OpenAIProvider),
            ("router", LocalProvider),
            ("sql", GoogleProvider),
            ("visualization", GoogleProvider),
        ],
    )
    def test_agent_override(self, mock_config, agent, expected):
        assert isinstance(LLMProviderFactory.create_agent_provider(agent, mock_config), expected)


def test_settings_require_key_for_selected_provider(monkeypatch):
    monkeypatch.delenv("LLM_GOOGLE_API_KEY")

    with pytest.raises(ValueError, match="LLM_GOOGLE_API_KEY"):
        LLMSettings(default_provider="google")
