"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from querycompass.config import get_settings

    settings = get_settings()
    print(settings.llm.default_provider)
    print(settings.database.targets)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import Field, PostgresDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["google", "openai", "local"]


class LLMSettings(BaseSettings):
    """Text-completion provider configuration."""

    default_provider: ProviderName = Field(
        default="google", description="Default text-completion provider"
    )
    router_provider: ProviderName | None = Field(
        None, description="Provider for the Router (defaults to default_provider)"
    )
    sql_provider: ProviderName | None = Field(
        None, description="Provider for SQL generation and refinement"
    )
    verifier_provider: ProviderName | None = Field(
        None, description="Provider for the SQL Verifier"
    )
    visualization_provider: ProviderName | None = Field(
        None, description="Provider for the Visualization Composer"
    )

    # Google configuration
    google_api_key: str | None = Field(None, description="Google AI API key")
    google_model: str = Field(default="gemini-2.5-flash", description="Gemini model")
    google_model_mini: str = Field(
        default="gemini-2.5-flash-lite", description="Gemini lightweight model"
    )

    # OpenAI configuration
    openai_api_key: str | None = Field(None, description="OpenAI API key", min_length=20)
    openai_model: str = Field(default="gpt-4o", description="OpenAI model")
    openai_model_mini: str = Field(default="gpt-4o-mini", description="OpenAI lightweight model")

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for a local model server (Ollama or OpenAI-compatible)",
    )
    local_model: str = Field(default="llama3.1:8b", description="Local model name")

    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0, le=16000)
    timeout: int = Field(default=60, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Retries for recoverable completion faults before an agent gives up",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v

    @model_validator(mode="after")
    def validate_provider_keys(self) -> "LLMSettings":
        """Ensure an API key is set for every selected hosted provider."""
        provider_key_map = {
            "google": self.google_api_key,
            "openai": self.openai_api_key,
        }
        selected = {
            self.default_provider,
            self.router_provider,
            self.sql_provider,
            self.verifier_provider,
            self.visualization_provider,
        }
        for provider in selected:
            if provider in provider_key_map and not provider_key_map[provider]:
                raise ValueError(
                    f"API key required for {provider} provider. Set LLM_{provider.upper()}_API_KEY"
                )
        return self


class DatabaseSettings(BaseSettings):
    """Target databases the pipeline is allowed to query."""

    targets: dict[str, str] = Field(
        default_factory=dict,
        description='JSON mapping of database id to URL, e.g. {"sales_db": "postgresql://..."}',
    )
    default_id: str = Field(default="sales_db", description="Database used when none is given")
    pool_min_size: int = Field(default=1, ge=0, le=20)
    pool_max_size: int = Field(default=5, gt=0, le=50)
    statement_timeout: int = Field(
        default=30, gt=0, description="Per-statement timeout in seconds"
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("targets")
    @classmethod
    def validate_targets(cls, v: dict[str, str]) -> dict[str, str]:
        """Only PostgreSQL targets are supported."""
        for database_id, url in v.items():
            parsed = urlparse(url)
            scheme = parsed.scheme.split("+")[0].lower()
            if scheme not in {"postgres", "postgresql"}:
                raise ValueError(f"Database '{database_id}' must use a postgresql URL.")
            if not parsed.hostname:
                raise ValueError(f"Database '{database_id}' URL must include a host.")
        return v


class SystemDatabaseSettings(BaseSettings):
    """Database holding conversations and the audit log."""

    url: PostgresDsn | None = Field(
        None,
        description="System PostgreSQL connection URL (conversations, audit log)",
    )

    model_config = SettingsConfigDict(
        env_prefix="SYSTEM_DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: str | PostgresDsn | None) -> str | PostgresDsn | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v


class AuthSettings(BaseSettings):
    """Bearer token validation settings."""

    jwt_secret: str | None = Field(None, description="Secret used to verify access tokens")
    jwt_algorithm: str = Field(default="HS256")
    allow_query_token: bool = Field(
        default=True,
        description="Accept ?token= on the stream endpoint (EventSource cannot send headers)",
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(default="%Y-%m-%d %H:%M:%S")
    file: Path | None = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )


class PipelineSettings(BaseSettings):
    """Turn processing behavior."""

    sample_row_limit: int = Field(
        default=100,
        gt=0,
        le=1000,
        description="Rows kept from a read result for visualization and persistence",
    )
    sql_versions_limit: int = Field(
        default=10,
        gt=0,
        le=100,
        description="Refinement log entries kept per message (oldest evicted first)",
    )
    sensitive_columns: list[str] = Field(
        default_factory=lambda: ["email", "phone", "ssn", "first_name", "last_name"],
        description="Columns masked before a sample is sent to the completion provider",
    )
    rehydrate_summary: bool = Field(
        default=True,
        description="Replace placeholder tokens in the visualization summary with real values",
    )
    title_generation_min_messages: int = Field(
        default=2,
        ge=1,
        description="Messages required before a 'New Chat' conversation is auto-titled",
    )
    serialize_conversation_turns: bool = Field(
        default=True,
        description="Process turns for the same conversation one at a time",
    )
    suggestion_cache_ttl_seconds: int = Field(default=300, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        extra="ignore",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, database, auth, logging, pipeline).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        API_HOST / API_PORT: API server bind address
        CORS_ORIGINS: Comma separated list of allowed origins
        LLM_*: Text-completion configuration (see LLMSettings)
        DATABASE_*: Target databases (see DatabaseSettings)
        SYSTEM_DATABASE_*: Conversation and audit storage
        AUTH_*: Token validation
        LOG_*: Logging configuration
        PIPELINE_*: Turn processing behavior
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(default="QueryCompass", description="Application name")
    debug: bool = Field(default=False)
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, gt=0, le=65535)
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="Comma separated list of allowed CORS origins",
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    system_database: SystemDatabaseSettings = Field(default_factory=SystemDatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_provider": self.llm.default_provider,
                "target_databases": sorted(self.database.targets),
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("QUERYCOMPASS_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once per process; call clear_settings_cache()
    to reload after changing the environment.
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (used by tests)."""
    get_settings.cache_clear()
