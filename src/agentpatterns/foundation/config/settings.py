"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from agentpatterns.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.convergence.max_iterations
    3
    >>> settings.retry.max_retries
    2

    # Or with environment variables:
    # AGENTPATTERNS_CONVERGENCE_TARGET_SCORE=9
    # AGENTPATTERNS_MODEL_FAST_MODEL=gpt-4o-mini
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, PositiveFloat, PositiveInt, SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelSettings(BaseSettings):
    """Model backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_MODEL_",
        extra="ignore",
    )

    base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI-compatible API root")
    api_key: SecretStr | None = Field(default=None, description="Bearer token for the backend")
    fast_model: str = "gpt-4o-mini"
    complex_model: str = "gpt-4o"
    timeout: PositiveFloat = Field(default=60.0, description="Per-call timeout in seconds")
    stream_idle_timeout: PositiveFloat = Field(default=30.0, description="Max seconds between stream deltas")
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.7

    @computed_field
    @property
    def has_credentials(self) -> bool:
        return self.api_key is not None


class RetrySettings(BaseSettings):
    """Provider retry configuration (bounded exponential backoff)."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_RETRY_",
        extra="ignore",
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 2
    base_delay: PositiveFloat = Field(default=1.0, description="Base delay in seconds")
    multiplier: PositiveFloat = Field(default=2.0, description="Exponential backoff base")
    max_delay: PositiveFloat = Field(default=30.0, description="Maximum delay in seconds")
    jitter: bool = False


class ConvergenceSettings(BaseSettings):
    """Iterative refinement bounds."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_CONVERGENCE_",
        extra="ignore",
    )

    max_iterations: Annotated[int, Field(ge=1, le=20)] = 3
    target_score: Annotated[float, Field(gt=1.0, le=10.0)] = 8.0
    sequential_threshold: Annotated[float, Field(gt=1.0, le=10.0)] = 7.0


class ToolSettings(BaseSettings):
    """Tool dispatch configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_TOOL_",
        extra="ignore",
    )

    timeout: PositiveFloat = Field(default=10.0, description="Per-handler timeout in seconds")
    max_retries: Annotated[int, Field(ge=0, le=5)] = 0
    max_steps: PositiveInt = Field(default=5, description="Step ceiling for tool-use loops")


class InputSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_INPUT_",
        extra="ignore",
    )

    max_length: PositiveInt = 10_000


class OrchestratorSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_ORCHESTRATOR_",
        extra="ignore",
    )

    max_concurrency: PositiveInt = Field(default=4, description="Worker tasks running at once")
    max_tasks: PositiveInt = Field(default=12, description="Largest accepted plan")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class ServerSettings(BaseSettings):
    """HTTP transport adapter configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_SERVER_",
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: Annotated[int, Field(ge=1, le=65535)] = 8000
    wire_format: Literal["text", "ndjson"] = "text"


class AgentPatternsSettings(BaseSettings):
    """Root settings.

    Loads configuration from environment variables with AGENTPATTERNS_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        AGENTPATTERNS_MODEL_API_KEY=sk-...
        AGENTPATTERNS_RETRY_MAX_RETRIES=3
        AGENTPATTERNS_TOOL_MAX_STEPS=8
        AGENTPATTERNS_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTPATTERNS_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Include tracebacks in failure details")

    model: ModelSettings = Field(default_factory=ModelSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    convergence: ConvergenceSettings = Field(default_factory=ConvergenceSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    input: InputSettings = Field(default_factory=InputSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


@lru_cache(maxsize=1)
def get_settings() -> AgentPatternsSettings:
    """Get the global settings instance (cached)."""
    return AgentPatternsSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
