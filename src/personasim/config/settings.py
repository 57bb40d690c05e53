"""Application settings using Pydantic."""

import os
from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(
        default=os.getenv("ENVIRONMENT", "development"),
        description="Deployment environment (development|production|test)",
    )

    # Upstream completion service
    llm_provider: Literal["real", "fake", "off"] = Field(
        default="real",
        description="Completion provider mode: real=call OpenAI, fake=scripted local replies, off=disable.",
    )
    openai_api_key: str = ""
    openai_organization: str = ""
    openai_base_url: str = Field(
        default="",
        description="Optional override for OpenAI-compatible endpoints (empty = SDK default).",
    )
    default_model: str = "gpt-4"
    fallback_model: str = "gpt-3.5-turbo"
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=1000, ge=1)
    upstream_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied by the upstream client; this package adds no timeout of its own.",
    )

    # Gateway
    history_window: int = Field(
        default=10,
        description="Number of prior turns sent to the model with each request.",
    )
    fingerprint_turns: int = Field(
        default=5,
        description="Number of trailing turns folded into the cache/dedup fingerprint.",
    )
    response_cache_ttl_seconds: int = Field(default=3600, description="Completion cache TTL.")

    # Storage
    redis_url: str = Field(
        default="",
        description="Redis URL for persona memory, conversation context and metrics. Empty = in-memory.",
    )
    conversation_context_ttl_seconds: int = Field(default=86400)
    persona_memory_ttl_seconds: int = Field(default=86400 * 7)
    metrics_ttl_seconds: int = Field(default=86400 * 30)

    # Persona consistency
    min_consistency_score: int = Field(default=75, ge=0, le=100)

    # Generation orchestrator
    min_quality_score: int = Field(default=70, ge=0, le=100)
    max_generation_attempts: int = Field(default=3, ge=1)
    temperature_step: float = Field(default=0.1, ge=0.0)
    max_tokens_step: int = Field(default=200, ge=0)

    # Resilience
    circuit_breaker_failure_threshold: int = Field(
        default=5,
        description="Consecutive failures before the circuit opens.",
    )
    circuit_breaker_timeout_seconds: float = Field(
        default=60.0,
        description="Seconds the circuit stays open before the next call is attempted.",
    )
    retry_delays_seconds: Annotated[list[float], NoDecode] = Field(
        default_factory=lambda: [1.0, 2.0, 5.0],
        description="Backoff delay table for retryable upstream errors. Env var can be comma-separated.",
    )
    retry_max_attempts: int = Field(default=3, ge=1)

    # Cost monitoring
    cost_threshold_usd: float = Field(
        default=1.0,
        description="Per-conversation cost above which a warning recommendation is issued.",
    )

    # Observability
    log_level: str = "INFO"
    enable_metrics: bool = True

    @field_validator("retry_delays_seconds", mode="before")
    @classmethod
    def _split_retry_delays(cls, v: Any) -> list[float]:
        if v is None or v == "":
            return []
        if isinstance(v, str):
            return [float(p.strip()) for p in v.split(",") if p.strip()]
        return [float(p) for p in v]

    @field_validator("circuit_breaker_failure_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError("circuit_breaker_failure_threshold must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_openai_key_for_production(self) -> "Settings":
        """Real completions in production need an API key."""
        if self.environment == "production" and self.llm_provider == "real" and not self.openai_api_key:
            raise ValueError(
                "OPENAI_API_KEY is required when LLM_PROVIDER=real in production. "
                "Set the key or use LLM_PROVIDER=fake."
            )
        return self

    @model_validator(mode="after")
    def validate_models(self) -> "Settings":
        """Ensure both the primary and fallback model are configured."""
        if not self.default_model:
            raise ValueError("DEFAULT_MODEL must be configured")
        if not self.fallback_model:
            raise ValueError("FALLBACK_MODEL must be configured")
        return self


# Global settings instance
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Lazily construct Settings so tests and CLIs can set env vars before first access.
    return Settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()


class _SettingsProxy:
    """Lazy proxy for Settings.

    This avoids eager settings instantiation at import time, which can make tests
    order-dependent when env vars are changed during `pytest_configure()`.
    """

    def __getattr__(self, name: str) -> Any:
        return getattr(get_settings(), name)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<SettingsProxy {get_settings()!r}>"


settings = _SettingsProxy()
