"""Configuration for Chat Relay service."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_version: str = Field("1.0.0", description="Semantic version returned by health endpoints.")

    # Transformation service
    transform_provider: Literal["openai", "gemini"] = Field(
        "openai",
        alias="TRANSFORM_PROVIDER",
        description="Backend used to restyle nicknames and messages.",
    )
    openai_api_key: str | None = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="OpenAI API key. Without it the relay passes text through unchanged.",
    )
    gemini_api_key: str | None = Field(
        default=None,
        alias="GEMINI_API_KEY",
        description="Google Gemini API key. Without it the relay passes text through unchanged.",
    )
    transform_model: str | None = Field(
        default=None,
        alias="TRANSFORM_MODEL",
        description="Model override; provider default when unset.",
    )
    transform_temperature: float = Field(
        0.9,
        ge=0.0,
        le=2.0,
        alias="TRANSFORM_TEMPERATURE",
        description="Sampling temperature for transformation calls.",
    )
    transform_timeout_seconds: float = Field(
        15.0,
        gt=0.0,
        alias="TRANSFORM_TIMEOUT_SECONDS",
        description="Upper bound for a single transformation call.",
    )
    transform_concurrency: int = Field(
        4,
        ge=1,
        le=64,
        alias="TRANSFORM_CONCURRENCY",
        description="Max transformation calls in flight at once.",
    )
    rate_limit_cooldown_seconds: float = Field(
        60.0,
        gt=0.0,
        alias="RATE_LIMIT_COOLDOWN_SECONDS",
        description="Pause applied when the provider reports exhausted quota without a retry delay.",
    )

    # Styles
    default_style: str = Field(
        "uwu",
        alias="DEFAULT_STYLE",
        description="Style used when a client joins without choosing one.",
    )
    styles_path: str | None = Field(
        default=None,
        alias="STYLES_PATH",
        description="Optional YAML file replacing the built-in style catalog.",
    )

    # Room limits
    history_limit: int = Field(
        100,
        ge=1,
        alias="HISTORY_LIMIT",
        description="Max number of messages kept in memory and replayed to late joiners.",
    )
    nickname_max_length: int = Field(
        30,
        ge=1,
        alias="NICKNAME_MAX_LENGTH",
        description="Longest transformed nickname accepted from the provider.",
    )
    message_max_length: int = Field(
        500,
        ge=1,
        alias="MESSAGE_MAX_LENGTH",
        description="Longest transformed message accepted from the provider.",
    )
    nickname_input_max_length: int = Field(
        50,
        ge=1,
        alias="NICKNAME_INPUT_MAX_LENGTH",
        description="Longest raw nickname accepted from clients.",
    )
    content_input_max_length: int = Field(
        2000,
        ge=1,
        alias="CONTENT_INPUT_MAX_LENGTH",
        description="Longest raw message accepted from clients.",
    )

    # Optional per-connection flood guard
    rate_limit_enabled: bool = Field(
        False,
        description="Enable per-connection rate limit for send-message",
        alias="RATE_LIMIT_ENABLED",
    )
    rate_limit_rps: float = Field(
        2.0,
        ge=0.1,
        description="Messages per second per connection",
        alias="RATE_LIMIT_RPS",
    )
    rate_limit_burst: int = Field(
        5,
        ge=1,
        description="Burst capacity for token bucket",
        alias="RATE_LIMIT_BURST",
    )

    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        alias="CORS_ORIGINS",
        description="Origins allowed by the CORS middleware.",
    )
    log_config_path: str = Field(
        "observability/logging.json",
        alias="LOG_CONFIG_PATH",
        description="dictConfig JSON file loaded on startup when present.",
    )
    enable_otel: bool = Field(False, alias="ENABLE_OTEL", description="Export OpenTelemetry traces.")
    enable_metrics: bool = Field(False, alias="ENABLE_METRICS", description="Expose Prometheus /metrics.")

    def transform_api_key(self) -> str | None:
        """Return the credential of the selected provider, ``None`` when unusable."""

        raw = self.openai_api_key if self.transform_provider == "openai" else self.gemini_api_key
        key = (raw or "").strip()
        if not key or key == "***REDACTED***":
            return None
        return key


class HealthPayload(BaseModel):
    """Health-check response payload."""

    status: Literal["ok"]
    api_version: str


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance.

    Returns:
        Settings: Loaded environment settings.
    """

    return Settings()
