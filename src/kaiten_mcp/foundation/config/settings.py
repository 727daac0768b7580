"""Environment-based configuration using pydantic-settings.

All values are read from ``KAITEN_*`` environment variables (or a ``.env``
file) once at startup and then passed explicitly to the components that
need them. Nothing below the server entry point reads the environment.

Example:
    >>> from kaiten_mcp.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.max_concurrent_requests
    5
    >>> settings.logging.level
    'WARNING'

    # Or with environment variables:
    # KAITEN_API_URL=https://example.kaiten.ru/api/latest
    # KAITEN_CACHE_TTL_SECONDS=0
    # KAITEN_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import (
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

API_SUFFIX = "/api/latest"

LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Logging configuration (``KAITEN_LOG_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="KAITEN_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: LogLevelName = "WARNING"
    format: Literal["text", "json"] = "text"
    file_enabled: bool = False
    file_path: str = Field(default="./logs/kaiten-mcp.log", description="Log file used when file_enabled")
    requests: bool = Field(default=False, description="Debug-log every HTTP attempt")
    metrics: bool = Field(default=False, description="Collect per-tool and per-request metrics")

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        v = v.upper() if isinstance(v, str) else v
        return "WARNING" if v == "WARN" else v


class KaitenSettings(BaseSettings):
    """Root settings for the Kaiten MCP server.

    Example environment variables:
        KAITEN_API_URL=https://example.kaiten.ru/api/latest
        KAITEN_API_TOKEN=...
        KAITEN_MAX_CONCURRENT_REQUESTS=5
        KAITEN_CACHE_TTL_SECONDS=300
    """

    model_config = SettingsConfigDict(
        env_prefix="KAITEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    api_url: str = Field(..., description=f"Kaiten API base URL, ending with {API_SUFFIX}")
    api_token: SecretStr = Field(..., min_length=20, description="Kaiten API bearer token")
    default_space_id: PositiveInt | None = None

    # Request governor
    max_concurrent_requests: Annotated[int, Field(ge=1, le=20)] = 5
    requests_per_second: Annotated[int | None, Field(ge=1, le=100)] = None
    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    retry_base_delay_ms: PositiveFloat = 1000.0
    retry_jitter_ms: NonNegativeFloat = 500.0
    request_timeout_ms: Annotated[int, Field(ge=1, le=60_000)] = 10_000

    # Read-through cache
    cache_ttl_seconds: NonNegativeFloat = Field(default=300.0, description="0 disables caching")
    cache_capacity: PositiveInt = 100

    # Response shaping
    max_response_chars: Annotated[int, Field(ge=1000)] = 100_000

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("api_url")
    @classmethod
    def _validate_api_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("KAITEN_API_URL must be an http(s) URL")
        if not v.endswith(API_SUFFIX):
            raise ValueError(f"KAITEN_API_URL must end with {API_SUFFIX}")
        return v

    @computed_field
    @property
    def web_url(self) -> str:
        """Browser-facing base URL used to build card links."""
        return self.api_url[: -len(API_SUFFIX)]

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000

    @property
    def admission_rate(self) -> int:
        """Requests admitted per rolling second; defaults to the concurrency ceiling."""
        return self.requests_per_second or self.max_concurrent_requests

    @property
    def cache_enabled(self) -> bool:
        return self.cache_ttl_seconds > 0


# Singleton pattern for settings
@lru_cache(maxsize=1)
def get_settings() -> KaitenSettings:
    """Get the process-wide settings instance (cached).

    Raises:
        pydantic.ValidationError: When required variables are missing or invalid
    """
    return KaitenSettings()  # type: ignore[call-arg]


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
