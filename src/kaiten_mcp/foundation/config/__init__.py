"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    API_SUFFIX,
    KaitenSettings,
    LoggingSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "API_SUFFIX",
    "KaitenSettings",
    "LoggingSettings",
    "clear_settings_cache",
    "get_settings",
]
