"""Observability: logging configuration and in-memory metrics."""

from .logger import (
    OFF,
    ROOT_LOGGER,
    ConsoleFormatter,
    JsonFormatter,
    RedactingFilter,
    configure_from_settings,
    configure_logging,
    current_level,
    mask_secret,
    parse_level,
    redact,
    set_level,
)
from .metrics import HTTP_METRIC, MetricRecord, MetricsCollector

__all__ = [
    "OFF", "ROOT_LOGGER", "ConsoleFormatter", "JsonFormatter", "RedactingFilter",
    "configure_from_settings", "configure_logging", "current_level", "mask_secret", "parse_level", "redact", "set_level",
    "HTTP_METRIC", "MetricRecord", "MetricsCollector",
]
