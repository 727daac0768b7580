"""Logging configuration for the server process.

Components log through standard ``logging`` loggers under ``kaiten_mcp.*``.
``configure_logging`` attaches handlers to the ``kaiten_mcp`` logger only:

- stderr always (stdout carries the stdio protocol stream)
- an optional log file
- human-readable text or JSON Lines (orjson)
- a redaction filter so the API token never reaches a sink

Quick Start:
    >>> from kaiten_mcp.runtime.observability import configure_logging, set_level
    >>> configure_logging(level="INFO", format="json", secrets=[token])
    >>> set_level("debug")
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Literal, TextIO

import orjson

if TYPE_CHECKING:
    from kaiten_mcp.foundation.config import LoggingSettings

ROOT_LOGGER = "kaiten_mcp"
OFF = logging.CRITICAL + 10

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": OFF,
}

_BEARER = re.compile(r"(Bearer\s+)[^\s\"',]+", re.IGNORECASE)

# Attributes every LogRecord has; anything else came from ``extra=``
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


# ─────────────────────────────────────────────────────────────────────────────
# Redaction
# ─────────────────────────────────────────────────────────────────────────────


def mask_secret(secret: str) -> str:
    return f"{secret[:4]}...{secret[-4:]}" if len(secret) > 8 else "***"


def redact(text: str, secrets: Iterable[str] = ()) -> str:
    """Replace known secrets and any bearer credential in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, mask_secret(secret))
    return _BEARER.sub(r"\1***", text)


class RedactingFilter(logging.Filter):
    """Rewrites each record's message with secrets masked."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._secrets = tuple(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message, self._secrets)
        if cleaned != message or record.args:
            record.msg, record.args = cleaned, None
        return True


# ─────────────────────────────────────────────────────────────────────────────
# Formatters
# ─────────────────────────────────────────────────────────────────────────────


def _extras(record: logging.LogRecord) -> dict[str, object]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}


class ConsoleFormatter(logging.Formatter):
    """Format: ``HH:MM:SS.mmm [level] logger message key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=UTC).strftime("%H:%M:%S.%f")[:-3]
        parts = [ts, f"[{record.levelname.lower()}]", record.name, record.getMessage()]
        parts += [f"{k}={v}" for k, v in sorted(_extras(record).items())]
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """JSON Lines output for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, option=orjson.OPT_NON_STR_KEYS, default=str).decode()


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────


def parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}. Use one of {', '.join(_LEVELS)}") from None


def configure_logging(
    level: str | int = "WARNING",
    format: Literal["text", "json"] = "text",  # noqa: A002 - matches settings field
    *,
    secrets: Iterable[str] = (),
    file_path: str | Path | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install handlers on the ``kaiten_mcp`` logger, replacing earlier ones.

    Args:
        level: Level name (debug, info, warning, error, critical, off) or number
        format: "text" (human) or "json" (JSON Lines)
        secrets: Values masked in every record
        file_path: Also append to this file when given
        stream: Console stream (default: stderr)

    Returns:
        The configured package logger
    """
    match format:
        case "text": formatter: logging.Formatter = ConsoleFormatter()
        case "json": formatter = JsonFormatter()
        case _: raise ValueError(f"Unknown format: {format}. Use 'text' or 'json'")

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    redactor = RedactingFilter(secrets)
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if file_path is not None:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        root.addHandler(handler)

    root.setLevel(parse_level(level))
    root.propagate = False
    return root


def configure_from_settings(settings: LoggingSettings, *, secrets: Iterable[str] = ()) -> logging.Logger:
    return configure_logging(
        settings.level,
        settings.format,
        secrets=secrets,
        file_path=settings.file_path if settings.file_enabled else None,
    )


def set_level(level: str | int) -> int:
    """Change the package log level at runtime. Returns the numeric level."""
    numeric = parse_level(level)
    logging.getLogger(ROOT_LOGGER).setLevel(numeric)
    return numeric


def current_level() -> str:
    numeric = logging.getLogger(ROOT_LOGGER).getEffectiveLevel()
    return "off" if numeric >= OFF else logging.getLevelName(numeric).lower()
