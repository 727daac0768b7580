"""Typed errors for upstream failures.

Every failure that leaves the request governor is one of a closed set of
kinds. Errors are immutable values; they carry a human-readable message,
the HTTP status when one was received, optional structured details and a
corrective hint for the caller.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from kaiten_mcp.foundation.types import JsonDict


class ErrorKind(StrEnum):
    """Closed taxonomy of upstream failure kinds."""
    AUTH = "AUTH"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    VALIDATION = "VALIDATION"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


# Transient kinds the governor may recover from by retrying
RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.NETWORK_ERROR,
    ErrorKind.TIMEOUT,
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVER_ERROR,
})


class KaitenError(BaseModel):
    """Structured, immutable description of an upstream failure.

    Attributes:
        kind: Classification used for retry decisions and caller matching
        message: Human-readable description
        http_status: Status code when a response was received
        details: Extra structured data (e.g. ``retry_after`` seconds, raw body)
        hint: Corrective action the caller can take
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "title": "Kaiten Error",
            "examples": [{
                "kind": "RATE_LIMITED",
                "message": "Rate limit exceeded",
                "http_status": 429,
                "details": {"retry_after": 5.0},
                "hint": "Reduce the frequency of requests or decrease the limit parameter",
            }],
        },
    )

    kind: ErrorKind = ErrorKind.UNKNOWN
    message: Annotated[str, Field(min_length=1)]
    http_status: int | None = None
    details: JsonDict | None = None
    hint: str | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept exceptions and fall back to a generic message when empty."""
        text = str(v) if isinstance(v, Exception) else v
        return text or "Unknown error"

    @computed_field
    @property
    def is_retryable(self) -> bool:
        """Whether the governor treats this kind as transient."""
        return self.kind in RETRYABLE_KINDS

    @property
    def retry_after(self) -> float | None:
        """Server-specified delay in seconds, present only for rate limiting."""
        if self.kind is not ErrorKind.RATE_LIMITED or not self.details:
            return None
        value = self.details.get("retry_after")
        return float(value) if isinstance(value, int | float) else None

    @classmethod
    def create(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        http_status: int | None = None,
        details: JsonDict | None = None,
        hint: str | None = None,
    ) -> Self:
        """Factory method for construction."""
        return cls(kind=kind, message=message, http_status=http_status, details=details, hint=hint)

    def to_payload(self) -> JsonDict:
        """Wire shape returned to tool callers."""
        return {
            "type": self.kind.value,
            "message": self.message,
            "status": self.http_status,
            "details": self.details,
            "hint": self.hint,
        }

    def render(self) -> str:
        """One-line summary for logs and plain-text consumers."""
        status = f" (HTTP {self.http_status})" if self.http_status else ""
        hint = f" Hint: {self.hint}" if self.hint else ""
        return f"[{self.kind.value}]{status} {self.message}.{hint}"

    __str__ = render


class KaitenException(Exception):
    """Exception wrapping a KaitenError for raising through async call stacks."""

    __slots__ = ("error",)

    def __init__(self, error: KaitenError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @classmethod
    def create(cls, kind: ErrorKind, message: str, **kwargs: object) -> Self:
        """Create exception from kind and message."""
        return cls(KaitenError.create(kind, message, **kwargs))  # type: ignore[arg-type]


class RequestCancelled(Exception):
    """Raised when a caller cancels a request.

    Not a KaitenException subclass; it never carries an upstream error.
    """

    __slots__ = ("label", "attempts")

    def __init__(self, label: str = "", attempts: int = 0) -> None:
        self.label = label
        self.attempts = attempts
        super().__init__(f"Request cancelled: {label}" if label else "Request cancelled")
