"""Typed error handling for kaiten_mcp.

- ErrorKind: Closed taxonomy of upstream failure kinds
- KaitenError/KaitenException: Immutable error value and its raisable wrapper
- RequestCancelled: Caller-initiated cancellation, separate from KaitenError
- classify: Pure mapping from transport outcomes to KaitenError
"""

from .classify import HINTS, classify, parse_retry_after
from .errors import RETRYABLE_KINDS, ErrorKind, KaitenError, KaitenException, RequestCancelled

__all__ = [
    "ErrorKind", "KaitenError", "KaitenException", "RequestCancelled", "RETRYABLE_KINDS",
    "classify", "parse_retry_after", "HINTS",
]
