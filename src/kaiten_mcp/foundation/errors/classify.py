"""Error classification: transport outcomes -> KaitenError.

``classify`` is a pure function. The same response or failure always maps to
the same error, and every input maps to exactly one ErrorKind.
"""

from __future__ import annotations

import math
from email.utils import parsedate_to_datetime
from typing import Final

import orjson

from kaiten_mcp.foundation.http import Response, TransportFailure
from kaiten_mcp.foundation.types import JsonDict, JsonValue

from .errors import ErrorKind, KaitenError

HINTS: Final[dict[ErrorKind, str]] = {
    ErrorKind.AUTH: "Check your KAITEN_API_TOKEN and that it has access to the requested resource",
    ErrorKind.RATE_LIMITED: "Reduce the frequency of requests or decrease the limit parameter",
    ErrorKind.NOT_FOUND: "Check that the card_id, board_id, space_id, or other resource ID is correct",
    ErrorKind.TIMEOUT: "Try reducing the limit parameter or specifying a more specific board_id/space_id",
    ErrorKind.VALIDATION: "Check the request parameters for correctness",
    ErrorKind.SERVER_ERROR: "The Kaiten API is experiencing issues. Try again later.",
    ErrorKind.NETWORK_ERROR: "Check your internet connection and KAITEN_API_URL configuration",
}

_AUTH_MESSAGES: Final[dict[int, tuple[str, str]]] = {
    401: ("Authentication failed", "Check your KAITEN_API_TOKEN in the environment or .env file"),
    403: ("Insufficient permissions", "Your API token does not have permission to perform this action"),
}


def classify(outcome: Response | BaseException) -> KaitenError:
    """Map a failed transport outcome to a typed error.

    Args:
        outcome: A non-2xx ``Response`` or the exception raised by the transport

    Returns:
        KaitenError of exactly one ErrorKind

    Example:
        >>> classify(Response(status_code=404)).kind
        <ErrorKind.NOT_FOUND: 'NOT_FOUND'>
        >>> classify(TransportFailure("timed out", timed_out=True)).kind
        <ErrorKind.TIMEOUT: 'TIMEOUT'>
    """
    if isinstance(outcome, Response):
        return _classify_response(outcome)
    if isinstance(outcome, TransportFailure):
        return _classify_failure(outcome)
    return KaitenError.create(
        ErrorKind.UNKNOWN,
        str(outcome) or type(outcome).__name__,
        details={"exception": type(outcome).__name__},
    )


def _classify_failure(failure: TransportFailure) -> KaitenError:
    details: JsonDict | None = {"code": failure.code} if failure.code else None
    if failure.timed_out:
        return KaitenError.create(ErrorKind.TIMEOUT, str(failure) or "Request timed out",
                                  details=details, hint=HINTS[ErrorKind.TIMEOUT])
    return KaitenError.create(ErrorKind.NETWORK_ERROR, str(failure) or "Network error",
                              details=details, hint=HINTS[ErrorKind.NETWORK_ERROR])


def _classify_response(response: Response) -> KaitenError:
    status = response.status_code
    body = _decode_body(response.text)
    upstream_message = body.get("message") if isinstance(body, dict) else None

    if status in _AUTH_MESSAGES:
        message, hint = _AUTH_MESSAGES[status]
        return KaitenError.create(ErrorKind.AUTH, message, http_status=status, hint=hint)

    if status == 404:
        return KaitenError.create(ErrorKind.NOT_FOUND, _text(upstream_message, "Resource not found"),
                                  http_status=status, hint=HINTS[ErrorKind.NOT_FOUND])

    if status == 408:
        return KaitenError.create(ErrorKind.TIMEOUT, _text(upstream_message, "Upstream request timeout"),
                                  http_status=status, hint=HINTS[ErrorKind.TIMEOUT])

    if status == 422:
        return KaitenError.create(ErrorKind.VALIDATION, _text(upstream_message, "Validation error"),
                                  http_status=status, details={"body": body} if body is not None else None,
                                  hint=HINTS[ErrorKind.VALIDATION])

    if status == 429:
        retry_after = parse_retry_after(response.header("retry-after"), response.header("date"))
        return KaitenError.create(ErrorKind.RATE_LIMITED, "Rate limit exceeded", http_status=status,
                                  details={"retry_after": retry_after} if retry_after is not None else None,
                                  hint=HINTS[ErrorKind.RATE_LIMITED])

    if 500 <= status < 600:
        return KaitenError.create(ErrorKind.SERVER_ERROR, _text(upstream_message, f"Kaiten API server error ({status})"),
                                  http_status=status, hint=HINTS[ErrorKind.SERVER_ERROR])

    return KaitenError.create(ErrorKind.UNKNOWN, _text(upstream_message, f"Unexpected HTTP status {status}"),
                              http_status=status, details={"status": status, "body": body})


def parse_retry_after(value: str | None, date: str | None = None) -> float | None:
    """Parse a ``Retry-After`` header into seconds.

    Accepts delta-seconds, or an HTTP-date measured against the response's own
    ``Date`` header. Returns None when absent, unparseable or negative.

    Example:
        >>> parse_retry_after("5")
        5.0
        >>> parse_retry_after("Wed, 21 Oct 2015 07:28:05 GMT", "Wed, 21 Oct 2015 07:28:00 GMT")
        5.0
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        if not date:
            return None
        try:
            seconds = (parsedate_to_datetime(value) - parsedate_to_datetime(date)).total_seconds()
        except (TypeError, ValueError):
            return None
    return seconds if math.isfinite(seconds) and seconds >= 0 else None


def _decode_body(text: str) -> JsonValue:
    if not text.strip():
        return None
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return text


def _text(value: object, fallback: str) -> str:
    return value if isinstance(value, str) and value.strip() else fallback
