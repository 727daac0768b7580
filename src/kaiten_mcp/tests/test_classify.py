"""Tests for error classification.

Validates:
- Status code mapping to exactly one ErrorKind
- Transport failures (timeout vs network)
- Retry-After parsing
- Purity: equal inputs give equal errors
"""

from __future__ import annotations

import pytest

from kaiten_mcp.foundation.errors import ErrorKind, KaitenError, KaitenException, classify
from kaiten_mcp.foundation.errors.classify import parse_retry_after
from kaiten_mcp.foundation.http import Response, TransportFailure


# ═════════════════════════════════════════════════════════════════════════════
# Status Mapping
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (401, ErrorKind.AUTH),
        (403, ErrorKind.AUTH),
        (404, ErrorKind.NOT_FOUND),
        (408, ErrorKind.TIMEOUT),
        (422, ErrorKind.VALIDATION),
        (429, ErrorKind.RATE_LIMITED),
        (500, ErrorKind.SERVER_ERROR),
        (502, ErrorKind.SERVER_ERROR),
        (503, ErrorKind.SERVER_ERROR),
        (599, ErrorKind.SERVER_ERROR),
        (400, ErrorKind.UNKNOWN),
        (409, ErrorKind.UNKNOWN),
        (302, ErrorKind.UNKNOWN),
    ],
)
def test_status_mapping(status: int, kind: ErrorKind) -> None:
    error = classify(Response(status_code=status))
    assert error.kind is kind
    assert error.http_status == status


def test_auth_messages_distinguish_401_and_403() -> None:
    assert classify(Response(status_code=401)).message == "Authentication failed"
    assert classify(Response(status_code=403)).message == "Insufficient permissions"


def test_upstream_message_is_preferred() -> None:
    error = classify(Response(status_code=404, text='{"message": "Card not found"}'))
    assert error.message == "Card not found"
    assert error.hint is not None


def test_validation_keeps_body() -> None:
    error = classify(Response(status_code=422, text='{"message": "bad", "errors": ["title"]}'))
    assert error.kind is ErrorKind.VALIDATION
    assert error.details == {"body": {"message": "bad", "errors": ["title"]}}


def test_unknown_status_carries_status_and_body() -> None:
    error = classify(Response(status_code=400, text="plain text"))
    assert error.details == {"status": 400, "body": "plain text"}
    assert error.hint is None


def test_rate_limited_retry_after() -> None:
    error = classify(Response(status_code=429, headers={"Retry-After": "5"}))
    assert error.retry_after == 5.0
    assert error.is_retryable

    without = classify(Response(status_code=429))
    assert without.retry_after is None
    assert without.details is None


# ═════════════════════════════════════════════════════════════════════════════
# Transport Failures
# ═════════════════════════════════════════════════════════════════════════════


def test_timeout_failure() -> None:
    error = classify(TransportFailure("Request timeout after 10000ms", timed_out=True, code="ReadTimeout"))
    assert error.kind is ErrorKind.TIMEOUT
    assert error.http_status is None
    assert error.details == {"code": "ReadTimeout"}


def test_network_failure() -> None:
    error = classify(TransportFailure("Network error: connection refused", code="ConnectError"))
    assert error.kind is ErrorKind.NETWORK_ERROR
    assert error.is_retryable


def test_unexpected_exception_is_unknown() -> None:
    error = classify(RuntimeError("boom"))
    assert error.kind is ErrorKind.UNKNOWN
    assert error.message == "boom"
    assert not error.is_retryable


def test_classify_is_pure() -> None:
    """Same outcome twice yields equal errors."""
    response = Response(status_code=503, text='{"message": "down"}')
    assert classify(response) == classify(response)


def test_retryable_kinds() -> None:
    retryable = {k for k in ErrorKind if KaitenError.create(k, "x").is_retryable}
    assert retryable == {ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR}


# ═════════════════════════════════════════════════════════════════════════════
# Retry-After
# ═════════════════════════════════════════════════════════════════════════════


def test_parse_retry_after_seconds() -> None:
    assert parse_retry_after("5") == 5.0
    assert parse_retry_after(" 0.5 ") == 0.5
    assert parse_retry_after("0") == 0.0


def test_parse_retry_after_http_date() -> None:
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:05 GMT", "Wed, 21 Oct 2015 07:28:00 GMT") == 5.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:05 GMT") is None


@pytest.mark.parametrize("value", [None, "", "-3", "soon", "nan", "inf"])
def test_parse_retry_after_rejects(value: str | None) -> None:
    assert parse_retry_after(value) is None


# ═════════════════════════════════════════════════════════════════════════════
# Payloads
# ═════════════════════════════════════════════════════════════════════════════


def test_payload_shape() -> None:
    error = classify(Response(status_code=404))
    assert set(error.to_payload()) == {"type", "message", "status", "details", "hint"}
    assert error.to_payload()["type"] == "NOT_FOUND"


def test_exception_wraps_error() -> None:
    exc = KaitenException.create(ErrorKind.AUTH, "nope", http_status=401)
    assert exc.kind is ErrorKind.AUTH
    assert exc.error.http_status == 401
    assert str(exc) == "nope"
    assert exc.error.render().startswith("[AUTH] (HTTP 401)")
