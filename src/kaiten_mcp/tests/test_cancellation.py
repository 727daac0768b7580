"""Tests for CancellationToken."""

from __future__ import annotations

import pytest

from kaiten_mcp.foundation.errors import RequestCancelled
from kaiten_mcp.runtime.cancellation import CancellationToken


def test_cancel_runs_callbacks_once() -> None:
    token = CancellationToken()
    calls: list[str] = []
    token.on_cancel(lambda: calls.append("a"))
    token.on_cancel(lambda: calls.append("b"))

    assert token.cancel("user abort") is True
    assert token.cancel() is False
    assert calls == ["a", "b"]
    assert token.is_cancelled
    assert token.reason == "user abort"


def test_unregister_prevents_callback() -> None:
    token = CancellationToken()
    calls: list[int] = []
    unregister = token.on_cancel(lambda: calls.append(1))
    unregister()
    token.cancel()
    assert calls == []


def test_late_registration_runs_immediately() -> None:
    token = CancellationToken.cancelled()
    calls: list[int] = []
    token.on_cancel(lambda: calls.append(1))
    assert calls == [1]


def test_failing_callback_does_not_stop_others() -> None:
    token = CancellationToken()
    calls: list[int] = []
    token.on_cancel(lambda: 1 / 0)
    token.on_cancel(lambda: calls.append(1))
    token.cancel()
    assert calls == [1]


def test_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled("GET /cards")
    token.cancel()
    with pytest.raises(RequestCancelled, match="GET /cards"):
        token.raise_if_cancelled("GET /cards")
