"""Tests for the metrics collector."""

from __future__ import annotations

from kaiten_mcp.foundation.errors import ErrorKind, KaitenError
from kaiten_mcp.runtime.governor import AttemptEvent, RequestState
from kaiten_mcp.runtime.observability import HTTP_METRIC, MetricsCollector


def test_disabled_is_noop() -> None:
    metrics = MetricsCollector()
    metrics.record("kaiten_get_card", 10.0, success=True)
    assert len(metrics) == 0
    assert metrics.snapshot()["enabled"] is False
    assert metrics.export_csv() == "No metrics to export"


def test_aggregate() -> None:
    metrics = MetricsCollector(enabled=True)
    metrics.record("kaiten_list_spaces", 10.0, success=True, cache_hit=False)
    metrics.record("kaiten_list_spaces", 2.0, success=True, cache_hit=True)
    metrics.record("kaiten_get_card", 30.0, success=False, error="NOT_FOUND")

    snapshot = metrics.snapshot()
    assert snapshot["total_requests"] == 3
    spaces, card = snapshot["aggregated"]
    assert spaces["name"] == "kaiten_list_spaces"
    assert spaces["count"] == 2
    assert spaces["avg_latency_ms"] == 6
    assert spaces["cache_hit_rate"] == 50
    assert card["success_rate"] == 0 and card["errors"] == 1
    assert len(snapshot["recent"]) == 3


def test_bounded_records() -> None:
    metrics = MetricsCollector(enabled=True, max_records=5)
    for i in range(8):
        metrics.record("t", float(i), success=True)
    assert len(metrics) == 5


def test_governor_hook() -> None:
    metrics = MetricsCollector(enabled=True)
    error = KaitenError.create(ErrorKind.SERVER_ERROR, "down", http_status=503)

    metrics(AttemptEvent(1, "GET /spaces", 1, RequestState.RETRYING, error=error, delay=1.0))
    metrics(AttemptEvent(1, "GET /spaces", 2, RequestState.SUCCEEDED, duration=0.5, queue_wait=0.25))
    metrics(AttemptEvent(2, "GET /cards", 0, RequestState.CANCELLED))

    snapshot = metrics.snapshot()
    assert snapshot["retries"] == {"SERVER_ERROR": 1}
    assert snapshot["total_requests"] == 2
    first, second = snapshot["recent"]
    assert first["name"] == HTTP_METRIC and first["success"] is True
    assert first["latency_ms"] == 500.0
    assert first["queue_wait_ms"] == 250.0
    assert second["error"] == "CANCELLED"


def test_export_and_clear() -> None:
    metrics = MetricsCollector(enabled=True)
    metrics.record("kaiten_get_board", 4.5, success=True, cache_hit=True)

    lines = metrics.export_csv().splitlines()
    assert lines[0] == "name,timestamp,latency_ms,success,cache_hit,queue_wait_ms,error"
    assert lines[1].startswith("kaiten_get_board,")

    metrics.clear()
    assert len(metrics) == 0


def test_only_terminal_events_become_records() -> None:
    metrics = MetricsCollector(enabled=True)
    retrying = AttemptEvent(1, "GET /users", 1, RequestState.RETRYING, delay=1.0)
    failed = AttemptEvent(1, "GET /users", 2, RequestState.FAILED,
                          error=KaitenError.create(ErrorKind.TIMEOUT, "slow"))

    assert not retrying.is_terminal and failed.is_terminal
    metrics(retrying)
    metrics(failed)

    assert len(metrics) == 1
    assert metrics.snapshot()["retries"] == {"UNKNOWN": 1}
    assert metrics.snapshot()["recent"][0]["error"] == "TIMEOUT"
