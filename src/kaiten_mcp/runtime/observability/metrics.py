"""In-memory metrics for tool calls and upstream requests.

``MetricsCollector`` is both a governor attempt hook (``collector(event)``)
and the sink for per-tool samples recorded by the dispatcher. It keeps the
most recent ``max_records`` samples and aggregates on demand.
"""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

from kaiten_mcp.foundation.types import JsonDict
from kaiten_mcp.runtime.governor import AttemptEvent, RequestState

logger = logging.getLogger("kaiten_mcp.metrics")

HTTP_METRIC = "http_request"
_CSV_FIELDS = ("name", "timestamp", "latency_ms", "success", "cache_hit", "queue_wait_ms", "error")


@dataclass(frozen=True, slots=True)
class MetricRecord:
    """One completed tool call or upstream request."""
    name: str
    latency_ms: float
    success: bool
    cache_hit: bool | None = None
    queue_wait_ms: float | None = None
    error: str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


@dataclass(slots=True)
class MetricsCollector:
    """Bounded metrics store.

    Args:
        enabled: When False every record call is a no-op
        max_records: Samples retained (oldest dropped first)

    Example:
        >>> metrics = MetricsCollector(enabled=True)
        >>> governor = RequestGovernor(hook=metrics)
        >>> metrics.record("kaiten_get_card", 12.5, success=True)
        >>> metrics.snapshot()["total_requests"]
        1
    """

    enabled: bool = False
    max_records: int = 10_000
    _records: deque[MetricRecord] = field(init=False, repr=False)
    _retries: Counter[str] = field(default_factory=Counter, repr=False)

    def __post_init__(self) -> None:
        self._records = deque(maxlen=self.max_records)

    def record(
        self,
        name: str,
        latency_ms: float,
        *,
        success: bool,
        cache_hit: bool | None = None,
        queue_wait_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        if not self.enabled:
            return
        self._records.append(MetricRecord(name, latency_ms, success, cache_hit, queue_wait_ms, error))

    def __call__(self, event: AttemptEvent) -> None:
        """Governor hook: count retries, record terminal outcomes."""
        if not self.enabled:
            return
        if not event.is_terminal:
            self._retries[event.error.kind.value if event.error else "UNKNOWN"] += 1
            return
        self.record(
            HTTP_METRIC,
            event.duration * 1000,
            success=event.state is RequestState.SUCCEEDED,
            queue_wait_ms=event.queue_wait * 1000,
            error=event.error.kind.value if event.error else (
                "CANCELLED" if event.state is RequestState.CANCELLED else None
            ),
        )

    def __len__(self) -> int:
        return len(self._records)

    def aggregate(self) -> list[JsonDict]:
        """Per-name aggregates, most used first."""
        grouped: dict[str, list[MetricRecord]] = {}
        for rec in self._records:
            grouped.setdefault(rec.name, []).append(rec)

        result: list[JsonDict] = []
        for name, recs in grouped.items():
            latencies = [r.latency_ms for r in recs]
            count = len(recs)
            successes = sum(1 for r in recs if r.success)
            result.append({
                "name": name,
                "count": count,
                "total_latency_ms": round(sum(latencies), 2),
                "avg_latency_ms": round(sum(latencies) / count),
                "min_latency_ms": round(min(latencies), 2),
                "max_latency_ms": round(max(latencies), 2),
                "success_rate": round(successes / count * 100),
                "cache_hit_rate": round(sum(1 for r in recs if r.cache_hit) / count * 100),
                "errors": count - successes,
            })
        return sorted(result, key=lambda a: a["count"], reverse=True)

    def snapshot(self) -> JsonDict:
        if not self.enabled:
            return {"enabled": False, "total_requests": 0, "aggregated": [], "retries": {}, "recent": []}
        return {
            "enabled": True,
            "total_requests": len(self._records),
            "aggregated": self.aggregate(),
            "retries": dict(self._retries),
            "recent": [asdict(r) for r in list(self._records)[-100:]],
        }

    def export_csv(self) -> str:
        if not self.enabled or not self._records:
            return "No metrics to export"
        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=_CSV_FIELDS, lineterminator="\n")
        writer.writeheader()
        for rec in self._records:
            writer.writerow({k: ("" if v is None else v) for k, v in asdict(rec).items()})
        return out.getvalue().rstrip("\n")

    def clear(self) -> None:
        self._records.clear()
        self._retries.clear()
        logger.info("metrics cleared")
