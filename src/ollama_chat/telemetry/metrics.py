"""In-memory request metrics for the Ollama chat client.

The clients record one RequestMetrics entry per chat or generate call,
successful or not. MetricsCollector aggregates them on demand.

Key behaviors:
    - Class-level storage bounded at 10,000 entries (oldest dropped first)
    - Optional time-window filtering
    - Latency percentiles via statistics.quantiles
    - Streaming calls also record how many fragments were assembled
    - Recording and aggregation are guarded by a lock, so clients used from
      several threads can share the collector
"""

from __future__ import annotations

import logging
import statistics
import threading
import time
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RequestMetrics:
    """Metrics for a single call.

    Attributes:
        model: Model name used for the request.
        operation: "chat", "chat_stream", "generate" or "generate_stream".
        latency_ms: Wall-clock latency in milliseconds.
        success: Whether the call produced a result.
        error: Error type (``"TransportError:503"``) if the call failed.
        fragments: Number of fragments assembled (streaming calls only).
        timestamp: When the call finished (UTC).
    """

    model: str
    operation: str
    latency_ms: float
    success: bool
    error: str | None = None
    fragments: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def streamed(self) -> bool:
        return self.fragments is not None


@dataclass(slots=True)
class ServiceMetrics:
    """Aggregated metrics over a set of RequestMetrics.

    All latencies are in milliseconds.
    """

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    streamed_requests: int = 0
    total_fragments: int = 0
    requests_by_model: dict[str, int] = field(default_factory=dict)
    requests_by_operation: dict[str, int] = field(default_factory=dict)
    average_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    last_request_time: datetime | None = None
    first_request_time: datetime | None = None

    @property
    def average_fragments_per_stream(self) -> float:
        if not self.streamed_requests:
            return 0.0
        return self.total_fragments / self.streamed_requests


class MetricsCollector:
    """Collects and aggregates client call metrics.

    Attributes:
        _metrics: Class variable storing the recorded RequestMetrics.
        _max_metrics: Maximum number of entries retained (10,000).
    """

    _metrics: ClassVar[list[RequestMetrics]] = []
    _max_metrics: ClassVar[int] = 10_000
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def record_request(
        cls,
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        error: str | None = None,
        fragments: int | None = None,
    ) -> None:
        """Record one call, trimming the oldest entries past the limit."""
        metric = RequestMetrics(
            model=model,
            operation=operation,
            latency_ms=latency_ms,
            success=success,
            error=error,
            fragments=fragments,
        )
        with cls._lock:
            cls._metrics.append(metric)
            if len(cls._metrics) > cls._max_metrics:
                cls._metrics = cls._metrics[-cls._max_metrics :]

        logger.debug("Recorded metric: %s on %s - %.2fms", operation, model, latency_ms)

    @classmethod
    def snapshot(cls) -> list[RequestMetrics]:
        """Return a copy of the recorded entries, oldest first."""
        with cls._lock:
            return list(cls._metrics)

    @classmethod
    def get_metrics(cls, window_minutes: int | None = None) -> ServiceMetrics:
        """Aggregate recorded calls, optionally limited to the last ``window_minutes``."""
        recorded = cls.snapshot()

        match window_minutes:
            case None:
                metrics = recorded
            case minutes if minutes > 0:
                cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
                metrics = [m for m in recorded if m.timestamp >= cutoff]
            case _:
                metrics = []

        if not metrics:
            return ServiceMetrics()

        latencies = sorted(m.latency_ms for m in metrics)
        successful = sum(1 for m in metrics if m.success)
        streamed = [m for m in metrics if m.streamed]

        match len(latencies):
            case n if n >= 2:
                quantiles = statistics.quantiles(latencies, n=100)
                p50, p95, p99 = quantiles[49], quantiles[94], quantiles[98]
            case _:
                p50 = p95 = p99 = latencies[0]

        return ServiceMetrics(
            total_requests=len(metrics),
            successful_requests=successful,
            failed_requests=len(metrics) - successful,
            streamed_requests=len(streamed),
            total_fragments=sum(m.fragments or 0 for m in streamed),
            requests_by_model=dict(Counter(m.model for m in metrics)),
            requests_by_operation=dict(Counter(m.operation for m in metrics)),
            average_latency_ms=sum(latencies) / len(latencies),
            p50_latency_ms=p50,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            errors_by_type=dict(Counter(m.error for m in metrics if m.error)),
            last_request_time=max(m.timestamp for m in metrics),
            first_request_time=min(m.timestamp for m in metrics),
        )

    @classmethod
    def get_metrics_json(cls, window_minutes: int | None = None) -> dict[str, Any]:
        """Aggregated metrics as a JSON-serializable dict (floats rounded to 2 places)."""
        metrics = cls.get_metrics(window_minutes)
        data: dict[str, Any] = {}
        for name, value in asdict(metrics).items():
            match value:
                case float():
                    data[name] = round(value, 2)
                case datetime():
                    data[name] = value.isoformat()
                case _:
                    data[name] = value
        data["average_fragments_per_stream"] = round(metrics.average_fragments_per_stream, 2)
        return data

    @classmethod
    def reset(cls) -> type[MetricsCollector]:
        with cls._lock:
            cls._metrics = []
        return cls


@contextmanager
def track_request(model: str, operation: str) -> Generator[None, None, None]:
    """Record the latency and outcome of the enclosed block.

    Example:
        >>> with track_request("llama3.2", "chat"):
        ...     result = client.chat(request)
    """
    start = time.perf_counter()
    error: str | None = None
    try:
        yield
    except Exception as exc:
        error = exc.__class__.__name__
        raise
    finally:
        MetricsCollector.record_request(
            model=model,
            operation=operation,
            latency_ms=(time.perf_counter() - start) * 1000,
            success=error is None,
            error=error,
        )


__all__ = ["MetricsCollector", "RequestMetrics", "ServiceMetrics", "track_request"]
