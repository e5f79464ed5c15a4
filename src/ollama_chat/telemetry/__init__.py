"""Telemetry utilities (metrics and structured request logging)."""

from ollama_chat.telemetry.metrics import (
    MetricsCollector,
    RequestMetrics,
    ServiceMetrics,
    track_request,
)
from ollama_chat.telemetry.structured_logging import configure_request_log, log_request_event

__all__ = [
    "MetricsCollector",
    "RequestMetrics",
    "ServiceMetrics",
    "configure_request_log",
    "log_request_event",
    "track_request",
]
