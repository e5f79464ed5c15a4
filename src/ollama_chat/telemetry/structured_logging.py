"""Structured request logging for the Ollama chat client.

Every chat and generate call made through a client emits one JSON object
describing its outcome. Events are written as JSON Lines to
``<log_dir>/requests.jsonl`` through a dedicated, non-propagating logger,
so they never mix with the application's regular log output.

Key Features:
    - JSON Lines Format: One JSON object per line for easy parsing
    - Automatic Timestamps: Injected if not present in event data
    - Custom Serialization: Handles datetime and Path objects correctly
    - Lazy Setup: The log directory and file handler are created on the
      first event, not at import time

Event Schema:
    - event: "ollama_request"
    - client_type: "sync" or "async"
    - operation: "chat", "chat_stream", "generate" or "generate_stream"
    - status: "success" or "error"
    - model, request_id, latency_ms, messages_count, fragments
    - error_type, error_message, http_status (errors only)
    - timestamp: ISO 8601 (auto-injected if missing)
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from ollama_chat.core.config import settings

REQUEST_LOGGER_NAME = "ollama_chat.requests"
REQUEST_LOG_FILENAME = "requests.jsonl"

REQUEST_LOGGER = logging.getLogger(REQUEST_LOGGER_NAME)
REQUEST_LOGGER.setLevel(logging.INFO)
REQUEST_LOGGER.propagate = False

_handler_lock = threading.Lock()
_file_handler: logging.FileHandler | None = None


def configure_request_log(log_dir: Path | str | None = None) -> Path:
    """Point the request log at ``log_dir`` (default: settings.logging.log_dir).

    Replaces any file handler installed earlier. Other handlers attached to
    the request logger are left alone.

    Returns:
        Path of the JSON Lines file events are written to.
    """
    global _file_handler

    directory = Path(log_dir) if log_dir is not None else settings.logging.log_dir
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / REQUEST_LOG_FILENAME

    with _handler_lock:
        if _file_handler is not None:
            REQUEST_LOGGER.removeHandler(_file_handler)
            _file_handler.close()
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        REQUEST_LOGGER.addHandler(handler)
        _file_handler = handler
    return path


def _ensure_handler() -> None:
    if _file_handler is None:
        configure_request_log()


def _json_default(value: Any) -> Any:
    match value:
        case datetime():
            return TypeAdapter(datetime).dump_python(value, mode="json")
        case _:
            return str(value)


def log_request_event(event: dict[str, Any]) -> None:
    """Emit a structured request event.

    Args:
        event: Event payload. The ``timestamp`` field is added if missing
            (the dict is mutated).

    Example:
        >>> log_request_event({
        ...     "event": "ollama_request",
        ...     "operation": "chat",
        ...     "status": "success",
        ...     "model": "llama3.2",
        ...     "latency_ms": 1234.56,
        ... })
    """
    _ensure_handler()
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    REQUEST_LOGGER.info(json.dumps(event, default=_json_default))


__all__ = [
    "REQUEST_LOGGER",
    "REQUEST_LOGGER_NAME",
    "configure_request_log",
    "log_request_event",
]
