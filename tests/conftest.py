"""
Pytest configuration and fixtures for the Ollama chat client tests.
"""

import json
import socketserver
import threading
from http.server import BaseHTTPRequestHandler
from types import SimpleNamespace

import pytest

from ollama_chat.telemetry.metrics import MetricsCollector
from ollama_chat.telemetry.structured_logging import configure_request_log

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4

FINAL_STATS = {
    "done_reason": "stop",
    "total_duration": 500_000_000,
    "load_duration": 0,
    "prompt_eval_count": 12,
    "prompt_eval_duration": 100_000_000,
    "eval_count": 3,
    "eval_duration": 300_000_000,
}


class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class OllamaRequestHandler(BaseHTTPRequestHandler):
    """Emulates /api/chat and /api/generate (JSON and NDJSON) plus an image host."""

    def _json_response(self, data: dict, status: int = 200):
        payload = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _ndjson_response(self, objects: list[dict]):
        self.send_response(200)
        self.send_header("Content-Type", "application/x-ndjson")
        self.end_headers()
        for obj in objects:
            self.wfile.write(json.dumps(obj).encode("utf-8") + b"\n")
            self.wfile.flush()

    def do_GET(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        state.setdefault("image_fetches", []).append(self.path)
        image = state["images"].get(self.path)
        if image is None:
            self._json_response({"error": "not found"}, status=404)
            return
        self.send_response(200)
        self.send_header("Content-Type", "image/png")
        self.send_header("Content-Length", str(len(image)))
        self.end_headers()
        self.wfile.write(image)

    def do_POST(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b"{}"
        payload = json.loads(raw.decode("utf-8"))

        match self.path:
            case "/api/chat":
                self._handle(state, payload, "chat")
            case "/api/generate":
                self._handle(state, payload, "generate")
            case _:
                self._json_response({"error": "not found"}, status=404)

    def _handle(self, state: dict, payload: dict, kind: str):
        state[f"{kind}_calls"].append(payload)
        failures = state[f"{kind}_failures"]
        if failures > 0:
            state[f"{kind}_failures"] = failures - 1
            self._json_response({"error": f"model '{payload.get('model')}' not found"}, status=404)
            return
        if state["raw_lines"] is not None:
            self.send_response(200)
            self.send_header("Content-Type", "application/x-ndjson")
            self.end_headers()
            self.wfile.write(b"\n".join(state["raw_lines"]) + b"\n")
            return

        fragments = state[f"{kind}_fragments"] or self._default_fragments(payload, kind)
        model = payload.get("model")
        final = {"model": model, "created_at": "2025-01-01T00:00:00Z", "done": True, **FINAL_STATS}

        if kind == "chat":
            final_message = {"role": "assistant", "content": ""}
            if state["tool_calls"]:
                final_message["tool_calls"] = state["tool_calls"]
        else:
            final["response"] = ""
            final["context"] = [1, 2, 3]

        if not payload.get("stream"):
            text = "".join(fragments)
            if kind == "chat":
                final["message"] = {**final_message, "content": text}
            else:
                final["response"] = text
            self._json_response(final)
            return

        objects = []
        for index, text in enumerate(fragments):
            if state["error_after"] is not None and index == state["error_after"]:
                objects.append({"error": "model runner crashed"})
                break
            obj = {"model": model, "created_at": "2025-01-01T00:00:00Z", "done": False}
            if kind == "chat":
                obj["message"] = {"role": "assistant", "content": text}
            else:
                obj["response"] = text
            objects.append(obj)
        else:
            if not state["truncate"]:
                if kind == "chat":
                    final["message"] = final_message
                objects.append(final)
        self._ndjson_response(objects)

    @staticmethod
    def _default_fragments(payload: dict, kind: str) -> list[str]:
        if kind == "chat":
            messages = payload.get("messages") or [{"content": ""}]
            return ["Echo", ": ", messages[-1].get("content", "")]
        return ["ECHO", ": ", payload.get("prompt", "")]

    def log_message(self, format, *args):
        # Suppress default HTTP server logging to keep test output clean.
        return


@pytest.fixture
def ollama_server():
    """Start a lightweight HTTP server that mimics the Ollama chat endpoints."""
    state = {
        "chat_calls": [],
        "generate_calls": [],
        "chat_failures": 0,
        "generate_failures": 0,
        "chat_fragments": None,
        "generate_fragments": None,
        "tool_calls": None,
        "error_after": None,
        "truncate": False,
        "raw_lines": None,
        "images": {"/images/cat.png": PNG_BYTES},
    }

    server = ThreadedTCPServer(("127.0.0.1", 0), OllamaRequestHandler)
    server.server_state = state  # type: ignore[attr-defined]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    base_url = f"http://127.0.0.1:{server.server_address[1]}"

    try:
        yield SimpleNamespace(base_url=base_url, state=state)
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def image_file(tmp_path):
    """A small PNG-like file on disk."""
    path = tmp_path / "cat.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture(autouse=True, scope="session")
def request_log_dir(tmp_path_factory):
    """Keep structured request logs out of the working directory."""
    log_dir = tmp_path_factory.mktemp("logs")
    configure_request_log(log_dir)
    return log_dir


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset collected metrics before and after each test."""
    MetricsCollector.reset()
    yield
    MetricsCollector.reset()
