"""
Tests for the HTTP transports.

Both transports are pointed at the ollama_server fixture; ``raw_lines`` lets
a test control the exact bytes of a streamed body.
"""

import json

import pytest

from ollama_chat.domain.exceptions import TransportError
from ollama_chat.infrastructure.mappers import CHAT_ENDPOINT, GENERATE_ENDPOINT
from ollama_chat.infrastructure.transport import AsyncHttpTransport, HttpTransport

CHAT_PAYLOAD = {"model": "llama3.2", "messages": [{"role": "user", "content": "Hi"}], "stream": True}


def line(obj: dict) -> bytes:
    return json.dumps(obj).encode("utf-8")


class TestHttpTransport:
    """Tests for the blocking requests-based transport."""

    def test_send_returns_decoded_object(self, ollama_server):
        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            data = transport.send(GENERATE_ENDPOINT, {"model": "llama3.2", "prompt": "Hi"})
        assert data["response"] == "ECHO: Hi"
        assert data["done"] is True

    def test_streaming_feeds_every_object_in_order(self, ollama_server):
        ollama_server.state["chat_fragments"] = ["a", "b"]
        seen: list[dict] = []
        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            last = transport.send_streaming(CHAT_ENDPOINT, CHAT_PAYLOAD, seen.append)

        assert [c["message"]["content"] for c in seen] == ["a", "b", ""]
        assert last is seen[-1]
        assert last["done"] is True

    def test_blank_lines_are_skipped(self, ollama_server):
        ollama_server.state["raw_lines"] = [
            line({"message": {"content": "x"}, "done": False}),
            b"",
            b"   ",
            line({"message": {"content": ""}, "done": True}),
        ]
        seen: list[dict] = []
        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            transport.send_streaming(CHAT_ENDPOINT, CHAT_PAYLOAD, seen.append)
        assert len(seen) == 2

    def test_malformed_line_raises(self, ollama_server):
        ollama_server.state["raw_lines"] = [line({"done": False}), b"{not json"]
        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            with pytest.raises(TransportError, match="Malformed NDJSON"):
                transport.send_streaming(CHAT_ENDPOINT, CHAT_PAYLOAD, lambda chunk: None)

    def test_empty_stream_raises(self, ollama_server):
        ollama_server.state["raw_lines"] = []
        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            with pytest.raises(TransportError, match="Empty streaming response"):
                transport.send_streaming(CHAT_ENDPOINT, CHAT_PAYLOAD, lambda chunk: None)

    def test_error_status_carries_code_and_detail(self, ollama_server):
        ollama_server.state["generate_failures"] = 1
        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            with pytest.raises(TransportError) as exc_info:
                transport.send(GENERATE_ENDPOINT, {"model": "ghost", "prompt": "Hi"})

        assert exc_info.value.status_code == 404
        assert "model 'ghost' not found" in str(exc_info.value)
        assert exc_info.value.__cause__ is not None

    def test_handler_errors_propagate_unchanged(self, ollama_server):
        def handler(chunk: dict) -> None:
            raise KeyError("consumer bug")

        with HttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            with pytest.raises(KeyError):
                transport.send_streaming(CHAT_ENDPOINT, CHAT_PAYLOAD, handler)


@pytest.mark.asyncio
class TestAsyncHttpTransport:
    """Tests for the httpx-based transport."""

    async def test_send(self, ollama_server):
        async with AsyncHttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            data = await transport.send(GENERATE_ENDPOINT, {"model": "llama3.2", "prompt": "Hi"})
        assert data["response"] == "ECHO: Hi"

    async def test_stream_yields_objects(self, ollama_server):
        ollama_server.state["chat_fragments"] = ["a", "b", "c"]
        async with AsyncHttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            chunks = [chunk async for chunk in transport.stream(CHAT_ENDPOINT, CHAT_PAYLOAD)]

        assert [c["done"] for c in chunks] == [False, False, False, True]

    async def test_stream_error_status(self, ollama_server):
        ollama_server.state["chat_failures"] = 1
        async with AsyncHttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            with pytest.raises(TransportError) as exc_info:
                async for _ in transport.stream(CHAT_ENDPOINT, CHAT_PAYLOAD):
                    pass
        assert exc_info.value.status_code == 404

    async def test_stream_malformed_line(self, ollama_server):
        ollama_server.state["raw_lines"] = [b"[1, 2, 3]"]
        async with AsyncHttpTransport(base_url=ollama_server.base_url, timeout=5) as transport:
            with pytest.raises(TransportError, match="Expected JSON object"):
                async for _ in transport.stream(CHAT_ENDPOINT, CHAT_PAYLOAD):
                    pass

    async def test_connection_failure(self):
        async with AsyncHttpTransport(base_url="http://127.0.0.1:9", timeout=2) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(CHAT_ENDPOINT, CHAT_PAYLOAD)
        assert exc_info.value.status_code is None
