"""
Behavioral tests for AsyncOllamaChatClient.

Uses a real httpx client against the ollama_server fixture. Streaming tests
check that fragments are assembled in arrival order and that cancellation
leaves nothing behind.
"""

import asyncio

import pytest

from ollama_chat import (
    AsyncClientOptions,
    AsyncHttpTransport,
    AsyncOllamaChatClient,
    Role,
    StreamingFailure,
    TransportError,
)
from ollama_chat.infrastructure.images import ImageResolver
from ollama_chat.telemetry.metrics import MetricsCollector


def make_client(ollama_server) -> AsyncOllamaChatClient:
    config = AsyncClientOptions(base_url=ollama_server.base_url, default_model="llama3.2", timeout=10)
    return AsyncOllamaChatClient(config=config)


@pytest.mark.asyncio
class TestAsyncClientLifecycle:
    """Tests for client and transport lifecycle."""

    async def test_transport_client_is_created_lazily(self, ollama_server):
        async with make_client(ollama_server) as client:
            assert isinstance(client.transport, AsyncHttpTransport)
            assert client.transport._client is None
            await client.chat(client.chat_builder().with_message(Role.USER, "Hi").build())
            assert client.transport._client is not None

        assert client.transport._client is None

    async def test_supplied_transport_is_not_closed(self, ollama_server):
        async with AsyncHttpTransport(base_url=ollama_server.base_url) as transport:
            async with AsyncOllamaChatClient(transport=transport) as client:
                await client.generate(client.generate_builder("llama3.2").with_prompt("Hi").build())
            assert transport._client is not None

    async def test_close_releases_owned_image_resolver(self, ollama_server):
        async with make_client(ollama_server) as client:
            assert isinstance(client.image_resolver, ImageResolver)

        assert client._image_resolver is None


@pytest.mark.asyncio
class TestAsyncChat:
    """Tests for async chat calls."""

    async def test_non_streaming_chat(self, ollama_server):
        async with make_client(ollama_server) as client:
            request = client.chat_builder().with_message(Role.USER, "Capital of France?").build()
            result = await client.chat(request)

        assert result.response == "Echo: Capital of France?"
        assert len(result.history) == 2
        assert result.statistics.eval_count == 3

    async def test_streaming_chat_with_callback(self, ollama_server):
        ollama_server.state["chat_fragments"] = ["The", " capital", " is", " Paris"]
        seen: list[str] = []
        async with make_client(ollama_server) as client:
            request = client.chat_builder().with_message(Role.USER, "Capital?").build()
            result = await client.chat(request, on_token=seen.append)

        assert seen == ["The", " capital", " is", " Paris", ""]
        assert result.response == "The capital is Paris"
        assert ollama_server.state["chat_calls"][0]["stream"] is True

    async def test_concurrent_calls(self, ollama_server):
        async with make_client(ollama_server) as client:
            requests = [
                client.chat_builder().with_message(Role.USER, f"q{i}").with_streaming().build()
                for i in range(5)
            ]
            results = await asyncio.gather(*(client.chat(r) for r in requests))

        assert [r.response for r in results] == [f"Echo: q{i}" for i in range(5)]
        assert MetricsCollector.get_metrics().successful_requests == 5


@pytest.mark.asyncio
class TestAsyncGenerate:
    """Tests for async generation calls."""

    async def test_streaming_generate_is_cumulative(self, ollama_server):
        ollama_server.state["generate_fragments"] = ["Once", " upon", " a time"]
        seen: list[str] = []
        async with make_client(ollama_server) as client:
            request = client.generate_builder().with_prompt("Story").build()
            result = await client.generate(request, on_token=seen.append)

        assert seen[-1] == result.response == "Once upon a time"
        assert seen[0] == "Once"
        assert result.context == (1, 2, 3)

    async def test_non_streaming_generate(self, ollama_server):
        async with make_client(ollama_server) as client:
            request = client.generate_builder().with_prompt("Hi").build()
            result = await client.generate(request)

        assert result.response == "ECHO: Hi"
        assert ollama_server.state["generate_calls"][0]["stream"] is False


@pytest.mark.asyncio
class TestAsyncFailures:
    """Tests for async error propagation."""

    async def test_http_error(self, ollama_server):
        ollama_server.state["chat_failures"] = 1
        async with make_client(ollama_server) as client:
            request = client.chat_builder("missing").with_message(Role.USER, "Hi").build()
            with pytest.raises(TransportError) as exc_info:
                await client.chat(request)

        assert exc_info.value.status_code == 404

    async def test_http_error_on_stream(self, ollama_server):
        ollama_server.state["chat_failures"] = 1
        async with make_client(ollama_server) as client:
            request = client.chat_builder().with_message(Role.USER, "Hi").with_streaming().build()
            with pytest.raises(TransportError) as exc_info:
                await client.chat(request)

        assert exc_info.value.status_code == 404
        assert "not found" in str(exc_info.value)

    async def test_connection_refused(self):
        config = AsyncClientOptions(base_url="http://127.0.0.1:9", timeout=2)
        async with AsyncOllamaChatClient(config=config) as client:
            request = client.chat_builder("llama3.2").with_message(Role.USER, "Hi").build()
            with pytest.raises(TransportError):
                await client.chat(request)

    async def test_truncated_stream(self, ollama_server):
        ollama_server.state["truncate"] = True
        async with make_client(ollama_server) as client:
            request = client.generate_builder().with_prompt("Hi").with_streaming().build()
            with pytest.raises(StreamingFailure):
                await client.generate(request)

        (metric,) = MetricsCollector.snapshot()
        assert metric.success is False
        assert metric.error == "StreamingFailure"

    async def test_error_mid_stream(self, ollama_server):
        ollama_server.state["chat_fragments"] = ["a", "b"]
        ollama_server.state["error_after"] = 1
        async with make_client(ollama_server) as client:
            request = client.chat_builder().with_message(Role.USER, "Hi").with_streaming().build()
            with pytest.raises(StreamingFailure, match="model runner crashed"):
                await client.chat(request)

    async def test_cancellation_is_recorded_and_propagates(self, ollama_server):
        """Test that a cancelled call fails cleanly."""
        started = asyncio.Event()

        def on_token(text: str) -> None:
            started.set()

        async with make_client(ollama_server) as client:
            # a long stream keeps the call busy until it is cancelled
            ollama_server.state["chat_fragments"] = ["x"] * 5000
            request = client.chat_builder().with_message(Role.USER, "Hi").build()
            task = asyncio.create_task(client.chat(request, on_token=on_token))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        (metric,) = MetricsCollector.snapshot()
        assert metric.success is False
        assert metric.error == "CancelledError"
