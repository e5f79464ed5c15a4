"""Asynchronous client for chat and generation calls.

Mirror of OllamaChatClient built on AsyncHttpTransport (httpx). Streamed
responses are pulled fragment by fragment from the transport's async
iterator, so at most one fragment is in flight and each one is fully
processed before the next line is read.

Key behaviors:
    - Usable as an async context manager; the transport's httpx client is
      created lazily and closed on exit
    - ``on_token`` forces a streaming call, exactly as in the sync client
    - Cancellation (asyncio.CancelledError) leaves no partial result: the
      assembler moves to FAILED, the call is recorded as failed and the
      cancellation propagates
"""

from __future__ import annotations

import asyncio
import logging
import time
import types
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, cast

from ollama_chat.application.builders import ChatRequestBuilder, GenerateRequestBuilder
from ollama_chat.application.interfaces import AsyncTransportInterface, ImageResolverInterface
from ollama_chat.application.streaming import TokenCallback
from ollama_chat.client.sync import (
    AnyRequest,
    FragmentParser,
    _call_plan,
    _operation,
    _record_failure,
    _record_success,
    _with_streaming,
)
from ollama_chat.core.config import settings
from ollama_chat.domain.entities import ChatRequest, GenerateRequest
from ollama_chat.domain.exceptions import TransportError
from ollama_chat.domain.results import ChatResult, GenerateResult, StreamFragment
from ollama_chat.infrastructure.images import ImageResolver
from ollama_chat.infrastructure.transport import AsyncHttpTransport

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AsyncClientOptions:
    """Configuration for the asynchronous client.

    Attributes:
        base_url: Base URL of the Ollama service.
        default_model: Model used by the builder helpers when none is given.
        timeout: Read timeout in seconds.
        max_connections: Maximum number of pooled connections.
        max_keepalive_connections: Maximum keep-alive connections.
        verbose: Log a summary line for every successful call.
    """

    base_url: str = field(default_factory=lambda: settings.ollama.url)
    default_model: str = field(default_factory=lambda: settings.client.default_model)
    timeout: int = field(default_factory=lambda: settings.client.timeout)
    max_connections: int = field(default_factory=lambda: settings.client.max_connections)
    max_keepalive_connections: int = field(
        default_factory=lambda: settings.client.max_keepalive_connections
    )
    verbose: bool = field(default_factory=lambda: settings.client.verbose)


class AsyncOllamaChatClient:
    """Async client for ``/api/chat`` and ``/api/generate``.

    Attributes:
        config: Client configuration (AsyncClientOptions).
        transport: AsyncTransportInterface implementation used for every call.

    Example:
        >>> async with AsyncOllamaChatClient() as client:
        ...     request = client.chat_builder().with_message("user", "Hi").build()
        ...     result = await client.chat(request)
    """

    __slots__ = (
        "_image_resolver",
        "_owns_image_resolver",
        "_owns_transport",
        "config",
        "transport",
    )

    def __init__(
        self,
        config: AsyncClientOptions | None = None,
        transport: AsyncTransportInterface | None = None,
        image_resolver: ImageResolverInterface | None = None,
    ) -> None:
        self.config = config or AsyncClientOptions()
        self._owns_transport = transport is None
        self.transport: AsyncTransportInterface = transport or AsyncHttpTransport(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._image_resolver = image_resolver
        self._owns_image_resolver = image_resolver is None

    async def __aenter__(self) -> AsyncOllamaChatClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport and image resolver if this client created them."""
        if self._owns_transport and isinstance(self.transport, AsyncHttpTransport):
            await self.transport.aclose()
        if self._owns_image_resolver and isinstance(self._image_resolver, ImageResolver):
            self._image_resolver.close()
            self._image_resolver = None

    @property
    def image_resolver(self) -> ImageResolverInterface:
        if self._image_resolver is None:
            self._image_resolver = ImageResolver()
        return self._image_resolver

    def chat_builder(self, model: str | None = None) -> ChatRequestBuilder:
        return ChatRequestBuilder.get_instance(
            model or self.config.default_model, image_resolver=self.image_resolver
        )

    def generate_builder(self, model: str | None = None) -> GenerateRequestBuilder:
        return GenerateRequestBuilder.get_instance(
            model or self.config.default_model, image_resolver=self.image_resolver
        )

    async def chat(self, request: ChatRequest, on_token: TokenCallback | None = None) -> ChatResult:
        """Send a chat request and return the assembled result.

        Raises:
            TransportError: If the service cannot be reached or answers with
                an error status.
            StreamingFailure: If the stream ends early or reports an error.
            asyncio.CancelledError: If the calling task is cancelled.
        """
        result = await self._execute(_with_streaming(request, on_token), on_token)
        return cast(ChatResult, result)

    async def generate(
        self, request: GenerateRequest, on_token: TokenCallback | None = None
    ) -> GenerateResult:
        """Send a one-shot generation request and return the assembled result.

        ``on_token`` receives the full text generated so far after each fragment.
        """
        result = await self._execute(_with_streaming(request, on_token), on_token)
        return cast(GenerateResult, result)

    async def _fragments(
        self, endpoint: str, payload: dict[str, Any], parse: FragmentParser
    ) -> AsyncIterator[StreamFragment]:
        async with aclosing(self.transport.stream(endpoint, payload)) as chunks:
            async for chunk in chunks:
                yield parse(chunk)

    async def _execute(
        self, request: AnyRequest, on_token: TokenCallback | None
    ) -> ChatResult | GenerateResult:
        endpoint, payload, assembler, parse = _call_plan(request, on_token)
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()

        try:
            if request.stream:
                async with aclosing(self._fragments(endpoint, payload, parse)) as fragments:
                    result = await assembler.aconsume(fragments)
            else:
                assembler.feed(parse(await self.transport.send(endpoint, payload)))
                result = assembler.finish()
        except asyncio.CancelledError as exc:
            assembler.abort()
            _record_failure(
                "async", request, request_id, start_time, exc, assembler.fragments_received
            )
            logger.warning("%s with %s was cancelled", _operation(request), request.model)
            raise
        except TransportError as exc:
            assembler.abort()
            _record_failure(
                "async", request, request_id, start_time, exc, assembler.fragments_received
            )
            logger.exception(
                "Transport error in %s with %s: %s", _operation(request), request.model, exc.status_code
            )
            raise
        except Exception as exc:
            assembler.abort()
            _record_failure(
                "async", request, request_id, start_time, exc, assembler.fragments_received
            )
            logger.exception("Error in %s with %s", _operation(request), request.model)
            raise

        latency_ms = _record_success(
            "async", request, request_id, start_time, result, assembler.fragments_received
        )
        if self.config.verbose:
            logger.info(
                "%s with %s finished in %.1fms (%d chars)",
                _operation(request),
                request.model,
                latency_ms,
                len(result.response),
            )
        return result


__all__ = ["AsyncClientOptions", "AsyncOllamaChatClient"]
