"""Synchronous client for chat and generation calls.

This module ties the pieces together: it serializes an immutable request,
hands it to a transport, feeds the response objects through a
StreamingAssembler and returns the assembled result. Every call is
measured and logged.

Key behaviors:
    - Uses HttpTransport (requests.Session with HTTPAdapter pooling) unless
      another TransportInterface implementation is supplied
    - Passing ``on_token`` forces a streaming call; the callback receives
      incremental text for chat and cumulative text for generate
    - Errors are never swallowed: transport, streaming and callback failures
      are logged, recorded as failed metrics and re-raised unchanged
    - No retries; whatever the transport raises reaches the caller

Thread safety:
    - Each OllamaChatClient owns one transport; requests sessions are not
      guaranteed thread-safe, so use one client per thread
"""

from __future__ import annotations

import dataclasses
import logging
import time
import types
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar, cast

from ollama_chat.application.builders import ChatRequestBuilder, GenerateRequestBuilder
from ollama_chat.application.interfaces import ImageResolverInterface, TransportInterface
from ollama_chat.application.streaming import StreamingAssembler, StreamMode, TokenCallback
from ollama_chat.core.config import settings
from ollama_chat.domain.entities import ChatRequest, GenerateRequest
from ollama_chat.domain.exceptions import TransportError
from ollama_chat.domain.results import ChatResult, GenerateResult, StreamFragment
from ollama_chat.infrastructure.images import ImageResolver
from ollama_chat.infrastructure.mappers import (
    CHAT_ENDPOINT,
    GENERATE_ENDPOINT,
    chat_chunk_to_fragment,
    generate_chunk_to_fragment,
    serialize_chat_request,
    serialize_generate_request,
)
from ollama_chat.infrastructure.transport import HttpTransport
from ollama_chat.telemetry.metrics import MetricsCollector
from ollama_chat.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

AnyRequest = ChatRequest | GenerateRequest
RequestT = TypeVar("RequestT", ChatRequest, GenerateRequest)
FragmentParser = Callable[[dict[str, Any]], StreamFragment]


@dataclass(slots=True, frozen=True)
class ClientOptions:
    """Configuration for the synchronous client.

    Defaults come from ``ollama_chat.core.config.settings``. All time values
    are in seconds.

    Attributes:
        base_url: Base URL of the Ollama service.
        default_model: Model used by ``chat_builder()``/``generate_builder()``
            when no model is given.
        timeout: Request timeout; for streams, the longest wait between lines.
        pool_connections: Number of connection pools kept by requests.
        pool_maxsize: Max connections per pool.
        verbose: Log a summary line for every successful call.
    """

    base_url: str = field(default_factory=lambda: settings.ollama.url)
    default_model: str = field(default_factory=lambda: settings.client.default_model)
    timeout: int = field(default_factory=lambda: settings.client.timeout)
    pool_connections: int = field(default_factory=lambda: settings.client.pool_connections)
    pool_maxsize: int = field(default_factory=lambda: settings.client.pool_maxsize)
    verbose: bool = field(default_factory=lambda: settings.client.verbose)


# ============================================================================
# Helpers shared with the async client
# ============================================================================


def _with_streaming(request: RequestT, on_token: TokenCallback | None) -> RequestT:
    """A token callback only makes sense on a streamed response."""
    if on_token is not None and not request.stream:
        return dataclasses.replace(request, stream=True)
    return request


def _operation(request: AnyRequest) -> str:
    base = "chat" if isinstance(request, ChatRequest) else "generate"
    return f"{base}_stream" if request.stream else base


def _call_plan(
    request: AnyRequest, on_token: TokenCallback | None
) -> tuple[str, dict[str, Any], StreamingAssembler, FragmentParser]:
    """Return endpoint, payload, assembler and chunk parser for ``request``."""
    match request:
        case ChatRequest():
            assembler = StreamingAssembler(StreamMode.CHAT, history=request.messages, on_token=on_token)
            return CHAT_ENDPOINT, serialize_chat_request(request), assembler, chat_chunk_to_fragment
        case GenerateRequest():
            assembler = StreamingAssembler(StreamMode.GENERATE, on_token=on_token)
            return (
                GENERATE_ENDPOINT,
                serialize_generate_request(request),
                assembler,
                generate_chunk_to_fragment,
            )
        case _:
            raise TypeError(f"Expected ChatRequest or GenerateRequest, got {type(request).__name__}")


def _request_fields(request: AnyRequest) -> dict[str, Any]:
    match request:
        case ChatRequest():
            return {"messages_count": len(request.messages)}
        case GenerateRequest():
            return {"prompt_chars": len(request.prompt), "images_count": len(request.images)}
        case _:
            return {}


def _record_success(
    client_type: str,
    request: AnyRequest,
    request_id: str,
    start_time: float,
    result: ChatResult | GenerateResult,
    fragments: int,
) -> float:
    """Record metrics and the structured event for a successful call.

    Returns:
        The call latency in milliseconds.
    """
    latency_ms = (time.perf_counter() - start_time) * 1000
    operation = _operation(request)

    MetricsCollector.record_request(
        model=request.model,
        operation=operation,
        latency_ms=latency_ms,
        success=True,
        fragments=fragments if request.stream else None,
    )

    event: dict[str, Any] = {
        "event": "ollama_request",
        "client_type": client_type,
        "operation": operation,
        "status": "success",
        "model": request.model,
        "stream": request.stream,
        "request_id": request_id,
        "latency_ms": round(latency_ms, 3),
        "response_chars": len(result.response),
        **_request_fields(request),
        "options": request.options.to_wire(),
    }
    if request.stream:
        event["fragments"] = fragments
    stats = result.statistics
    if stats is not None:
        event.update(
            {
                "total_duration_ms": round(stats.total_duration_ms, 3) if stats.total_duration else None,
                "model_load_ms": round(stats.load_duration_ms, 3),
                "model_warm_start": stats.model_warm_start,
                "prompt_eval_count": stats.prompt_eval_count,
                "generation_eval_count": stats.eval_count,
                "done_reason": stats.done_reason,
            }
        )
    log_request_event(event)
    return latency_ms


def _record_failure(
    client_type: str,
    request: AnyRequest,
    request_id: str,
    start_time: float,
    exc: BaseException,
    fragments: int,
) -> None:
    """Record metrics and the structured event for a failed call."""
    latency_ms = (time.perf_counter() - start_time) * 1000
    operation = _operation(request)
    error_type = exc.__class__.__name__
    status_code = exc.status_code if isinstance(exc, TransportError) else None
    error_name = f"{error_type}:{status_code}" if status_code else error_type

    MetricsCollector.record_request(
        model=request.model,
        operation=operation,
        latency_ms=latency_ms,
        success=False,
        error=error_name,
        fragments=fragments if request.stream else None,
    )

    log_data: dict[str, Any] = {
        "event": "ollama_request",
        "client_type": client_type,
        "operation": operation,
        "status": "error",
        "model": request.model,
        "stream": request.stream,
        "request_id": request_id,
        "latency_ms": round(latency_ms, 3),
        **_request_fields(request),
        "error_type": error_type,
        "error_message": str(exc),
    }
    if request.stream:
        log_data["fragments"] = fragments
    if status_code is not None:
        log_data["http_status"] = status_code

    log_request_event(log_data)


# ============================================================================
# Client
# ============================================================================


class OllamaChatClient:
    """Blocking client for ``/api/chat`` and ``/api/generate``.

    Attributes:
        config: Client configuration (ClientOptions).
        transport: TransportInterface implementation used for every call.

    Example:
        >>> with OllamaChatClient() as client:
        ...     request = client.chat_builder("llama3.2").with_message("user", "Hi").build()
        ...     result = client.chat(request, on_token=lambda text: print(text, end=""))
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
        config: ClientOptions | None = None,
        transport: TransportInterface | None = None,
        image_resolver: ImageResolverInterface | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration. If None, uses ClientOptions().
            transport: Transport to use. If None, an HttpTransport is created
                from ``config`` and closed by ``close()``.
            image_resolver: Resolver handed to builders created by this
                client. If None, an ImageResolver is created on first use
                and closed by ``close()``.
        """
        self.config = config or ClientOptions()
        self._owns_transport = transport is None
        self.transport: TransportInterface = transport or HttpTransport(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            pool_connections=self.config.pool_connections,
            pool_maxsize=self.config.pool_maxsize,
        )
        self._image_resolver = image_resolver
        self._owns_image_resolver = image_resolver is None

    def __enter__(self) -> OllamaChatClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport and image resolver if this client created them."""
        if self._owns_transport and isinstance(self.transport, HttpTransport):
            self.transport.close()
        if self._owns_image_resolver and isinstance(self._image_resolver, ImageResolver):
            self._image_resolver.close()
            self._image_resolver = None

    @property
    def image_resolver(self) -> ImageResolverInterface:
        if self._image_resolver is None:
            self._image_resolver = ImageResolver()
        return self._image_resolver

    def chat_builder(self, model: str | None = None) -> ChatRequestBuilder:
        """Return a ChatRequestBuilder bound to ``model`` (default: config.default_model)."""
        return ChatRequestBuilder.get_instance(
            model or self.config.default_model, image_resolver=self.image_resolver
        )

    def generate_builder(self, model: str | None = None) -> GenerateRequestBuilder:
        """Return a GenerateRequestBuilder bound to ``model`` (default: config.default_model)."""
        return GenerateRequestBuilder.get_instance(
            model or self.config.default_model, image_resolver=self.image_resolver
        )

    def chat(self, request: ChatRequest, on_token: TokenCallback | None = None) -> ChatResult:
        """Send a chat request and return the assembled result.

        Args:
            request: Immutable request from ChatRequestBuilder.build().
            on_token: Called with each fragment's text as it arrives. Forces
                a streaming call.

        Returns:
            ChatResult whose history is the request's messages plus the
            assistant reply.

        Raises:
            TransportError: If the service cannot be reached or answers with
                an error status.
            StreamingFailure: If the stream ends early or reports an error.
            Exception: Anything raised by ``on_token``, unchanged.
        """
        return cast(ChatResult, self._execute(_with_streaming(request, on_token), on_token))

    def generate(
        self, request: GenerateRequest, on_token: TokenCallback | None = None
    ) -> GenerateResult:
        """Send a one-shot generation request and return the assembled result.

        Args:
            request: Immutable request from GenerateRequestBuilder.build().
            on_token: Called with the full text generated so far after each
                fragment. Forces a streaming call.

        Raises:
            TransportError: If the service cannot be reached or answers with
                an error status.
            StreamingFailure: If the stream ends early or reports an error.
            Exception: Anything raised by ``on_token``, unchanged.
        """
        return cast(GenerateResult, self._execute(_with_streaming(request, on_token), on_token))

    def _execute(
        self, request: AnyRequest, on_token: TokenCallback | None
    ) -> ChatResult | GenerateResult:
        endpoint, payload, assembler, parse = _call_plan(request, on_token)
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()

        try:
            if request.stream:
                self.transport.send_streaming(
                    endpoint, payload, lambda chunk: assembler.feed(parse(chunk))
                )
            else:
                assembler.feed(parse(self.transport.send(endpoint, payload)))
            result = assembler.finish()
        except TransportError as exc:
            fragments = assembler.fragments_received
            assembler.abort()
            _record_failure("sync", request, request_id, start_time, exc, fragments)
            logger.exception(
                "Transport error in %s with %s: %s", _operation(request), request.model, exc.status_code
            )
            raise
        except Exception as exc:
            fragments = assembler.fragments_received
            assembler.abort()
            _record_failure("sync", request, request_id, start_time, exc, fragments)
            logger.exception("Error in %s with %s", _operation(request), request.model)
            raise

        latency_ms = _record_success(
            "sync", request, request_id, start_time, result, assembler.fragments_received
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


__all__ = ["ClientOptions", "OllamaChatClient"]
