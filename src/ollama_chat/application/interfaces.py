"""Interfaces (Protocols) for application layer collaborators.

The builders, the streaming assembler and the clients depend on these
protocols rather than on concrete HTTP or filesystem code. Implementations
don't need to inherit from them; they only need the methods.

Key Interfaces:
    - TransportInterface: Blocking request/response and NDJSON streaming
    - AsyncTransportInterface: Async request/response and NDJSON streaming
    - ImageResolverInterface: Turns an image reference into raw bytes
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ollama_chat.domain.value_objects import ImageReference

ChunkHandler = Callable[[dict[str, Any]], None]
"""Callback receiving each decoded NDJSON object of a streamed response."""


class TransportInterface(Protocol):
    """Protocol for blocking transports.

    Implementations own the base URL, timeouts, connection pooling and any
    retry policy. Failures must surface as exceptions; the core propagates
    them unchanged and never retries.
    """

    def send(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` to ``endpoint`` and return the decoded JSON object.

        Raises:
            TransportError: On connectivity, HTTP or timeout failures.
        """
        ...

    def send_streaming(
        self, endpoint: str, payload: dict[str, Any], on_chunk: ChunkHandler
    ) -> dict[str, Any]:
        """POST ``payload`` and feed every decoded NDJSON line to ``on_chunk``.

        ``on_chunk`` is invoked on the calling thread, one line at a time and
        in arrival order; the next line is not read until it returns.

        Returns:
            The final decoded object (the one with ``done: true``), or the
            last object received when the stream ended early.

        Raises:
            TransportError: On connectivity, HTTP or timeout failures.
        """
        ...


class AsyncTransportInterface(Protocol):
    """Protocol for async transports."""

    async def send(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` to ``endpoint`` and return the decoded JSON object."""
        ...

    def stream(self, endpoint: str, payload: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """POST ``payload`` and yield decoded NDJSON objects in arrival order.

        Single consumer: the next line is only read when the consumer asks
        for it, so at most one fragment is in flight.
        """
        ...


class ImageResolverInterface(Protocol):
    """Protocol for image resolution."""

    def resolve_to_bytes(self, reference: ImageReference) -> bytes:
        """Return the raw bytes behind ``reference``.

        Raises:
            ImageResolutionError: If the file cannot be read or the URL
                cannot be fetched. The error names the reference.
        """
        ...


__all__ = [
    "AsyncTransportInterface",
    "ChunkHandler",
    "ImageResolverInterface",
    "TransportInterface",
]
