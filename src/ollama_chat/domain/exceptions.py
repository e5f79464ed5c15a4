"""Domain exceptions for the Ollama chat client.

This module defines the error taxonomy shared by the request builders, the
options model, image resolution and the streaming assembler. All exceptions
are plain Python exceptions with no framework dependencies.

Exception Hierarchy:
    - OllamaChatError: Base exception for every error raised by this package
    - InvalidArgumentError: Empty or missing required field (also a ValueError)
    - InvalidRequestError: Request cannot be built (e.g. no model set)
    - InvalidOptionTypeError: Option value of unsupported type (also a TypeError)
    - ImageResolutionError: Image file unreadable or URL unfetchable
    - TransportError: Network, HTTP or timeout failure from a transport
    - StreamingFailure: Streamed response could not be assembled

Note:
    Argument and option errors are raised at call time, before anything
    reaches the network. Transport errors are propagated unmodified through
    the assembler and the clients; nothing in this package retries them.
"""

from __future__ import annotations


class OllamaChatError(Exception):
    """Base exception for all errors raised by this package.

    Catching OllamaChatError catches every failure the builders, assembler
    and clients can produce, including transport failures raised by the
    shipped transports.
    """


class InvalidArgumentError(OllamaChatError, ValueError):
    """Raised when a required argument is empty or missing.

    Common causes:
        - Empty model name passed to a builder
        - Message without content, images or tool calls
        - Unknown message role
    """


class InvalidRequestError(InvalidArgumentError):
    """Raised when a request snapshot cannot be built.

    Raised by ``build()`` when the builder has no model bound. Subclasses
    InvalidArgumentError so callers can treat both the same way.
    """


class InvalidOptionTypeError(OllamaChatError, TypeError):
    """Raised when a generation option value has an unsupported type.

    Option values must be int, float, str or bool. Well-known options
    additionally require a value compatible with their declared kind.
    """


class ImageResolutionError(OllamaChatError):
    """Raised when an image reference cannot be turned into bytes.

    Attributes:
        reference: The offending image reference (file path or URL).
    """

    def __init__(self, reference: str, message: str | None = None) -> None:
        self.reference = reference
        super().__init__(message or f"Failed to resolve image: {reference}")


class TransportError(OllamaChatError):
    """Raised by transports on connectivity, HTTP or timeout failures.

    Attributes:
        status_code: HTTP status code when the service answered with an
            error status. None for connection-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StreamingFailure(OllamaChatError):
    """Raised when a streamed response cannot be assembled into a result.

    Common causes:
        - Stream ended without a fragment marked ``done``
        - Service reported an error object mid-stream
        - Fragment fed to an assembler that already finished or failed
    """


__all__ = [
    "ImageResolutionError",
    "InvalidArgumentError",
    "InvalidOptionTypeError",
    "InvalidRequestError",
    "OllamaChatError",
    "StreamingFailure",
    "TransportError",
]
