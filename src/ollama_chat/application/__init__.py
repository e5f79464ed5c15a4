"""Application layer for the Ollama chat client.

This package contains the request builders, the streaming assembler and the
protocols the clients use to talk to transports and image resolvers. It
depends only on the domain layer and on those protocols, never on concrete
HTTP code.
"""

from ollama_chat.application.builders import (
    ChatRequestBuilder,
    GenerateRequestBuilder,
    response_format,
)
from ollama_chat.application.interfaces import (
    AsyncTransportInterface,
    ChunkHandler,
    ImageResolverInterface,
    TransportInterface,
)
from ollama_chat.application.streaming import (
    AssemblerState,
    StreamingAssembler,
    StreamMode,
    TokenCallback,
)

__all__ = [
    "AssemblerState",
    "AsyncTransportInterface",
    "ChatRequestBuilder",
    "ChunkHandler",
    "GenerateRequestBuilder",
    "ImageResolverInterface",
    "StreamMode",
    "StreamingAssembler",
    "TokenCallback",
    "TransportInterface",
    "response_format",
]
