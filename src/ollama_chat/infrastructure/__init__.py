"""Infrastructure layer: wire format, image resolution and HTTP transports."""

from ollama_chat.infrastructure.images import ImageResolver
from ollama_chat.infrastructure.mappers import (
    CHAT_ENDPOINT,
    GENERATE_ENDPOINT,
    chat_chunk_to_fragment,
    deserialize_chat_request,
    deserialize_generate_request,
    generate_chunk_to_fragment,
    serialize_chat_request,
    serialize_generate_request,
)
from ollama_chat.infrastructure.transport import AsyncHttpTransport, HttpTransport

__all__ = [
    "CHAT_ENDPOINT",
    "GENERATE_ENDPOINT",
    "AsyncHttpTransport",
    "HttpTransport",
    "ImageResolver",
    "chat_chunk_to_fragment",
    "deserialize_chat_request",
    "deserialize_generate_request",
    "generate_chunk_to_fragment",
    "serialize_chat_request",
    "serialize_generate_request",
]
