"""Ollama chat client: request builders, options and streaming assembly."""

from ollama_chat.application import (
    AssemblerState,
    ChatRequestBuilder,
    GenerateRequestBuilder,
    StreamingAssembler,
    StreamMode,
)
from ollama_chat.client import (
    AsyncClientOptions,
    AsyncOllamaChatClient,
    ClientOptions,
    OllamaChatClient,
)
from ollama_chat.domain import (
    ChatRequest,
    ChatResult,
    GenerateRequest,
    GenerateResult,
    ImageResolutionError,
    InlineImage,
    InvalidArgumentError,
    InvalidOptionTypeError,
    InvalidRequestError,
    LocalFile,
    Message,
    OllamaChatError,
    Options,
    OptionsBuilder,
    RemoteUrl,
    ResponseStatistics,
    Role,
    StreamFragment,
    StreamingFailure,
    Tool,
    ToolCall,
    ToolCallFunction,
    ToolFunction,
    TransportError,
)
from ollama_chat.infrastructure import (
    AsyncHttpTransport,
    HttpTransport,
    ImageResolver,
    deserialize_chat_request,
    deserialize_generate_request,
    serialize_chat_request,
    serialize_generate_request,
)

__all__ = [
    "AssemblerState",
    "AsyncClientOptions",
    "AsyncHttpTransport",
    "AsyncOllamaChatClient",
    "ChatRequest",
    "ChatRequestBuilder",
    "ChatResult",
    "ClientOptions",
    "GenerateRequest",
    "GenerateRequestBuilder",
    "GenerateResult",
    "HttpTransport",
    "ImageResolutionError",
    "ImageResolver",
    "InlineImage",
    "InvalidArgumentError",
    "InvalidOptionTypeError",
    "InvalidRequestError",
    "LocalFile",
    "Message",
    "OllamaChatClient",
    "OllamaChatError",
    "Options",
    "OptionsBuilder",
    "RemoteUrl",
    "ResponseStatistics",
    "Role",
    "StreamFragment",
    "StreamMode",
    "StreamingAssembler",
    "StreamingFailure",
    "Tool",
    "ToolCall",
    "ToolCallFunction",
    "ToolFunction",
    "TransportError",
    "deserialize_chat_request",
    "deserialize_generate_request",
    "serialize_chat_request",
    "serialize_generate_request",
]
