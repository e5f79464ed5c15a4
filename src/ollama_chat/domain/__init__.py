"""Domain layer for the Ollama chat client.

This package contains the message, options, request and result models with
their validation rules. It has no dependencies on HTTP libraries or on the
outer layers.
"""

from ollama_chat.domain.entities import (
    ChatRequest,
    GenerateRequest,
    Message,
    ResponseFormat,
    Role,
    Tool,
    ToolCall,
    ToolCallFunction,
    ToolFunction,
)
from ollama_chat.domain.exceptions import (
    ImageResolutionError,
    InvalidArgumentError,
    InvalidOptionTypeError,
    InvalidRequestError,
    OllamaChatError,
    StreamingFailure,
    TransportError,
)
from ollama_chat.domain.options import Options, OptionsBuilder
from ollama_chat.domain.results import (
    ChatResult,
    GenerateResult,
    ResponseStatistics,
    StreamFragment,
)
from ollama_chat.domain.value_objects import (
    ImageReference,
    InlineImage,
    LocalFile,
    ModelName,
    RemoteUrl,
)

__all__ = [
    "ChatRequest",
    "ChatResult",
    "GenerateRequest",
    "GenerateResult",
    "ImageReference",
    "ImageResolutionError",
    "InlineImage",
    "InvalidArgumentError",
    "InvalidOptionTypeError",
    "InvalidRequestError",
    "LocalFile",
    "Message",
    "ModelName",
    "OllamaChatError",
    "Options",
    "OptionsBuilder",
    "RemoteUrl",
    "ResponseFormat",
    "ResponseStatistics",
    "Role",
    "StreamFragment",
    "StreamingFailure",
    "Tool",
    "ToolCall",
    "ToolCallFunction",
    "ToolFunction",
    "TransportError",
]
