"""Pydantic models for the Ollama wire format.

These models describe the JSON bodies sent to and received from
``/api/chat`` and ``/api/generate``. They are the outer layer of the
serialization path; ``mappers`` converts between them and the domain
entities.

Key Behaviors:
    - Request models reject unknown fields (extra="forbid") so that a
      deserialized request matches what the builder produced
    - Response chunk models ignore unknown fields; the service adds fields
      between releases
    - ``options`` is always serialized, even when empty
    - Optional request fields are omitted when unset (``exclude_none``)
    - Option values are kept as ``Any`` so that ints and floats survive the
      round trip without pydantic coercion
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

WireFormat = str | dict[str, Any]


class WireToolFunction(BaseModel):
    """Function definition offered to the model."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    description: str | None = None
    parameters: dict[str, Any] | None = None


class WireTool(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["function"] = "function"
    function: WireToolFunction


class WireToolCallFunction(BaseModel):
    """Native Ollama tool call: arguments arrive as a decoded object."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class WireToolCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    function: WireToolCallFunction


class WireRequestMessage(BaseModel):
    """One entry of the ``messages`` array of a chat request.

    Attributes:
        role: "system", "user", "assistant" or "tool".
        content: Message text. Always serialized, possibly empty.
        images: Base64-encoded images, in order.
        tool_calls: Tool calls made by the assistant.
    """

    model_config = ConfigDict(extra="forbid")

    role: str = Field(..., min_length=1)
    content: str = ""
    images: list[str] | None = None
    tool_calls: list[WireToolCall] | None = None


class WireMessage(BaseModel):
    """The ``message`` of a chat response chunk.

    Streamed fragments may omit the role; it defaults to "assistant".
    """

    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: str = ""
    images: list[str] | None = None
    tool_calls: list[WireToolCall] | None = None


class WireChatRequest(BaseModel):
    """Body of a POST to ``/api/chat``."""

    model_config = ConfigDict(extra="forbid")

    model: str = Field(..., min_length=1)
    messages: list[WireRequestMessage] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)
    stream: bool = False
    template: str | None = None
    keep_alive: str | None = None
    format: WireFormat | None = None
    tools: list[WireTool] | None = None


class WireGenerateRequest(BaseModel):
    """Body of a POST to ``/api/generate``."""

    model_config = ConfigDict(extra="forbid")

    model: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    images: list[str] | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    stream: bool = False
    system: str | None = None
    template: str | None = None
    raw: bool = False
    keep_alive: str | None = None
    format: WireFormat | None = None


class WireChunk(BaseModel):
    """Fields shared by chat and generate response objects.

    Timing and token counts are only present on the final (``done``) object.
    Durations are in nanoseconds.
    """

    model_config = ConfigDict(extra="ignore")

    model: str | None = None
    created_at: str | None = None
    done: bool = False
    done_reason: str | None = None
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    prompt_eval_duration: int = 0
    eval_count: int = 0
    eval_duration: int = 0
    error: str | None = None


class WireChatChunk(WireChunk):
    """A ``/api/chat`` response object or one NDJSON line of a chat stream."""

    message: WireMessage | None = None


class WireGenerateChunk(WireChunk):
    """A ``/api/generate`` response object or one NDJSON line of its stream."""

    response: str = ""
    context: list[int] | None = None


__all__ = [
    "WireChatChunk",
    "WireChatRequest",
    "WireChunk",
    "WireFormat",
    "WireGenerateChunk",
    "WireGenerateRequest",
    "WireMessage",
    "WireRequestMessage",
    "WireTool",
    "WireToolCall",
    "WireToolCallFunction",
    "WireToolFunction",
]
