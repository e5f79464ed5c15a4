"""Mappers between wire models and domain entities.

This module converts the immutable request snapshots into the JSON bodies
of ``/api/chat`` and ``/api/generate`` and back, and turns decoded response
objects into StreamFragment values for the StreamingAssembler.

Design Principles:
    - Isolated: All wire mapping logic lives here; domain entities know
      nothing about JSON
    - Faithful: serialize followed by deserialize yields a request equal to
      the original (options keep their int/float kind, images keep their
      base64 payload)
    - Validating: Malformed service objects raise StreamingFailure instead of
      producing partial results

Key Mappers:
    - serialize_*_request / deserialize_*_request: domain <-> dict / JSON
    - chat_chunk_to_fragment / generate_chunk_to_fragment: decoded response
      object -> StreamFragment
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from ollama_chat.domain.entities import (
    ChatRequest,
    GenerateRequest,
    Message,
    Role,
    Tool,
    ToolCall,
    ToolCallFunction,
    ToolFunction,
)
from ollama_chat.domain.exceptions import InvalidRequestError, StreamingFailure
from ollama_chat.domain.options import Options
from ollama_chat.domain.results import ResponseStatistics, StreamFragment
from ollama_chat.domain.value_objects import InlineImage
from ollama_chat.infrastructure.wire_models import (
    WireChatChunk,
    WireChatRequest,
    WireChunk,
    WireGenerateChunk,
    WireGenerateRequest,
    WireMessage,
    WireRequestMessage,
    WireTool,
    WireToolCall,
    WireToolCallFunction,
    WireToolFunction,
)

CHAT_ENDPOINT = "/api/chat"
GENERATE_ENDPOINT = "/api/generate"

# ============================================================================
# Tool Calling Mappers
# ============================================================================


def tool_to_wire(tool: Tool) -> WireTool:
    function = WireToolFunction(
        name=tool.function.name,
        description=tool.function.description,
        parameters=tool.function.parameters,
    )
    return WireTool(type=tool.type, function=function)


def wire_to_tool(wire_tool: WireTool) -> Tool:
    function = ToolFunction(
        name=wire_tool.function.name,
        description=wire_tool.function.description,
        parameters=wire_tool.function.parameters,
    )
    return Tool(function=function, type=wire_tool.type)


def tool_call_to_wire(tool_call: ToolCall) -> WireToolCall:
    function = WireToolCallFunction(
        name=tool_call.function.name,
        arguments=dict(tool_call.function.arguments),
    )
    return WireToolCall(function=function)


def wire_to_tool_call(wire_call: WireToolCall) -> ToolCall:
    """Convert a native tool call.

    Arguments stay a decoded dict, which is how the native chat endpoint
    returns them.
    """
    return ToolCall(
        function=ToolCallFunction(
            name=wire_call.function.name,
            arguments=dict(wire_call.function.arguments),
        )
    )


# ============================================================================
# Message Mappers
# ============================================================================


def message_to_wire(message: Message) -> WireRequestMessage:
    """Convert a resolved Message to its wire shape.

    Raises:
        InvalidRequestError: If the message still holds an unresolved image.
    """
    images: list[str] = []
    for image in message.images:
        if not isinstance(image, InlineImage):
            raise InvalidRequestError(f"Cannot serialize unresolved image reference: {image}")
        images.append(image.data)
    tool_calls = [tool_call_to_wire(call) for call in message.tool_calls or ()]
    return WireRequestMessage(
        role=message.role.value,
        content=message.content,
        images=images or None,
        tool_calls=tool_calls or None,
    )


def wire_to_message(wire_message: WireRequestMessage) -> Message:
    """Convert one request history entry.

    Assistant entries are replies the service returned earlier, so they keep
    the empty-content allowance of ``Message.reply``.
    """
    role = Role.parse(wire_message.role)
    tool_calls = tuple(wire_to_tool_call(call) for call in wire_message.tool_calls or ())
    return Message(
        role=role,
        content=wire_message.content,
        images=tuple(InlineImage(data) for data in wire_message.images or ()),
        tool_calls=tool_calls or None,
        from_service=role is Role.ASSISTANT,
    )


# ============================================================================
# Request Mappers
# ============================================================================


def chat_request_to_wire(request: ChatRequest) -> WireChatRequest:
    return WireChatRequest(
        model=request.model,
        messages=[message_to_wire(message) for message in request.messages],
        options=request.options.to_wire(),
        stream=request.stream,
        template=request.template,
        keep_alive=request.keep_alive,
        format=request.format,
        tools=[tool_to_wire(tool) for tool in request.tools] if request.tools else None,
    )


def wire_to_chat_request(wire_request: WireChatRequest) -> ChatRequest:
    return ChatRequest(
        model=wire_request.model,
        messages=tuple(wire_to_message(message) for message in wire_request.messages),
        options=Options.from_mapping(wire_request.options),
        stream=wire_request.stream,
        template=wire_request.template,
        keep_alive=wire_request.keep_alive,
        format=wire_request.format,
        tools=tuple(wire_to_tool(tool) for tool in wire_request.tools) if wire_request.tools else None,
    )


def generate_request_to_wire(request: GenerateRequest) -> WireGenerateRequest:
    images = [image.data for image in request.images if isinstance(image, InlineImage)]
    return WireGenerateRequest(
        model=request.model,
        prompt=request.prompt,
        images=images or None,
        options=request.options.to_wire(),
        stream=request.stream,
        system=request.system,
        template=request.template,
        raw=request.raw,
        keep_alive=request.keep_alive,
        format=request.format,
    )


def wire_to_generate_request(wire_request: WireGenerateRequest) -> GenerateRequest:
    return GenerateRequest(
        model=wire_request.model,
        prompt=wire_request.prompt,
        images=tuple(InlineImage(data) for data in wire_request.images or ()),
        options=Options.from_mapping(wire_request.options),
        stream=wire_request.stream,
        system=wire_request.system,
        template=wire_request.template,
        raw=wire_request.raw,
        keep_alive=wire_request.keep_alive,
        format=wire_request.format,
    )


def serialize_chat_request(request: ChatRequest) -> dict[str, Any]:
    """Return the JSON-ready body for ``/api/chat``.

    ``options`` is always present; unset optional fields are omitted.
    """
    return chat_request_to_wire(request).model_dump(exclude_none=True)


def serialize_generate_request(request: GenerateRequest) -> dict[str, Any]:
    """Return the JSON-ready body for ``/api/generate``."""
    return generate_request_to_wire(request).model_dump(exclude_none=True)


def chat_request_to_json(request: ChatRequest) -> str:
    return json.dumps(serialize_chat_request(request))


def generate_request_to_json(request: GenerateRequest) -> str:
    return json.dumps(serialize_generate_request(request))


def _load(data: dict[str, Any] | str | bytes) -> dict[str, Any]:
    if isinstance(data, (str, bytes)):
        try:
            decoded = json.loads(data)
        except json.JSONDecodeError as exc:
            raise InvalidRequestError(f"Request body is not valid JSON: {exc}") from exc
    else:
        decoded = data
    if not isinstance(decoded, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return decoded


def deserialize_chat_request(data: dict[str, Any] | str | bytes) -> ChatRequest:
    """Rebuild a ChatRequest from a decoded body or its JSON text.

    Raises:
        InvalidRequestError: If the body does not match the chat request shape.
        InvalidArgumentError: If a field violates a domain rule.
    """
    try:
        wire_request = WireChatRequest.model_validate(_load(data))
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid chat request body: {exc}") from exc
    return wire_to_chat_request(wire_request)


def deserialize_generate_request(data: dict[str, Any] | str | bytes) -> GenerateRequest:
    """Rebuild a GenerateRequest from a decoded body or its JSON text.

    Raises:
        InvalidRequestError: If the body does not match the generate request shape.
        InvalidArgumentError: If a field violates a domain rule.
    """
    try:
        wire_request = WireGenerateRequest.model_validate(_load(data))
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid generate request body: {exc}") from exc
    return wire_to_generate_request(wire_request)


# ============================================================================
# Response Mappers
# ============================================================================


def _statistics(chunk: WireChunk) -> ResponseStatistics | None:
    if not chunk.done:
        return None
    return ResponseStatistics(
        model=chunk.model,
        created_at=chunk.created_at,
        done_reason=chunk.done_reason,
        total_duration=chunk.total_duration,
        load_duration=chunk.load_duration,
        prompt_eval_count=chunk.prompt_eval_count,
        prompt_eval_duration=chunk.prompt_eval_duration,
        eval_count=chunk.eval_count,
        eval_duration=chunk.eval_duration,
    )


def chat_chunk_to_fragment(data: dict[str, Any]) -> StreamFragment:
    """Convert one ``/api/chat`` response object into a StreamFragment.

    Works for both the single non-streaming object and each NDJSON line.

    Raises:
        StreamingFailure: If the object does not have the chat response shape.
    """
    try:
        chunk = WireChatChunk.model_validate(data)
    except ValidationError as exc:
        raise StreamingFailure(f"Malformed chat response object: {exc}") from exc

    message = chunk.message or WireMessage()
    tool_calls = tuple(wire_to_tool_call(call) for call in message.tool_calls or ())
    return StreamFragment(
        text=message.content,
        done=chunk.done,
        role=Role.parse(message.role),
        statistics=_statistics(chunk),
        tool_calls=tool_calls or None,
        error=chunk.error,
    )


def generate_chunk_to_fragment(data: dict[str, Any]) -> StreamFragment:
    """Convert one ``/api/generate`` response object into a StreamFragment.

    Raises:
        StreamingFailure: If the object does not have the generate response shape.
    """
    try:
        chunk = WireGenerateChunk.model_validate(data)
    except ValidationError as exc:
        raise StreamingFailure(f"Malformed generate response object: {exc}") from exc

    return StreamFragment(
        text=chunk.response,
        done=chunk.done,
        statistics=_statistics(chunk),
        context=tuple(chunk.context) if chunk.context is not None else None,
        error=chunk.error,
    )


__all__ = [
    "CHAT_ENDPOINT",
    "GENERATE_ENDPOINT",
    "chat_chunk_to_fragment",
    "chat_request_to_json",
    "chat_request_to_wire",
    "deserialize_chat_request",
    "deserialize_generate_request",
    "generate_chunk_to_fragment",
    "generate_request_to_json",
    "generate_request_to_wire",
    "message_to_wire",
    "serialize_chat_request",
    "serialize_generate_request",
    "tool_call_to_wire",
    "tool_to_wire",
    "wire_to_chat_request",
    "wire_to_generate_request",
    "wire_to_message",
    "wire_to_tool",
    "wire_to_tool_call",
]
