"""Domain entities for the Ollama chat client.

This module defines the message model and the immutable request snapshots
produced by the request builders. Entities validate their own invariants and
perform no I/O.

Design Principles:
    - Immutability: All entities are frozen dataclasses (slots=True)
    - Validation: Business rules enforced in __post_init__ methods
    - No I/O: Image references are resolved by the builders before a request
      entity is constructed
    - Framework-agnostic: No HTTP or pydantic dependencies

Key Entities:
    - Role: Enumeration of conversational roles
    - Message: One conversational turn (text, images, tool calls)
    - Tool/ToolCall: Native Ollama function calling payloads
    - ChatRequest: Multi-turn request for ``/api/chat``
    - GenerateRequest: Stateless one-shot request for ``/api/generate``
"""

from __future__ import annotations

import copy
from dataclasses import KW_ONLY, InitVar, dataclass, field
from enum import StrEnum
from typing import Any

from ollama_chat.domain.exceptions import InvalidArgumentError, InvalidRequestError
from ollama_chat.domain.options import Options
from ollama_chat.domain.value_objects import ImageReference, InlineImage, ModelName, image_reference

ResponseFormat = str | dict[str, Any]
"""``"json"`` for JSON mode, or a JSON schema dict for structured output."""


class Role(StrEnum):
    """Conversational roles understood by the chat endpoint."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def parse(cls, value: Role | str) -> Role:
        """Coerce a role string into a Role.

        Raises:
            InvalidArgumentError: If value is not a known role.
        """
        try:
            return cls(value)
        except ValueError as exc:
            msg = f"Invalid role '{value}'. Must be 'system', 'user', 'assistant', or 'tool'"
            raise InvalidArgumentError(msg) from exc


@dataclass(slots=True, frozen=True)
class ToolFunction:
    """Function definition offered to the model.

    Attributes:
        name: Function name. Must be non-empty.
        description: Human-readable description.
        parameters: JSON schema of the function's parameters.
    """

    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidArgumentError("Function name cannot be empty")
        object.__setattr__(self, "parameters", copy.deepcopy(self.parameters))


@dataclass(slots=True, frozen=True)
class Tool:
    """Tool definition wrapping a ToolFunction."""

    function: ToolFunction
    type: str = "function"


@dataclass(slots=True, frozen=True)
class ToolCallFunction:
    """Function invocation requested by the model.

    Attributes:
        name: Name of the function to call.
        arguments: Decoded arguments object, as the native chat endpoint
            returns it.
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidArgumentError("Function name cannot be empty")
        object.__setattr__(self, "arguments", copy.deepcopy(self.arguments))

    def __hash__(self) -> int:
        return hash((self.name, repr(sorted(self.arguments.items()))))


@dataclass(slots=True, frozen=True)
class ToolCall:
    """Tool call carried by an assistant message."""

    function: ToolCallFunction


@dataclass(slots=True, frozen=True)
class Message:
    """A single conversational turn.

    Attributes:
        role: Message role. Strings are coerced into Role.
        content: Text content. May be empty only when images or tool calls
            are present, or when the message is a reply returned by the
            service (see ``Message.reply``).
        images: Ordered image references. Builders replace LocalFile and
            RemoteUrl entries with InlineImage before building a request.
        tool_calls: Tool calls made by the assistant, if any.

    Raises:
        InvalidArgumentError: If role is unknown, content is not a string, or
            content is empty with nothing else to carry.
    """

    role: Role
    content: str = ""
    images: tuple[ImageReference, ...] = ()
    tool_calls: tuple[ToolCall, ...] | None = None
    _: KW_ONLY
    from_service: InitVar[bool] = False

    @classmethod
    def reply(cls, content: str, tool_calls: tuple[ToolCall, ...] | None = None) -> Message:
        """Assistant message returned by the service; content may be empty."""
        return cls(Role.ASSISTANT, content, tool_calls=tool_calls, from_service=True)

    def __post_init__(self, from_service: bool) -> None:
        object.__setattr__(self, "role", Role.parse(self.role))
        object.__setattr__(self, "images", tuple(image_reference(img) for img in self.images))
        if self.tool_calls is not None:
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

        if not isinstance(self.content, str):
            raise InvalidArgumentError("Message content must be a string")
        # The service may return an empty completion
        exempt = from_service and self.role is Role.ASSISTANT
        if not self.content and not self.images and not self.tool_calls and not exempt:
            raise InvalidArgumentError("Message must have content, images or tool_calls")

    @property
    def is_resolved(self) -> bool:
        """True when every image is held inline and the message can be serialized."""
        return all(isinstance(img, InlineImage) for img in self.images)


def _validate_model(model: str) -> None:
    ModelName(model)


def _validate_resolved(messages: tuple[Message, ...]) -> None:
    for message in messages:
        if not message.is_resolved:
            unresolved = next(img for img in message.images if not isinstance(img, InlineImage))
            raise InvalidRequestError(f"Image reference was not resolved before building: {unresolved}")


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """Immutable chat request snapshot.

    Attributes:
        model: Model name. Must be non-empty.
        messages: Conversation history, in order. May be empty (e.g. a
            template-only request).
        options: Generation options snapshot. Serialized even when empty.
        stream: Whether the service should stream NDJSON fragments.
        template: Prompt template overriding the model's own.
        keep_alive: How long the model stays loaded (e.g. "5m").
        format: "json" or a JSON schema dict for structured output.
        tools: Tools the model may call.

    Raises:
        InvalidArgumentError: If model is empty.
        InvalidRequestError: If any message still holds an unresolved image.
    """

    model: str
    messages: tuple[Message, ...] = ()
    options: Options = field(default_factory=Options)
    stream: bool = False
    template: str | None = None
    keep_alive: str | None = None
    format: ResponseFormat | None = None
    tools: tuple[Tool, ...] | None = None

    def __post_init__(self) -> None:
        _validate_model(self.model)
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "format", copy.deepcopy(self.format))
        _validate_resolved(self.messages)

    def __hash__(self) -> int:
        return hash((self.model, self.messages, self.options, self.stream, self.template))


@dataclass(slots=True, frozen=True)
class GenerateRequest:
    """Immutable one-shot generation request snapshot.

    Generation is stateless: the result carries no conversation history.

    Attributes:
        model: Model name. Must be non-empty.
        prompt: Prompt text. Must be non-empty.
        images: Inline images for multimodal models.
        options: Generation options snapshot. Serialized even when empty.
        stream: Whether the service should stream NDJSON fragments.
        system: System message overriding the model's own.
        template: Prompt template overriding the model's own.
        raw: Send the prompt without applying any template.
        keep_alive: How long the model stays loaded.
        format: "json" or a JSON schema dict for structured output.

    Raises:
        InvalidArgumentError: If model or prompt is empty.
        InvalidRequestError: If an image is still unresolved.
    """

    model: str
    prompt: str
    images: tuple[ImageReference, ...] = ()
    options: Options = field(default_factory=Options)
    stream: bool = False
    system: str | None = None
    template: str | None = None
    raw: bool = False
    keep_alive: str | None = None
    format: ResponseFormat | None = None

    def __post_init__(self) -> None:
        _validate_model(self.model)
        if not self.prompt or not self.prompt.strip():
            raise InvalidArgumentError("Prompt cannot be empty")
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "format", copy.deepcopy(self.format))
        for img in self.images:
            if not isinstance(img, InlineImage):
                raise InvalidRequestError(f"Image reference was not resolved before building: {img}")

    def __hash__(self) -> int:
        return hash((self.model, self.prompt, self.images, self.options, self.stream))


__all__ = [
    "ChatRequest",
    "GenerateRequest",
    "Message",
    "ResponseFormat",
    "Role",
    "Tool",
    "ToolCall",
    "ToolCallFunction",
    "ToolFunction",
]
