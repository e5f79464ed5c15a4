"""Request builders for chat and generation requests.

Builders are explicit, mutable state objects that accumulate messages,
options and optional request fields, then produce immutable request
snapshots with ``build()``.

Key behaviors:
    - ``get_instance(model)`` binds a builder to one model and fails fast on
      an empty name
    - ``with_*`` methods mutate the builder and return it for chaining
    - ``build()`` validates required fields, resolves every image reference
      to inline base64 and returns a snapshot that shares no mutable state
      with the builder
    - ``reset()`` clears everything except the bound model, so the same
      builder can start the next turn of a conversation

Thread safety:
    A builder is a single-writer object. Independent builders can be used
    from different threads concurrently; the snapshots they return are
    immutable and safe to share.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel

from ollama_chat.domain.entities import (
    ChatRequest,
    GenerateRequest,
    Message,
    ResponseFormat,
    Role,
    Tool,
    ToolCall,
)
from ollama_chat.domain.exceptions import InvalidArgumentError, InvalidRequestError
from ollama_chat.domain.options import Options
from ollama_chat.domain.value_objects import (
    ImageReference,
    InlineImage,
    ModelName,
    image_reference,
)

if TYPE_CHECKING:
    from ollama_chat.application.interfaces import ImageResolverInterface

logger = logging.getLogger(__name__)

ImageInput = ImageReference | Path | str | bytes
SchemaInput = ResponseFormat | type[BaseModel]


def response_format(schema: SchemaInput) -> ResponseFormat:
    """Normalize a response schema into the service's ``format`` field.

    Args:
        schema: ``"json"``, a JSON schema dict, or a pydantic model class
            whose JSON schema describes the expected reply.

    Raises:
        InvalidArgumentError: If schema is empty or of an unsupported type.
    """
    match schema:
        case str() if schema.strip():
            return schema
        case dict() if schema:
            return copy.deepcopy(schema)
        case type() if issubclass(schema, BaseModel):
            return schema.model_json_schema()
        case _:
            raise InvalidArgumentError(f"Unsupported response schema: {schema!r}")


def _resolve_with(
    resolver: ImageResolverInterface, images: tuple[ImageReference, ...]
) -> tuple[InlineImage, ...]:
    resolved: list[InlineImage] = []
    for ref in images:
        match ref:
            case InlineImage():
                resolved.append(ref)
            case _:
                resolved.append(InlineImage.from_bytes(resolver.resolve_to_bytes(ref)))
    return tuple(resolved)


class _RequestBuilder:
    """State and helpers shared by the chat and generate builders."""

    __slots__ = (
        "_format",
        "_image_resolver",
        "_keep_alive",
        "_model",
        "_options",
        "_stream",
        "_template",
    )

    def __init__(
        self,
        model: str | None = None,
        image_resolver: ImageResolverInterface | None = None,
    ) -> None:
        self._model: str | None = ModelName(model).value if model is not None else None
        self._image_resolver = image_resolver
        self._options = Options()
        self._stream = False
        self._template: str | None = None
        self._keep_alive: str | None = None
        self._format: ResponseFormat | None = None

    @classmethod
    def get_instance(
        cls, model: str, image_resolver: ImageResolverInterface | None = None
    ) -> Self:
        """Create a builder bound to ``model``.

        Raises:
            InvalidArgumentError: If model is empty or whitespace-only.
        """
        return cls(ModelName(model).value, image_resolver=image_resolver)

    @property
    def model(self) -> str | None:
        return self._model

    def with_model(self, model: str) -> Self:
        self._model = ModelName(model).value
        return self

    def with_options(self, options: Options | Mapping[str, Any]) -> Self:
        """Merge ``options`` into the pending options, last write wins per key."""
        self._options = self._options.merged(options)
        return self

    def with_template(self, template: str) -> Self:
        self._template = template
        return self

    def with_keep_alive(self, keep_alive: str) -> Self:
        """How long the model stays loaded after the request (e.g. "5m", "0")."""
        if not keep_alive:
            raise InvalidArgumentError("keep_alive cannot be empty")
        self._keep_alive = keep_alive
        return self

    def with_streaming(self, stream: bool = True) -> Self:
        self._stream = stream
        return self

    def with_response_schema(self, schema: SchemaInput) -> Self:
        """Constrain the reply to JSON, optionally matching a schema."""
        self._format = response_format(schema)
        return self

    def _clear(self) -> None:
        self._options = Options()
        self._stream = False
        self._template = None
        self._keep_alive = None
        self._format = None

    def _require_model(self) -> str:
        if self._model is None:
            raise InvalidRequestError("Model must be set before building a request")
        return self._model

    def _resolve_images(self, images: tuple[ImageReference, ...]) -> tuple[InlineImage, ...]:
        if all(isinstance(ref, InlineImage) for ref in images):
            return tuple(ref for ref in images if isinstance(ref, InlineImage))
        if self._image_resolver is not None:
            return _resolve_with(self._image_resolver, images)

        from ollama_chat.infrastructure.images import ImageResolver

        # No shared resolver: use one for this build only and release its session
        with ImageResolver() as resolver:
            return _resolve_with(resolver, images)


class ChatRequestBuilder(_RequestBuilder):
    """Builder accumulating a conversation into ChatRequest snapshots.

    Example:
        >>> builder = ChatRequestBuilder.get_instance("llama3.2")
        >>> request = builder.with_message(Role.USER, "Capital of France?").build()
        >>> len(request.messages)
        1
    """

    __slots__ = ("_messages", "_tools")

    def __init__(
        self,
        model: str | None = None,
        image_resolver: ImageResolverInterface | None = None,
    ) -> None:
        super().__init__(model, image_resolver)
        self._messages: list[Message] = []
        self._tools: tuple[Tool, ...] | None = None

    @property
    def history(self) -> tuple[Message, ...]:
        """Messages accumulated so far, in order."""
        return tuple(self._messages)

    def with_message(
        self,
        role: Role | str,
        content: str = "",
        tool_calls: Iterable[ToolCall] | None = None,
        images: Iterable[ImageInput] | None = None,
    ) -> ChatRequestBuilder:
        """Append one message to the conversation.

        Args:
            role: Message role.
            content: Message text.
            tool_calls: Tool calls carried by an assistant message. An empty
                iterable is the same as None.
            images: Image files, URLs, raw bytes or explicit references.
                Resolved to base64 when the request is built.

        Raises:
            InvalidArgumentError: If the role is unknown or the message would
                be empty.
        """
        calls = tuple(tool_calls) if tool_calls else None
        refs = tuple(image_reference(img) for img in images or ())
        self._messages.append(Message(role=role, content=content, images=refs, tool_calls=calls))
        return self

    def with_messages(self, messages: Iterable[Message]) -> ChatRequestBuilder:
        """Append previously returned history to continue a conversation."""
        incoming = tuple(messages)
        for message in incoming:
            if not isinstance(message, Message):
                raise InvalidArgumentError(f"Expected Message, got {type(message).__name__}")
        self._messages.extend(incoming)
        return self

    def with_tools(self, tools: Iterable[Tool]) -> ChatRequestBuilder:
        self._tools = tuple(tools) or None
        return self

    def reset(self) -> ChatRequestBuilder:
        """Clear messages, options and optional fields, keeping the model."""
        self._messages = []
        self._tools = None
        self._clear()
        return self

    def build(self) -> ChatRequest:
        """Produce an immutable ChatRequest snapshot.

        Raises:
            InvalidRequestError: If no model is set.
            ImageResolutionError: If an image file or URL cannot be read.
        """
        model = self._require_model()
        messages = tuple(
            message
            if message.is_resolved
            else dataclasses.replace(message, images=self._resolve_images(message.images))
            for message in self._messages
        )
        # Tool arguments and schemas are dicts; the snapshot gets its own copies
        request = ChatRequest(
            model=model,
            messages=copy.deepcopy(messages),
            options=self._options,
            stream=self._stream,
            template=self._template,
            keep_alive=self._keep_alive,
            format=self._format,
            tools=copy.deepcopy(self._tools),
        )
        logger.debug(
            "Built chat request for %s with %d messages (stream=%s)",
            model,
            len(messages),
            self._stream,
        )
        return request


class GenerateRequestBuilder(_RequestBuilder):
    """Builder for stateless one-shot GenerateRequest snapshots."""

    __slots__ = ("_images", "_prompt", "_raw", "_system")

    def __init__(
        self,
        model: str | None = None,
        image_resolver: ImageResolverInterface | None = None,
    ) -> None:
        super().__init__(model, image_resolver)
        self._prompt: str | None = None
        self._images: list[ImageReference] = []
        self._system: str | None = None
        self._raw = False

    def with_prompt(self, prompt: str) -> GenerateRequestBuilder:
        if not prompt or not prompt.strip():
            raise InvalidArgumentError("Prompt cannot be empty")
        self._prompt = prompt
        return self

    def with_images(self, images: Iterable[ImageInput]) -> GenerateRequestBuilder:
        self._images.extend(image_reference(img) for img in images)
        return self

    def with_system(self, system: str) -> GenerateRequestBuilder:
        self._system = system
        return self

    def with_raw(self, raw: bool = True) -> GenerateRequestBuilder:
        """Send the prompt verbatim, bypassing the model's template."""
        self._raw = raw
        return self

    def reset(self) -> GenerateRequestBuilder:
        self._prompt = None
        self._images = []
        self._system = None
        self._raw = False
        self._clear()
        return self

    def build(self) -> GenerateRequest:
        """Produce an immutable GenerateRequest snapshot.

        Raises:
            InvalidRequestError: If no model or no prompt is set.
            ImageResolutionError: If an image file or URL cannot be read.
        """
        model = self._require_model()
        if self._prompt is None:
            raise InvalidRequestError("Prompt must be set before building a generate request")
        return GenerateRequest(
            model=model,
            prompt=self._prompt,
            images=self._resolve_images(tuple(self._images)),
            options=self._options,
            stream=self._stream,
            system=self._system,
            template=self._template,
            raw=self._raw,
            keep_alive=self._keep_alive,
            format=self._format,
        )


__all__ = ["ChatRequestBuilder", "GenerateRequestBuilder", "response_format"]
