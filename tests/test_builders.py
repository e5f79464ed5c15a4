"""
Behavioral tests for the chat and generate request builders.

Builders are exercised with real image files and a real local HTTP server
for remote images; nothing is mocked.
"""

from __future__ import annotations

import base64

import pytest
from pydantic import BaseModel

from ollama_chat.application.builders import (
    ChatRequestBuilder,
    GenerateRequestBuilder,
    response_format,
)
from ollama_chat.domain.entities import (
    Message,
    Role,
    Tool,
    ToolCall,
    ToolCallFunction,
    ToolFunction,
)
from ollama_chat.domain.exceptions import (
    ImageResolutionError,
    InvalidArgumentError,
    InvalidRequestError,
)
from ollama_chat.domain.options import OptionsBuilder
from ollama_chat.domain.value_objects import InlineImage
from ollama_chat.infrastructure.images import ImageResolver


class Capital(BaseModel):
    city: str
    country: str


class TestChatRequestBuilder:
    """Tests for accumulating a conversation into ChatRequest snapshots."""

    def test_get_instance_rejects_empty_model(self):
        with pytest.raises(InvalidArgumentError):
            ChatRequestBuilder.get_instance("")

    def test_build_without_model_raises(self):
        """Test that a builder created without a model cannot build."""
        builder = ChatRequestBuilder().with_message(Role.USER, "Hi")
        with pytest.raises(InvalidRequestError):
            builder.build()

    def test_messages_keep_insertion_order(self):
        request = (
            ChatRequestBuilder.get_instance("llama3.2")
            .with_message(Role.SYSTEM, "Be brief.")
            .with_message(Role.USER, "Capital of France?")
            .with_message("assistant", "Paris")
            .with_message(Role.USER, "And Italy?")
            .build()
        )
        assert [m.role for m in request.messages] == [
            Role.SYSTEM,
            Role.USER,
            Role.ASSISTANT,
            Role.USER,
        ]
        assert request.messages[-1].content == "And Italy?"

    def test_snapshot_is_unaffected_by_later_changes(self):
        """Test that build() shares no mutable state with the builder."""
        builder = ChatRequestBuilder.get_instance("llama3.2").with_message(Role.USER, "one")
        first = builder.build()
        builder.with_message(Role.USER, "two").with_options({"seed": 1})

        assert len(first.messages) == 1
        assert len(first.options) == 0

    def test_snapshot_dicts_are_not_shared(self):
        """Test that format, tool parameters and tool arguments are copied per build."""
        args = {"city": "Paris"}
        params = {"type": "object", "properties": {}}
        call = ToolCall(ToolCallFunction("get_weather", args))
        builder = (
            ChatRequestBuilder.get_instance("llama3.2")
            .with_message(Role.ASSISTANT, "", tool_calls=[call])
            .with_tools([Tool(ToolFunction("get_weather", parameters=params))])
            .with_response_schema({"type": "object"})
        )
        first = builder.build()

        first.format["type"] = "array"
        first.tools[0].function.parameters["type"] = "string"
        first.messages[0].tool_calls[0].function.arguments["city"] = "Oslo"
        args["city"] = "Rome"
        params["type"] = "null"
        second = builder.build()

        assert second.format == {"type": "object"}
        assert second.format is not first.format
        assert second.tools[0].function.parameters["type"] == "object"
        assert second.messages[0].tool_calls[0].function.arguments == {"city": "Paris"}

    def test_generate_snapshot_format_is_not_shared(self):
        builder = (
            GenerateRequestBuilder.get_instance("llama3.2")
            .with_prompt("Hi")
            .with_response_schema({"type": "object"})
        )
        first = builder.build()
        first.format["type"] = "array"
        assert builder.build().format == {"type": "object"}

    def test_reset_keeps_model_and_clears_everything_else(self):
        builder = (
            ChatRequestBuilder.get_instance("llama3.2")
            .with_message(Role.USER, "Hi")
            .with_options(OptionsBuilder().set_seed(7).build())
            .with_template("{{ .Prompt }}")
            .with_keep_alive("10m")
            .with_streaming()
            .with_response_schema("json")
        )
        snapshot = builder.build()
        request = builder.reset().with_message(Role.USER, "Fresh").build()

        assert request.model == "llama3.2"
        assert [m.content for m in request.messages] == ["Fresh"]
        assert len(request.options) == 0
        assert request.template is None
        assert request.keep_alive is None
        assert request.stream is False
        assert request.format is None
        assert snapshot.stream is True
        assert snapshot.options["seed"] == 7

    def test_multi_turn_history_grows(self):
        """Test continuing a conversation from previously returned history."""
        builder = ChatRequestBuilder.get_instance("llama3.2")
        first = builder.with_message(Role.USER, "Capital of France?").build()
        history = (*first.messages, Message(Role.ASSISTANT, "Paris"))

        second = builder.reset().with_messages(history).with_message(Role.USER, "And Italy?").build()

        assert len(first.messages) == 1
        assert len(second.messages) == 3
        assert second.messages[:2] == history

    def test_with_messages_rejects_non_messages(self):
        with pytest.raises(InvalidArgumentError):
            ChatRequestBuilder.get_instance("llama3.2").with_messages([{"role": "user"}])  # type: ignore[list-item]

    def test_empty_user_message_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            ChatRequestBuilder.get_instance("llama3.2").with_message(Role.USER, "")

    def test_unknown_role_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            ChatRequestBuilder.get_instance("llama3.2").with_message("robot", "beep")

    def test_options_merge_last_write_wins(self):
        request = (
            ChatRequestBuilder.get_instance("llama3.2")
            .with_message(Role.USER, "Hi")
            .with_options({"temperature": 0.2, "seed": 1})
            .with_options(OptionsBuilder().set_temperature(0.8).build())
            .build()
        )
        assert dict(request.options) == {"temperature": 0.8, "seed": 1}

    def test_empty_keep_alive_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            ChatRequestBuilder.get_instance("llama3.2").with_keep_alive("")

    def test_tools_are_attached(self):
        tool = Tool(ToolFunction("get_weather", "Current weather", {"type": "object"}))
        request = (
            ChatRequestBuilder.get_instance("llama3.2")
            .with_message(Role.USER, "Weather in Paris?")
            .with_tools([tool])
            .build()
        )
        assert request.tools == (tool,)


class TestImageResolution:
    """Tests for build-time image resolution."""

    def test_local_image_becomes_base64_of_file_bytes(self, image_file, png_bytes):
        request = (
            ChatRequestBuilder.get_instance("llava")
            .with_message(Role.USER, "What is this?", images=[image_file])
            .build()
        )
        (image,) = request.messages[0].images
        assert isinstance(image, InlineImage)
        assert base64.b64decode(image.data) == png_bytes

    def test_image_order_is_preserved(self, image_file, png_bytes):
        other = b"GIF89a" + bytes(32)
        request = (
            ChatRequestBuilder.get_instance("llava")
            .with_message(Role.USER, "Compare", images=[other, str(image_file)])
            .build()
        )
        decoded = [img.to_bytes() for img in request.messages[0].images]
        assert decoded == [other, png_bytes]

    def test_remote_image_is_fetched(self, ollama_server, png_bytes):
        resolver = ImageResolver()
        url = f"{ollama_server.base_url}/images/cat.png"
        request = (
            ChatRequestBuilder.get_instance("llava", image_resolver=resolver)
            .with_message(Role.USER, "Describe", images=[url])
            .build()
        )
        assert request.messages[0].images[0].to_bytes() == png_bytes
        resolver.close()

    def test_builder_without_resolver_uses_one_per_build(self, ollama_server, png_bytes):
        """Test that a builder with no shared resolver keeps no cache between builds."""
        url = f"{ollama_server.base_url}/images/cat.png"
        builder = ChatRequestBuilder.get_instance("llava").with_message(
            Role.USER, "Describe", images=[url]
        )
        first = builder.build()
        second = builder.build()

        assert first.messages[0].images == second.messages[0].images
        assert second.messages[0].images[0].to_bytes() == png_bytes
        assert ollama_server.state["image_fetches"] == ["/images/cat.png", "/images/cat.png"]

    def test_shared_resolver_caches_between_builds(self, ollama_server):
        url = f"{ollama_server.base_url}/images/cat.png"
        with ImageResolver() as resolver:
            builder = ChatRequestBuilder.get_instance("llava", image_resolver=resolver)
            builder.with_message(Role.USER, "Describe", images=[url]).build()
            builder.build()
            assert resolver.get_stats()["hits"] == 1

        assert ollama_server.state["image_fetches"] == ["/images/cat.png"]

    def test_missing_file_fails_at_build(self, tmp_path):
        """Test that unreadable files surface at build(), not at with_message()."""
        missing = tmp_path / "nope.png"
        builder = ChatRequestBuilder.get_instance("llava").with_message(
            Role.USER, "Look", images=[missing]
        )
        with pytest.raises(ImageResolutionError) as exc_info:
            builder.build()
        assert str(missing) in exc_info.value.reference

    def test_builder_keeps_unresolved_references(self, image_file):
        builder = ChatRequestBuilder.get_instance("llava").with_message(
            Role.USER, "Look", images=[image_file]
        )
        builder.build()
        assert not builder.history[0].is_resolved


class TestGenerateRequestBuilder:
    """Tests for one-shot generation requests."""

    def test_build_requires_prompt(self):
        with pytest.raises(InvalidRequestError):
            GenerateRequestBuilder.get_instance("llama3.2").build()

    def test_empty_prompt_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            GenerateRequestBuilder.get_instance("llama3.2").with_prompt("   ")

    def test_full_request(self, image_file, png_bytes):
        request = (
            GenerateRequestBuilder.get_instance("llava")
            .with_prompt("Describe the image")
            .with_images([image_file])
            .with_system("You are terse.")
            .with_raw()
            .with_keep_alive("1m")
            .with_options({"num_predict": 64})
            .with_streaming()
            .build()
        )
        assert request.prompt == "Describe the image"
        assert request.images[0].to_bytes() == png_bytes
        assert request.system == "You are terse."
        assert request.raw is True
        assert request.keep_alive == "1m"
        assert request.options["num_predict"] == 64
        assert request.stream is True

    def test_reset_clears_prompt(self):
        builder = GenerateRequestBuilder.get_instance("llama3.2").with_prompt("Hi")
        builder.reset()
        with pytest.raises(InvalidRequestError):
            builder.build()


class TestResponseFormat:
    """Tests for structured output schemas."""

    def test_json_mode(self):
        assert response_format("json") == "json"

    def test_schema_dict_is_copied(self):
        schema = {"type": "object"}
        result = response_format(schema)
        assert result == schema
        assert result is not schema

    def test_pydantic_model_becomes_json_schema(self):
        schema = response_format(Capital)
        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"city", "country"}

    @pytest.mark.parametrize("value", ["", {}, 42, int])
    def test_unsupported_schemas_raise(self, value):
        with pytest.raises(InvalidArgumentError):
            response_format(value)
