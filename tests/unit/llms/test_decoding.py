# tests/unit/llms/test_decoding.py

import json
from typing import Any

import pytest

from llm_wire.llms import (
    AnthropicChatCompletion,
    ApiError,
    ChatCompletion,
    DecodeError,
    Provider,
    Role,
    StreamError,
    TextBlock,
    ToolUseBlock,
    decode_response,
)
from llm_wire.llms.anthropic import ContentBlockDeltaEvent, PingEvent
from llm_wire.llms.decoding import decode_chunk, parse_api_error
from llm_wire.llms.openai import ChatCompletionChunk


class TestDecodeOpenAIResponse:
    def test_text_response(self, openai_text_response: dict[str, Any]) -> None:
        completion = decode_response(Provider.OPENAI, json.dumps(openai_text_response).encode())

        assert isinstance(completion, ChatCompletion)
        assert completion.id == "chatcmpl-123"
        assert completion.system_fingerprint == "fp_abc"
        assert completion.choices[0].message.role is Role.ASSISTANT
        assert completion.choices[0].message.content == "Hello there!"
        assert completion.choices[0].finish_reason == "stop"
        assert completion.usage.total_tokens == 12

    def test_function_call_response(self, openai_function_response: dict[str, Any]) -> None:
        completion = decode_response(Provider.OPENAI, openai_function_response)

        message = completion.choices[0].message
        assert message.content is None
        assert message.function_call is not None
        assert message.function_call.name == "get_weather"
        assert json.loads(message.function_call.arguments) == {"city": "Tokyo"}

    def test_null_finish_reason_is_kept(self, openai_text_response: dict[str, Any]) -> None:
        openai_text_response["choices"][0]["finish_reason"] = None

        completion = decode_response(Provider.OPENAI, openai_text_response)

        assert completion.choices[0].finish_reason is None

    def test_missing_usage_names_the_field(self, openai_text_response: dict[str, Any]) -> None:
        del openai_text_response["usage"]

        with pytest.raises(DecodeError) as exc_info:
            decode_response(Provider.OPENAI, openai_text_response)

        assert exc_info.value.field == "usage"

    def test_nested_field_path(self, openai_text_response: dict[str, Any]) -> None:
        openai_text_response["choices"][0]["message"]["role"] = "narrator"

        with pytest.raises(DecodeError) as exc_info:
            decode_response(Provider.OPENAI, openai_text_response)

        assert exc_info.value.field == "choices.0.message.role"

    def test_empty_choices_rejected(self, openai_text_response: dict[str, Any]) -> None:
        openai_text_response["choices"] = []

        with pytest.raises(DecodeError) as exc_info:
            decode_response(Provider.OPENAI, openai_text_response)

        assert exc_info.value.field == "choices"

    def test_invalid_json(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_response(Provider.OPENAI, b"<html>Bad gateway</html>")

        assert exc_info.value.field == "<body>"

    def test_error_envelope_with_success_status(self) -> None:
        body = {"error": {"message": "Model overloaded", "type": "server_error", "code": None}}

        with pytest.raises(ApiError) as exc_info:
            decode_response(Provider.OPENAI, json.dumps(body))

        assert exc_info.value.status_code == 200
        assert exc_info.value.error is not None
        assert exc_info.value.error.message == "Model overloaded"


class TestDecodeAnthropicResponse:
    def test_text_response(self, anthropic_text_response: dict[str, Any]) -> None:
        completion = decode_response(Provider.ANTHROPIC, json.dumps(anthropic_text_response))

        assert isinstance(completion, AnthropicChatCompletion)
        assert completion.content == [TextBlock(text="Hi there! How can I help you today?")]
        assert completion.text == "Hi there! How can I help you today?"
        assert completion.stop_reason == "end_turn"
        assert completion.usage.input_tokens == 10

    def test_tool_use_response(self, anthropic_tool_response: dict[str, Any]) -> None:
        completion = decode_response(Provider.ANTHROPIC, anthropic_tool_response)

        block = completion.content[1]
        assert isinstance(block, ToolUseBlock)
        assert block.id == "toolu_01"
        assert block.input == {"city": "Tokyo"}
        assert completion.text == "Let me check."

    def test_unknown_block_type_rejected(self, anthropic_text_response: dict[str, Any]) -> None:
        anthropic_text_response["content"] = [{"type": "hologram", "data": "..."}]

        with pytest.raises(DecodeError) as exc_info:
            decode_response(Provider.ANTHROPIC, anthropic_text_response)

        assert exc_info.value.field.startswith("content.0")

    def test_error_envelope(self) -> None:
        body = {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}

        with pytest.raises(ApiError) as exc_info:
            decode_response(Provider.ANTHROPIC, body)

        assert exc_info.value.provider is Provider.ANTHROPIC
        assert "overloaded_error: Overloaded" in str(exc_info.value)


class TestParseApiError:
    def test_openai_error_body(self) -> None:
        body = json.dumps(
            {
                "error": {
                    "message": "Incorrect API key provided",
                    "type": "invalid_request_error",
                    "param": None,
                    "code": "invalid_api_key",
                }
            }
        ).encode()

        error = parse_api_error(Provider.OPENAI, 401, body)

        assert error.status_code == 401
        assert error.error is not None
        assert error.error.code == "invalid_api_key"
        assert str(error) == (
            "openai API error 401: invalid_request_error: Incorrect API key provided"
        )

    def test_unparseable_body_is_kept_verbatim(self) -> None:
        error = parse_api_error(Provider.ANTHROPIC, 502, b"upstream connect error")

        assert error.error is None
        assert error.body == "upstream connect error"
        assert "upstream connect error" in str(error)

    def test_empty_body(self) -> None:
        error = parse_api_error(Provider.OPENAI, 500, b"")

        assert str(error) == "openai API error 500: <empty body>"


class TestDecodeChunk:
    def test_openai_chunk(self, openai_text_chunks: list[Any]) -> None:
        chunk = decode_chunk(Provider.OPENAI, json.dumps(openai_text_chunks[1]))

        assert isinstance(chunk, ChatCompletionChunk)
        assert chunk.choices[0].delta.content == "Hello"

    def test_anthropic_events(self, anthropic_text_events: list[dict[str, Any]]) -> None:
        ping = decode_chunk(Provider.ANTHROPIC, json.dumps(anthropic_text_events[2]))
        delta = decode_chunk(Provider.ANTHROPIC, json.dumps(anthropic_text_events[3]))

        assert isinstance(ping, PingEvent)
        assert isinstance(delta, ContentBlockDeltaEvent)
        assert delta.delta.text == "Hi there!"  # type: ignore[union-attr]

    def test_unknown_anthropic_event_is_skipped(self) -> None:
        assert decode_chunk(Provider.ANTHROPIC, '{"type": "thinking_summary"}') is None

    def test_malformed_json(self) -> None:
        with pytest.raises(StreamError, match="not valid JSON"):
            decode_chunk(Provider.OPENAI, "{not json")

    def test_malformed_chunk_names_the_field(self) -> None:
        with pytest.raises(StreamError, match="created"):
            decode_chunk(Provider.OPENAI, '{"id": "x", "object": "chunk", "model": "m", "choices": []}')

    def test_error_event(self) -> None:
        data = json.dumps(
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
        )

        with pytest.raises(StreamError) as exc_info:
            decode_chunk(Provider.ANTHROPIC, data)

        assert exc_info.value.provider_error is not None
        assert exc_info.value.provider_error.type == "overloaded_error"
