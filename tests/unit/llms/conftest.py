# tests/unit/llms/conftest.py

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from llm_wire.llms import Credentials, Provider

OPENAI_META = {
    "id": "chatcmpl-123",
    "object": "chat.completion.chunk",
    "created": 1700000000,
    "model": "gpt-4o-2024-08-06",
    "system_fingerprint": "fp_abc",
}
OPENAI_USAGE = {
    "prompt_tokens": 9,
    "completion_tokens": 3,
    "total_tokens": 12,
    "prompt_tokens_details": {"cached_tokens": 0},
}
ANTHROPIC_MODEL = "claude-3-5-sonnet-20241022"


def _openai_chunk(delta: dict[str, Any], finish_reason: str | None = None) -> dict[str, Any]:
    return {
        **OPENAI_META,
        "choices": [
            {"index": 0, "delta": delta, "logprobs": None, "finish_reason": finish_reason}
        ],
        "usage": None,
    }


def _openai_usage_chunk() -> dict[str, Any]:
    return {**OPENAI_META, "choices": [], "usage": OPENAI_USAGE}


@pytest.fixture
def openai_credentials() -> Credentials:
    return Credentials("sk-test", "https://api.openai.com/v1", Provider.OPENAI)


@pytest.fixture
def anthropic_credentials() -> Credentials:
    return Credentials("sk-ant-test", "https://api.anthropic.com/v1", Provider.ANTHROPIC)


# ============================================================================
# OpenAI samples
# ============================================================================


@pytest.fixture
def openai_text_response() -> dict[str, Any]:
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-2024-08-06",
        "system_fingerprint": "fp_abc",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Hello there!",
                    "refusal": None,
                    "annotations": [],
                },
                "logprobs": None,
                "finish_reason": "stop",
            }
        ],
        "usage": OPENAI_USAGE,
        "service_tier": "default",
    }


@pytest.fixture
def openai_text_chunks() -> list[Any]:
    return [
        _openai_chunk({"role": "assistant", "content": "", "refusal": None}),
        _openai_chunk({"content": "Hello"}),
        _openai_chunk({"content": " there!"}),
        _openai_chunk({}, "stop"),
        _openai_usage_chunk(),
        "[DONE]",
    ]


@pytest.fixture
def openai_function_response() -> dict[str, Any]:
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-2024-08-06",
        "system_fingerprint": "fp_abc",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": None,
                    "function_call": {
                        "name": "get_weather",
                        "arguments": '{"city": "Tokyo"}',
                    },
                },
                "finish_reason": "function_call",
            }
        ],
        "usage": OPENAI_USAGE,
    }


@pytest.fixture
def openai_function_chunks() -> list[Any]:
    return [
        _openai_chunk(
            {
                "role": "assistant",
                "content": None,
                "function_call": {"name": "get_weather", "arguments": ""},
            }
        ),
        _openai_chunk({"function_call": {"arguments": '{"city"'}}),
        _openai_chunk({"function_call": {"arguments": ': "Tokyo"}'}}),
        _openai_chunk({}, "function_call"),
        _openai_usage_chunk(),
        "[DONE]",
    ]


@pytest.fixture
def openai_tool_calls_response() -> dict[str, Any]:
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-2024-08-06",
        "system_fingerprint": "fp_abc",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_a",
                            "type": "function",
                            "function": {"name": "get_weather", "arguments": '{"city": "Tokyo"}'},
                        },
                        {
                            "id": "call_b",
                            "type": "function",
                            "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
                        },
                    ],
                },
                "finish_reason": "tool_calls",
            }
        ],
        "usage": OPENAI_USAGE,
    }


@pytest.fixture
def openai_tool_calls_chunks() -> list[Any]:
    def call(index: int, **fields: Any) -> dict[str, Any]:
        return {"tool_calls": [{"index": index, **fields}]}

    return [
        _openai_chunk({"role": "assistant", "content": None}),
        _openai_chunk(
            call(0, id="call_a", type="function", function={"name": "get_weather", "arguments": ""})
        ),
        _openai_chunk(
            call(1, id="call_b", type="function", function={"name": "get_weather", "arguments": ""})
        ),
        # Fragments for the two calls arrive interleaved.
        _openai_chunk(call(1, function={"arguments": '{"city": '})),
        _openai_chunk(call(0, function={"arguments": '{"city": '})),
        _openai_chunk(call(0, function={"arguments": '"Tokyo"}'})),
        _openai_chunk(call(1, function={"arguments": '"Paris"}'})),
        _openai_chunk({}, "tool_calls"),
        _openai_usage_chunk(),
        "[DONE]",
    ]


# ============================================================================
# Anthropic samples
# ============================================================================


@pytest.fixture
def anthropic_text_response() -> dict[str, Any]:
    return {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": ANTHROPIC_MODEL,
        "content": [{"type": "text", "text": "Hi there! How can I help you today?"}],
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {
            "input_tokens": 10,
            "output_tokens": 12,
            "cache_creation_input_tokens": 0,
            "cache_read_input_tokens": 0,
        },
    }


def _message_start() -> dict[str, Any]:
    return {
        "type": "message_start",
        "message": {
            "id": "msg_01",
            "type": "message",
            "role": "assistant",
            "model": ANTHROPIC_MODEL,
            "content": [],
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {
                "input_tokens": 10,
                "output_tokens": 1,
                "cache_creation_input_tokens": 0,
                "cache_read_input_tokens": 0,
            },
        },
    }


@pytest.fixture
def anthropic_text_events() -> list[dict[str, Any]]:
    return [
        _message_start(),
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "ping"},
        {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": "Hi there!"},
        },
        {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": " How can I help you today?"},
        },
        {"type": "content_block_stop", "index": 0},
        {
            "type": "message_delta",
            "delta": {"stop_reason": "end_turn", "stop_sequence": None},
            "usage": {"output_tokens": 12},
        },
        {"type": "message_stop"},
    ]


@pytest.fixture
def anthropic_tool_response() -> dict[str, Any]:
    return {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": ANTHROPIC_MODEL,
        "content": [
            {"type": "text", "text": "Let me check."},
            {
                "type": "tool_use",
                "id": "toolu_01",
                "name": "get_weather",
                "input": {"city": "Tokyo"},
            },
        ],
        "stop_reason": "tool_use",
        "stop_sequence": None,
        "usage": {
            "input_tokens": 10,
            "output_tokens": 12,
            "cache_creation_input_tokens": 0,
            "cache_read_input_tokens": 0,
        },
    }


@pytest.fixture
def anthropic_tool_events() -> list[dict[str, Any]]:
    return [
        _message_start(),
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": "Let me check."},
        },
        {"type": "content_block_stop", "index": 0},
        {
            "type": "content_block_start",
            "index": 1,
            "content_block": {
                "type": "tool_use",
                "id": "toolu_01",
                "name": "get_weather",
                "input": {},
            },
        },
        {
            "type": "content_block_delta",
            "index": 1,
            "delta": {"type": "input_json_delta", "partial_json": ""},
        },
        {
            "type": "content_block_delta",
            "index": 1,
            "delta": {"type": "input_json_delta", "partial_json": '{"city": '},
        },
        {
            "type": "content_block_delta",
            "index": 1,
            "delta": {"type": "input_json_delta", "partial_json": '"Tokyo"}'},
        },
        {"type": "content_block_stop", "index": 1},
        {
            "type": "message_delta",
            "delta": {"stop_reason": "tool_use", "stop_sequence": None},
            "usage": {"output_tokens": 12},
        },
        {"type": "message_stop"},
    ]


# ============================================================================
# Wire helpers
# ============================================================================


@pytest.fixture
def sse_body() -> Callable[..., bytes]:
    """Render payloads as a server-sent event stream.

    Dicts are JSON encoded; strings (such as ``[DONE]``) are sent verbatim.
    With ``named=True`` each event carries an ``event:`` line, as Anthropic
    streams do.
    """

    def render(payloads: list[Any], *, named: bool = False) -> bytes:
        lines: list[str] = []
        for payload in payloads:
            if named and isinstance(payload, dict):
                lines.append(f"event: {payload['type']}")
            data = payload if isinstance(payload, str) else json.dumps(payload)
            lines.append(f"data: {data}")
            lines.append("")
        return ("\n".join(lines) + "\n").encode()

    return render


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests go to ``handler``."""

    def make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return make
