# src/llm_wire/llms/encoding.py

"""Provider request encoders.

Pure functions from accumulated builder parameters to the exact JSON payload
and route each provider expects. Same parameters, same bytes.
"""

import json
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ._tool_schema import tools_to_anthropic_schema, tools_to_openai_functions
from .anthropic import MESSAGES_ROUTE
from .base import ChatCompletionMessage, Role, ToolCall
from .credentials import Provider
from .errors import ConfigurationError
from .openai import CHAT_COMPLETIONS_ROUTE

# Payload keys copied through as-is when set, in payload order.
_OPENAI_PASSTHROUGH = (
    "temperature",
    "top_p",
    "n",
    "stream",
    "stop",
    "seed",
    "max_tokens",
    "presence_penalty",
    "frequency_penalty",
    "logit_bias",
    "user",
)
_ANTHROPIC_PASSTHROUGH = (
    "temperature",
    "top_p",
    "top_k",
    "stream",
    "tool_choice",
    "metadata",
)
_FLOAT_FIELDS = frozenset(
    {"temperature", "top_p", "presence_penalty", "frequency_penalty"}
)


@dataclass(frozen=True)
class EncodedRequest:
    """A provider-specific request, ready for the transport."""

    provider: Provider
    route: str
    payload: dict[str, Any]

    @property
    def stream(self) -> bool:
        return bool(self.payload.get("stream"))

    @property
    def body(self) -> bytes:
        return json.dumps(
            self.payload, ensure_ascii=False, separators=(",", ":"), allow_nan=False
        ).encode("utf-8")


def encode_chat_request(
    provider: Provider, params: Mapping[str, Any]
) -> EncodedRequest:
    """Encode chat parameters for ``provider``.

    Args:
        provider: Target provider.
        params: Builder parameters. Absent keys are unset fields.

    Raises:
        ConfigurationError: If a required field is missing or a field cannot be
            expressed for this provider.
    """
    return _ENCODERS[provider](params)


# ============================================================================
# Shared validation
# ============================================================================


def _require_model(params: Mapping[str, Any]) -> str:
    model = params.get("model")
    if not model or not str(model).strip():
        raise ConfigurationError("model must not be empty", field="model")
    return str(model)


def _require_messages(params: Mapping[str, Any]) -> Sequence[ChatCompletionMessage]:
    messages = params.get("messages") or ()
    if not messages:
        raise ConfigurationError("messages must not be empty", field="messages")
    return messages


def _number(name: str, value: Any) -> Any:
    if name not in _FLOAT_FIELDS:
        return value
    return _finite(name, value)


def _finite(name: str, value: Any) -> float:
    if isinstance(value, (bool, str)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}", field=name)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{name} must be a number, got {value!r}", field=name
        ) from None
    if not math.isfinite(number):
        raise ConfigurationError(f"{name} must be a finite number", field=name)
    return number


def _max_tokens(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(
            f"max_tokens must be a positive integer, got {value!r}", field="max_tokens"
        )
    return value


def _passthrough(
    payload: dict[str, Any], params: Mapping[str, Any], names: Sequence[str]
) -> None:
    for name in names:
        if name not in params:
            continue
        value = params[name]
        if name == "max_tokens":
            value = _max_tokens(value)
        elif isinstance(value, (tuple, list)):
            value = list(value)
        elif isinstance(value, Mapping):
            value = dict(value)
        payload[name] = _number(name, value)


# ============================================================================
# OpenAI
# ============================================================================


def _openai_message(message: ChatCompletionMessage, position: int) -> dict[str, Any]:
    where = f"messages.{position}"
    if message.tool_calls or message.tool_call_id:
        raise ConfigurationError(
            f"{where}: tool_calls/tool_call_id are Anthropic message fields; "
            "use function_call and Role.FUNCTION for OpenAI",
            field=f"{where}.tool_calls",
        )
    if message.role is Role.TOOL:
        raise ConfigurationError(
            f"{where}: Role.TOOL needs a tool_call_id; use Role.FUNCTION for OpenAI",
            field=f"{where}.role",
        )
    if message.role is Role.FUNCTION and not message.name:
        raise ConfigurationError(
            f"{where}: function messages need the function name", field=f"{where}.name"
        )

    encoded: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.name:
        encoded["name"] = message.name
    if message.function_call:
        encoded["function_call"] = message.function_call.model_dump()
    return encoded


def _encode_openai(params: Mapping[str, Any]) -> EncodedRequest:
    payload: dict[str, Any] = {
        "model": _require_model(params),
        "messages": [
            _openai_message(m, i) for i, m in enumerate(_require_messages(params))
        ],
    }
    _passthrough(payload, params, _OPENAI_PASSTHROUGH)

    if "logit_bias" in payload:
        payload["logit_bias"] = {
            str(token): _finite("logit_bias", bias)
            for token, bias in payload["logit_bias"].items()
        }
    if params.get("functions"):
        payload["functions"] = tools_to_openai_functions(list(params["functions"]))
    if "function_call" in params:
        function_call = params["function_call"]
        if isinstance(function_call, str) and function_call not in ("auto", "none"):
            function_call = {"name": function_call}
        payload["function_call"] = function_call
    if "response_format" in params:
        payload["response_format"] = {"type": params["response_format"]}
    if payload.get("stream"):
        # Without this the stream never reports usage.
        payload["stream_options"] = {"include_usage": True}

    return EncodedRequest(Provider.OPENAI, CHAT_COMPLETIONS_ROUTE, payload)


# ============================================================================
# Anthropic
# ============================================================================


def _tool_use_block(call: ToolCall, where: str) -> dict[str, Any]:
    try:
        arguments = json.loads(call.function.arguments or "{}")
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"{where}: tool call {call.id} arguments are not valid JSON: {exc}",
            field=f"{where}.tool_calls",
        ) from exc
    if not isinstance(arguments, dict):
        raise ConfigurationError(
            f"{where}: tool call {call.id} arguments must be a JSON object",
            field=f"{where}.tool_calls",
        )
    return {
        "type": "tool_use",
        "id": call.id,
        "name": call.function.name,
        "input": arguments,
    }


def _is_tool_result_turn(turn: dict[str, Any]) -> bool:
    content = turn["content"]
    return (
        turn["role"] == "user"
        and isinstance(content, list)
        and all(block["type"] == "tool_result" for block in content)
    )


def _anthropic_turns(
    messages: Sequence[ChatCompletionMessage],
) -> tuple[list[str], list[dict[str, Any]]]:
    """Split messages into hoisted system text and Anthropic turns."""
    system: list[str] = []
    turns: list[dict[str, Any]] = []

    for position, message in enumerate(messages):
        where = f"messages.{position}"
        if message.role is Role.SYSTEM:
            if message.content:
                system.append(message.content)
            continue
        if message.function_call is not None:
            raise ConfigurationError(
                f"{where}: function_call is not supported by Anthropic; use tool_calls",
                field=f"{where}.function_call",
            )
        if message.name is not None and message.role is not Role.FUNCTION:
            raise ConfigurationError(
                f"{where}: name is not supported by Anthropic messages",
                field=f"{where}.name",
            )

        if message.role is Role.ASSISTANT and message.tool_call_id:
            raise ConfigurationError(
                f"{where}: assistant messages cannot carry a tool_call_id",
                field=f"{where}.tool_call_id",
            )
        if message.tool_call_id or message.role in (Role.TOOL, Role.FUNCTION):
            if not message.tool_call_id:
                raise ConfigurationError(
                    f"{where}: tool results need a tool_call_id",
                    field=f"{where}.tool_call_id",
                )
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.content,
            }
            # Parallel tool results belong in one user turn.
            if turns and _is_tool_result_turn(turns[-1]):
                turns[-1]["content"].append(block)
            else:
                turns.append({"role": "user", "content": [block]})
            continue

        if message.tool_calls:
            if message.role is not Role.ASSISTANT:
                raise ConfigurationError(
                    f"{where}: only assistant messages can carry tool_calls",
                    field=f"{where}.tool_calls",
                )
            blocks: list[dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            blocks.extend(_tool_use_block(call, where) for call in message.tool_calls)
            turns.append({"role": "assistant", "content": blocks})
            continue

        turns.append({"role": message.role.value, "content": message.content})

    return system, turns


def _encode_anthropic(params: Mapping[str, Any]) -> EncodedRequest:
    model = _require_model(params)
    messages = _require_messages(params)
    if "max_tokens" not in params:
        raise ConfigurationError(
            "max_tokens is required for Anthropic requests", field="max_tokens"
        )
    max_tokens = _max_tokens(params["max_tokens"])

    system, turns = _anthropic_turns(messages)
    if params.get("system"):
        system.insert(0, params["system"])
    if not turns:
        raise ConfigurationError(
            "messages must contain at least one non-system message", field="messages"
        )

    payload: dict[str, Any] = {"model": model, "max_tokens": max_tokens}
    if system:
        payload["system"] = "\n\n".join(system)
    payload["messages"] = turns
    _passthrough(payload, params, _ANTHROPIC_PASSTHROUGH)

    if "stop" in params:
        payload["stop_sequences"] = list(params["stop"])
    if params.get("tools"):
        payload["tools"] = tools_to_anthropic_schema(list(params["tools"]))

    return EncodedRequest(Provider.ANTHROPIC, MESSAGES_ROUTE, payload)


_ENCODERS: dict[Provider, Callable[[Mapping[str, Any]], EncodedRequest]] = {
    Provider.OPENAI: _encode_openai,
    Provider.ANTHROPIC: _encode_anthropic,
}
