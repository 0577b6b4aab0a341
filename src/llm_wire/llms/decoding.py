# src/llm_wire/llms/decoding.py

"""Provider response decoders.

This is the boundary. Raw provider JSON stops here and becomes typed result
structures, or a DecodeError naming the field that did not fit.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from .anthropic import STREAM_EVENT_TYPES, AnthropicChatCompletion, AnthropicStreamEvent
from .credentials import Provider
from .errors import ApiError, DecodeError, ProviderError, StreamError
from .openai import ChatCompletion, ChatCompletionChunk

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_RESULT_MODELS: dict[Provider, type[BaseModel]] = {
    Provider.OPENAI: ChatCompletion,
    Provider.ANTHROPIC: AnthropicChatCompletion,
}
_ANTHROPIC_EVENTS: TypeAdapter[Any] = TypeAdapter(AnthropicStreamEvent)


def _field_path(error: ValidationError) -> tuple[str, str]:
    first = error.errors()[0]
    path = ".".join(str(part) for part in first["loc"]) or "<root>"
    return path, first["msg"]


def _load_json(body: bytes | str) -> Any:
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"response body is not valid JSON ({exc})", field="<body>") from exc


def _validate(model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        path, message = _field_path(exc)
        raise DecodeError(message, field=path) from exc


def provider_error(data: Any) -> ProviderError | None:
    """Extract the provider error payload from a decoded body, if it is one.

    Both providers nest the error object under ``error``; Anthropic also tags
    the envelope with ``"type": "error"``.
    """
    if not isinstance(data, Mapping):
        return None
    error = data.get("error")
    if not isinstance(error, Mapping):
        return None
    try:
        return ProviderError.model_validate(error)
    except ValidationError:
        return None


def parse_api_error(provider: Provider, status_code: int, body: bytes | str) -> ApiError:
    """Build an ApiError from a failed response.

    The provider error structure is parsed when the body carries one,
    otherwise the raw text is kept.
    """
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    return ApiError(
        status_code=status_code,
        provider=provider,
        body=text,
        error=provider_error(data),
    )


def decode_response(
    provider: Provider, body: bytes | str | Mapping[str, Any]
) -> ChatCompletion | AnthropicChatCompletion:
    """Decode a non-streaming chat response for ``provider``.

    Raises:
        ApiError: If a success-status body is an error envelope.
        DecodeError: If the body does not match the provider's result shape.
    """
    data = body if isinstance(body, Mapping) else _load_json(body)

    error = provider_error(data)
    if error is not None:
        text = json.dumps(data) if isinstance(body, Mapping) else _as_text(body)
        raise ApiError(status_code=200, provider=provider, body=text, error=error)

    return _validate(_RESULT_MODELS[provider], data)  # type: ignore[return-value]


def decode_chunk(provider: Provider, data: str) -> Any:
    """Decode one server-sent event payload.

    Returns:
        A ``ChatCompletionChunk`` for OpenAI, an Anthropic stream event model,
        or ``None`` for Anthropic event types this library does not know.

    Raises:
        StreamError: If the payload is malformed or reports a provider error.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise StreamError(f"malformed chunk, not valid JSON: {exc}") from exc

    error = provider_error(payload)
    if error is not None:
        raise StreamError(
            f"provider reported an error mid-stream: {error.type}: {error.message}",
            provider_error=error,
        )

    if provider is Provider.ANTHROPIC:
        event_type = payload.get("type") if isinstance(payload, Mapping) else None
        if event_type not in STREAM_EVENT_TYPES:
            logger.debug("Skipping unknown Anthropic stream event: %s", event_type)
            return None
        validator = _ANTHROPIC_EVENTS.validate_python
    else:
        validator = ChatCompletionChunk.model_validate

    try:
        return validator(payload)
    except ValidationError as exc:
        path, message = _field_path(exc)
        raise StreamError(f"malformed chunk at {path}: {message}") from exc


def _as_text(body: bytes | str) -> str:
    return body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
