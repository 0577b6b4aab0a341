# src/llm_wire/llms/builder.py

"""Fluent request builders.

A builder accumulates parameters and dispatches exactly once, from a terminal
``create``. Setters never validate and never mutate: each returns a new
builder with one field changed. Everything is checked at the terminal call,
before any request leaves the process.
"""

import copy
import logging
from collections.abc import Iterable, Mapping
from time import monotonic
from typing import Any, ClassVar, Generic, Literal, Self, TypeVar

import httpx

from llm_wire.observability import names
from llm_wire.observability.base import MetricsHook, NoOpMetricsHook
from llm_wire.tools.tool import Tool

from . import transport
from .anthropic import AnthropicChatCompletion
from .base import ChatCompletionMessage
from .credentials import Credentials, Provider
from .decoding import decode_response
from .encoding import EncodedRequest, encode_chat_request
from .errors import ConfigurationError, LLMError
from .openai import ChatCompletion
from .streaming import (
    AnthropicStreamReconciler,
    ChatCompletionStream,
    OpenAIStreamReconciler,
    StreamReconciler,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", ChatCompletion, AnthropicChatCompletion)


def usage_counts(result: ChatCompletion | AnthropicChatCompletion) -> tuple[int, int, int]:
    """(prompt, completion, total) tokens, whatever the provider calls them."""
    if isinstance(result, AnthropicChatCompletion):
        usage = result.usage
        return usage.input_tokens, usage.output_tokens, usage.input_tokens + usage.output_tokens
    return (
        result.usage.prompt_tokens,
        result.usage.completion_tokens,
        result.usage.total_tokens,
    )


def finish_reason(result: ChatCompletion | AnthropicChatCompletion) -> str | None:
    if isinstance(result, AnthropicChatCompletion):
        return result.stop_reason
    return result.choices[0].finish_reason


class CallMetrics:
    """Times one call and reports it to a MetricsHook."""

    def __init__(self, hook: MetricsHook, provider: Provider, model: str) -> None:
        self._hook = hook
        self._provider = provider
        self._labels = {"provider": provider.value, "model": model}
        self._start = monotonic()

    def start(self) -> None:
        """Restart the clock, for streams opened after they were built."""
        self._start = monotonic()

    def success(
        self, result: ChatCompletion | AnthropicChatCompletion, *, chunks: int | None = None
    ) -> None:
        elapsed_ms = 1000 * (monotonic() - self._start)
        prompt, completion, total = usage_counts(result)

        self._hook.record_latency(names.LLM_COMPLETION_DURATION, elapsed_ms, self._labels)
        self._hook.increment(names.LLM_REQUESTS_TOTAL, labels=self._labels)
        self._hook.increment(names.LLM_TOKENS_PROMPT, prompt, labels=self._labels)
        self._hook.increment(names.LLM_TOKENS_COMPLETION, completion, labels=self._labels)
        self._hook.increment(names.LLM_TOKENS_TOTAL, total, labels=self._labels)
        if chunks is not None:
            self._hook.increment(names.LLM_STREAM_CHUNKS_TOTAL, chunks, labels=self._labels)

        logger.info(
            "%s completion: finish=%s, tokens=%d, latency=%.0fms",
            self._provider.value,
            finish_reason(result),
            total,
            elapsed_ms,
        )

    def failure(self, error: LLMError) -> None:
        self._hook.increment(
            names.LLM_ERRORS_TOTAL,
            labels={**self._labels, "kind": type(error).__name__},
        )


class RequestBuilder(Generic[ResultT]):
    """Accumulates one chat request for a single provider.

    Parameters that reach the payload live in ``params``; transport knobs
    (credentials, HTTP client, timeout, metrics hook) never do.
    """

    provider: ClassVar[Provider]
    reconciler_class: ClassVar[type[StreamReconciler]]

    def __init__(self, model: str, messages: Iterable[ChatCompletionMessage]) -> None:
        self._params: dict[str, Any] = {"model": model, "messages": tuple(messages)}
        self._options: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _with(self, name: str, value: Any, *, option: bool = False) -> Self:
        clone = copy.copy(self)
        target = dict(self._options if option else self._params)
        if value is None:
            target.pop(name, None)
        else:
            target[name] = value
        if option:
            clone._options = target
        else:
            clone._params = target
        return clone

    @property
    def params(self) -> Mapping[str, Any]:
        return dict(self._params)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._params == other._params and self._options == other._options  # type: ignore[attr-defined]

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self._params.items() if k != "messages")
        return f"{type(self).__name__}({fields}, messages={len(self._params['messages'])})"

    # ------------------------------------------------------------------
    # Shared setters
    # ------------------------------------------------------------------

    def model(self, model: str) -> Self:
        return self._with("model", model)

    def messages(self, messages: Iterable[ChatCompletionMessage]) -> Self:
        return self._with("messages", tuple(messages))

    def temperature(self, temperature: float | None) -> Self:
        return self._with("temperature", temperature)

    def top_p(self, top_p: float | None) -> Self:
        return self._with("top_p", top_p)

    def max_tokens(self, max_tokens: int | None) -> Self:
        return self._with("max_tokens", max_tokens)

    def stop(self, stop: str | Iterable[str] | None) -> Self:
        if isinstance(stop, str):
            stop = (stop,)
        return self._with("stop", None if stop is None else tuple(stop))

    def stream(self, stream: bool | None = True) -> Self:
        return self._with("stream", stream)

    def credentials(self, credentials: Credentials | None) -> Self:
        return self._with("credentials", credentials, option=True)

    def http_client(self, client: httpx.AsyncClient | None) -> Self:
        return self._with("http_client", client, option=True)

    def timeout(self, seconds: float | None) -> Self:
        return self._with("timeout", seconds, option=True)

    def metrics_hook(self, hook: MetricsHook | None) -> Self:
        return self._with("metrics_hook", hook, option=True)

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    def encode(self) -> EncodedRequest:
        """Validate and encode without sending.

        Raises:
            ConfigurationError: If a required field is missing or invalid.
        """
        return encode_chat_request(self.provider, self._params)

    def resolve_credentials(self) -> Credentials:
        """Explicit credentials, else the provider's environment variables.

        Raises:
            ConfigurationError: If none are available, or they belong to the
                other provider.
        """
        credentials = self._options.get("credentials")
        if credentials is None:
            credentials = Credentials.from_env(self.provider)
        if credentials.provider is not self.provider:
            raise ConfigurationError(
                f"{type(self).__name__} needs {self.provider.value} credentials, "
                f"got {credentials.provider.value}",
                field="credentials",
            )
        return credentials

    async def create(self) -> ResultT:
        """Send the request and return the provider's result.

        With the stream flag set the response is streamed and folded into the
        same result shape.

        Raises:
            ConfigurationError: Before any request, on invalid configuration.
            TransportError: If the request could not be delivered.
            ApiError: If the provider answered with an error.
            DecodeError: If the response does not match the expected shape.
            StreamError: If a streamed response was malformed or truncated.
        """
        request = self.encode()
        credentials = self.resolve_credentials()

        if request.stream:
            async with self._stream(request, credentials) as stream:
                return await stream.collect()

        metrics = self._call_metrics()
        logger.debug(
            "Calling %s: model=%s, messages=%d",
            self.provider.value,
            self._params["model"],
            len(self._params["messages"]),
        )
        try:
            body = await transport.post(
                credentials,
                request,
                client=self._options.get("http_client"),
                timeout=self._options.get("timeout", transport.DEFAULT_TIMEOUT),
            )
            result = decode_response(self.provider, body)
        except LLMError as exc:
            metrics.failure(exc)
            raise

        metrics.success(result)
        return result  # type: ignore[return-value]

    def create_stream(self) -> ChatCompletionStream[Any, ResultT]:
        """Prepare a streamed request.

        Validation happens here; the request is sent when the returned stream
        is entered or iterated.

        Example:
            >>> async with builder.create_stream() as stream:
            ...     async for chunk in stream:
            ...         print(chunk)
        """
        request = self.stream(True).encode()
        return self._stream(request, self.resolve_credentials())

    def _stream(
        self, request: EncodedRequest, credentials: Credentials
    ) -> ChatCompletionStream[Any, ResultT]:
        client = self._options.get("http_client")
        timeout = self._options.get("timeout", transport.DEFAULT_TIMEOUT)
        return ChatCompletionStream(
            lambda: transport.open_stream(credentials, request, client=client, timeout=timeout),
            self.reconciler_class(),
            metrics=self._call_metrics(),
        )

    def _call_metrics(self) -> CallMetrics:
        hook = self._options.get("metrics_hook") or NoOpMetricsHook()
        return CallMetrics(hook, self.provider, self._params["model"])


class ChatCompletionBuilder(RequestBuilder[ChatCompletion]):
    """OpenAI ``chat/completions`` request."""

    provider = Provider.OPENAI
    reconciler_class = OpenAIStreamReconciler

    def n(self, n: int | None) -> Self:
        """How many chat completion choices to generate for each input message."""
        return self._with("n", n)

    def seed(self, seed: int | None) -> Self:
        return self._with("seed", seed)

    def presence_penalty(self, penalty: float | None) -> Self:
        return self._with("presence_penalty", penalty)

    def frequency_penalty(self, penalty: float | None) -> Self:
        return self._with("frequency_penalty", penalty)

    def logit_bias(self, bias: Mapping[str | int, float] | None) -> Self:
        return self._with("logit_bias", None if bias is None else dict(bias))

    def user(self, user: str | None) -> Self:
        """End-user identifier, forwarded for abuse monitoring."""
        return self._with("user", user or None)

    def functions(self, functions: Iterable[Tool] | None) -> Self:
        return self._with("functions", None if functions is None else tuple(functions))

    def function_call(self, function_call: str | Mapping[str, str] | None) -> Self:
        """``"auto"``, ``"none"``, or the name of the function to force."""
        if isinstance(function_call, Mapping):
            function_call = dict(function_call)
        return self._with("function_call", function_call)

    def response_format(self, response_format: Literal["text", "json_object"] | None) -> Self:
        return self._with("response_format", response_format)


class AnthropicChatCompletionBuilder(RequestBuilder[AnthropicChatCompletion]):
    """Anthropic ``messages`` request.

    The system prompt has its own slot and never travels inside
    ``messages``. ``max_tokens`` has no default and must be set.
    """

    provider = Provider.ANTHROPIC
    reconciler_class = AnthropicStreamReconciler

    def system(self, system: str | None) -> Self:
        return self._with("system", system)

    def top_k(self, top_k: int | None) -> Self:
        return self._with("top_k", top_k)

    def tools(self, tools: Iterable[Tool] | None) -> Self:
        return self._with("tools", None if tools is None else tuple(tools))

    def tool_choice(self, choice: str | Mapping[str, Any] | None) -> Self:
        """``"auto"``, ``"any"``, a tool name, or a raw tool_choice object."""
        if isinstance(choice, str):
            choice = {"type": choice} if choice in ("auto", "any") else {"type": "tool", "name": choice}
        elif choice is not None:
            choice = dict(choice)
        return self._with("tool_choice", choice)

    def metadata(self, user_id: str | None) -> Self:
        return self._with("metadata", None if user_id is None else {"user_id": user_id})
