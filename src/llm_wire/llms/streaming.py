# src/llm_wire/llms/streaming.py

"""Streaming reconciliation.

A reconciler folds the ordered chunks of a streamed completion into exactly
the result the non-streaming decoder would have produced. Its state is
always one of:

    IDLE -> ACCUMULATING -> COMPLETE
                         -> FAILED

An abandoned stream stays in ACCUMULATING. Its partial result is marked
incomplete and is never handed out as a completion.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

import httpx
from pydantic import ValidationError

from .anthropic import (
    AnthropicChatCompletion,
    AnthropicUsage,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    InputJsonDelta,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
    PingEvent,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)
from .base import ChatCompletionMessage, FunctionCall, Role, ToolCall
from .credentials import Provider
from .decoding import decode_chunk
from .errors import LLMError, StreamError, TransportError
from .openai import (
    DONE_SENTINEL,
    ChatCompletion,
    ChatCompletionChoice,
    ChatCompletionChunk,
    Usage,
)
from .transport import iter_events

if TYPE_CHECKING:
    from .builder import CallMetrics

logger = logging.getLogger(__name__)

ChunkT = TypeVar("ChunkT")
ResultT = TypeVar("ResultT")


class StreamState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class PartialCompletion:
    """What a stream had assembled when it stopped short of completion."""

    state: StreamState
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    function_call: FunctionCall | None = None
    finish_reason: str | None = None
    error: LLMError | None = None
    incomplete: bool = True


class StreamReconciler(ABC, Generic[ChunkT, ResultT]):
    """Base state machine shared by both providers."""

    provider: ClassVar[Provider]

    def __init__(self) -> None:
        self._state = StreamState.IDLE
        self._result: ResultT | None = None
        self._error: LLMError | None = None
        self.chunks = 0

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state in (StreamState.COMPLETE, StreamState.FAILED)

    def feed_data(self, data: str) -> ChunkT | None:
        """Decode one server-sent event payload and fold it in.

        Returns:
            The decoded chunk, or ``None`` for sentinels and skipped events.

        Raises:
            StreamError: On a malformed chunk or a provider error event. The
                reconciler is FAILED afterwards.
        """
        self._ensure_open()
        if self._is_sentinel(data):
            self.finish()
            return None
        try:
            chunk = decode_chunk(self.provider, data)
        except StreamError as exc:
            self._fail(exc)
            raise
        if chunk is None:
            return None
        self.feed(chunk)
        return chunk

    def feed(self, chunk: ChunkT) -> None:
        self._ensure_open()
        try:
            terminal = self._apply(chunk)
        except StreamError as exc:
            self._fail(exc)
            raise
        self.chunks += 1
        self._state = StreamState.ACCUMULATING
        if terminal:
            self.finish()

    def finish(self) -> ResultT:
        """Handle the terminal signal and assemble the result."""
        self._ensure_open()
        try:
            result = self._build()
        except StreamError as exc:
            self._fail(exc)
            raise
        self._result = result
        self._state = StreamState.COMPLETE
        return result

    def close(self) -> None:
        """Handle the end of the transport stream.

        A stream that ends without its terminal signal still completes if
        every field of the result has arrived; otherwise it is truncated.
        """
        if self.done:
            return
        if self._ready():
            self.finish()
            return
        raise self._fail(StreamError("stream ended before the terminal signal"))

    def fail(self, error: LLMError) -> None:
        if self.done:
            return
        self._error = error
        self._state = StreamState.FAILED
        logger.warning("%s stream failed: %s", self.provider.value, error)

    def result(self) -> ResultT:
        """The completed result.

        Raises:
            StreamError: If the stream is not COMPLETE. The partial result is
                attached.
        """
        if self._state is StreamState.COMPLETE:
            return self._result  # type: ignore[return-value]
        raise StreamError(
            f"stream is {self._state.value}, no complete result", partial=self.partial()
        )

    def partial(self) -> PartialCompletion:
        return PartialCompletion(
            state=self._state,
            content=self._content(),
            tool_calls=tuple(self._tool_calls()),
            function_call=self._function_call(),
            finish_reason=self._finish_reason(),
            error=self._error,
            incomplete=self._state is not StreamState.COMPLETE,
        )

    def _ensure_open(self) -> None:
        if self.done:
            raise StreamError(f"stream is already {self._state.value}")

    def _fail(self, exc: StreamError) -> StreamError:
        self.fail(exc)
        exc.partial = self.partial()
        return exc

    def _is_sentinel(self, data: str) -> bool:
        return False

    def _function_call(self) -> FunctionCall | None:
        return None

    @abstractmethod
    def _apply(self, chunk: ChunkT) -> bool:
        """Fold one chunk in. Returns True on the terminal chunk."""

    @abstractmethod
    def _ready(self) -> bool: ...

    @abstractmethod
    def _build(self) -> ResultT: ...

    @abstractmethod
    def _content(self) -> str: ...

    @abstractmethod
    def _tool_calls(self) -> list[ToolCall]: ...

    @abstractmethod
    def _finish_reason(self) -> str | None: ...


# ============================================================================
# OpenAI
# ============================================================================


@dataclass
class _CallParts:
    id: str | None = None
    type: str | None = None
    name: list[str] = field(default_factory=list)
    arguments: list[str] = field(default_factory=list)

    def function(self) -> FunctionCall:
        return FunctionCall(name="".join(self.name), arguments="".join(self.arguments))


@dataclass
class _ChoiceParts:
    role: Role | None = None
    content: list[str] | None = None
    refusal: list[str] | None = None
    function_call: _CallParts | None = None
    tool_calls: dict[int, _CallParts] = field(default_factory=dict)
    finish_reason: str | None = None


class OpenAIStreamReconciler(StreamReconciler[ChatCompletionChunk, ChatCompletion]):
    """Folds ``chat.completion.chunk`` deltas into a ``ChatCompletion``."""

    provider = Provider.OPENAI

    def __init__(self) -> None:
        super().__init__()
        self._first: ChatCompletionChunk | None = None
        self._fingerprint: str | None = None
        self._choices: dict[int, _ChoiceParts] = {}
        self._usage: Usage | None = None

    def _is_sentinel(self, data: str) -> bool:
        return data.strip() == DONE_SENTINEL

    def _apply(self, chunk: ChatCompletionChunk) -> bool:
        # Azure opens with an anonymous prompt_filter_results chunk.
        if not chunk.id and not chunk.choices and chunk.usage is None:
            return False
        if self._first is None:
            self._first = chunk
        elif chunk.id and chunk.id != self._first.id:
            raise StreamError(f"chunk id changed mid-stream: {chunk.id!r}")
        if chunk.system_fingerprint is not None:
            self._fingerprint = chunk.system_fingerprint
        if chunk.usage is not None:
            self._usage = chunk.usage

        for choice in chunk.choices:
            parts = self._choices.setdefault(choice.index, _ChoiceParts())
            delta = choice.delta
            if delta.role is not None:
                parts.role = delta.role
            if delta.content is not None:
                parts.content = parts.content or []
                parts.content.append(delta.content)
            if delta.refusal is not None:
                parts.refusal = parts.refusal or []
                parts.refusal.append(delta.refusal)
            if delta.function_call is not None:
                call = parts.function_call or _CallParts()
                parts.function_call = call
                if delta.function_call.name:
                    call.name.append(delta.function_call.name)
                if delta.function_call.arguments:
                    call.arguments.append(delta.function_call.arguments)
            for fragment in delta.tool_calls or ():
                call = parts.tool_calls.setdefault(fragment.index, _CallParts())
                if fragment.id:
                    call.id = fragment.id
                if fragment.type:
                    call.type = fragment.type
                if fragment.function is not None:
                    if fragment.function.name:
                        call.name.append(fragment.function.name)
                    if fragment.function.arguments:
                        call.arguments.append(fragment.function.arguments)
            if choice.finish_reason is not None:
                parts.finish_reason = choice.finish_reason
        return False

    def _ready(self) -> bool:
        return (
            self._first is not None
            and self._usage is not None
            and bool(self._choices)
            and all(p.finish_reason is not None for p in self._choices.values())
        )

    def _build(self) -> ChatCompletion:
        if self._first is None or not self._choices:
            raise StreamError("stream ended before any choice arrived")
        for index, parts in self._choices.items():
            if parts.finish_reason is None:
                raise StreamError(f"choice {index} never reported a finish_reason")
        if self._usage is None:
            raise StreamError("stream ended without a usage block")

        try:
            choices = [
                ChatCompletionChoice(
                    index=index,
                    message=self._message(parts),
                    finish_reason=parts.finish_reason,
                )
                for index, parts in sorted(self._choices.items())
            ]
        except ValidationError as exc:
            raise StreamError(f"assembled message is invalid: {exc}") from exc

        return ChatCompletion(
            id=self._first.id,
            object="chat.completion",
            created=self._first.created,
            model=self._first.model,
            choices=choices,
            usage=self._usage,
            system_fingerprint=self._fingerprint,
        )

    @staticmethod
    def _tool_call(index: int, parts: _CallParts) -> ToolCall:
        if not parts.id:
            raise StreamError(f"tool call {index} never received an id")
        return ToolCall(id=parts.id, type=parts.type or "function", function=parts.function())

    def _message(self, parts: _ChoiceParts) -> ChatCompletionMessage:
        return ChatCompletionMessage(
            role=parts.role or Role.ASSISTANT,
            content=None if parts.content is None else "".join(parts.content),
            refusal=None if parts.refusal is None else "".join(parts.refusal),
            function_call=parts.function_call.function() if parts.function_call else None,
            tool_calls=[
                self._tool_call(index, call)
                for index, call in sorted(parts.tool_calls.items())
            ],
        )

    def _primary(self) -> _ChoiceParts | None:
        if not self._choices:
            return None
        return self._choices[min(self._choices)]

    def _content(self) -> str:
        parts = self._primary()
        return "".join(parts.content or ()) if parts else ""

    def _tool_calls(self) -> list[ToolCall]:
        parts = self._primary()
        if parts is None:
            return []
        return [
            ToolCall(id=call.id or "", type=call.type or "function", function=call.function())
            for _, call in sorted(parts.tool_calls.items())
        ]

    def _function_call(self) -> FunctionCall | None:
        parts = self._primary()
        if parts is None or parts.function_call is None:
            return None
        return parts.function_call.function()

    def _finish_reason(self) -> str | None:
        parts = self._primary()
        return parts.finish_reason if parts else None


# ============================================================================
# Anthropic
# ============================================================================


@dataclass
class _BlockParts:
    type: str
    text: list[str] = field(default_factory=list)
    id: str = ""
    name: str = ""
    initial_input: dict[str, Any] = field(default_factory=dict)
    partial_json: list[str] = field(default_factory=list)
    closed: bool = False
    input: dict[str, Any] | None = None

    def raw_input(self) -> str:
        raw = "".join(self.partial_json)
        if raw.strip():
            return raw
        return json.dumps(self.initial_input)


class AnthropicStreamReconciler(StreamReconciler[Any, AnthropicChatCompletion]):
    """Folds Messages API stream events into an ``AnthropicChatCompletion``.

    Tool input arrives as ``input_json_delta`` fragments. They are
    concatenated per content block index and parsed when the block closes.
    """

    provider = Provider.ANTHROPIC

    def __init__(self) -> None:
        super().__init__()
        self._message: AnthropicChatCompletion | None = None
        self._usage: AnthropicUsage | None = None
        self._blocks: dict[int, _BlockParts] = {}
        self._stop_reason: str | None = None
        self._stop_sequence: str | None = None

    def _apply(self, event: Any) -> bool:
        if isinstance(event, MessageStartEvent):
            if self._message is not None:
                raise StreamError("duplicate message_start event")
            self._message = event.message
            self._usage = event.message.usage
            self._stop_reason = event.message.stop_reason
            self._stop_sequence = event.message.stop_sequence
            for index, block in enumerate(event.message.content):
                self._blocks[index] = self._start_block(block)
                self._blocks[index].closed = True
            return False

        if isinstance(event, PingEvent):
            return False
        if self._message is None:
            raise StreamError(f"{event.type} event before message_start")

        if isinstance(event, ContentBlockStartEvent):
            if event.index in self._blocks:
                raise StreamError(f"content block {event.index} started twice")
            self._blocks[event.index] = self._start_block(event.content_block)
        elif isinstance(event, ContentBlockDeltaEvent):
            self._apply_delta(event)
        elif isinstance(event, ContentBlockStopEvent):
            block = self._block(event.index)
            block.closed = True
            if block.type == "tool_use":
                block.input = self._parse_input(event.index, block)
        elif isinstance(event, MessageDeltaEvent):
            if event.delta.stop_reason is not None:
                self._stop_reason = event.delta.stop_reason
            if event.delta.stop_sequence is not None:
                self._stop_sequence = event.delta.stop_sequence
            if event.usage:
                self._merge_usage(event.usage)
        elif isinstance(event, MessageStopEvent):
            return True
        return False

    @staticmethod
    def _start_block(block: TextBlock | ToolUseBlock) -> _BlockParts:
        if isinstance(block, TextBlock):
            return _BlockParts(type="text", text=[block.text] if block.text else [])
        return _BlockParts(
            type="tool_use", id=block.id, name=block.name, initial_input=dict(block.input)
        )

    def _block(self, index: int) -> _BlockParts:
        try:
            return self._blocks[index]
        except KeyError:
            raise StreamError(f"event for unknown content block {index}") from None

    def _apply_delta(self, event: ContentBlockDeltaEvent) -> None:
        block = self._block(event.index)
        delta = event.delta
        if isinstance(delta, TextDelta):
            if block.type != "text":
                raise StreamError(f"text_delta for {block.type} block {event.index}")
            block.text.append(delta.text)
        elif isinstance(delta, InputJsonDelta):
            if block.type != "tool_use":
                raise StreamError(f"input_json_delta for {block.type} block {event.index}")
            block.partial_json.append(delta.partial_json)

    @staticmethod
    def _parse_input(index: int, block: _BlockParts) -> dict[str, Any]:
        raw = "".join(block.partial_json)
        if not raw.strip():
            return dict(block.initial_input)
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StreamError(f"tool_use block {index} input is not valid JSON: {exc}") from exc
        if not isinstance(value, dict):
            raise StreamError(f"tool_use block {index} input is not a JSON object")
        return value

    def _merge_usage(self, usage: dict[str, Any]) -> None:
        if self._usage is None:
            raise StreamError("message_delta usage before message_start")
        updates = {
            key: value
            for key, value in usage.items()
            if key in AnthropicUsage.model_fields and value is not None
        }
        self._usage = AnthropicUsage.model_validate(
            {**self._usage.model_dump(), **updates}
        )

    def _ready(self) -> bool:
        return (
            self._message is not None
            and self._stop_reason is not None
            and all(block.closed for block in self._blocks.values())
        )

    def _build(self) -> AnthropicChatCompletion:
        if self._message is None or self._usage is None:
            raise StreamError("stream ended before message_start")
        if self._stop_reason is None:
            raise StreamError("stream ended before a stop_reason was reported")

        content: list[TextBlock | ToolUseBlock] = []
        for index, block in sorted(self._blocks.items()):
            if block.type == "text":
                content.append(TextBlock(text="".join(block.text)))
            else:
                if block.input is None:
                    block.input = self._parse_input(index, block)
                content.append(ToolUseBlock(id=block.id, name=block.name, input=block.input))

        return AnthropicChatCompletion(
            id=self._message.id,
            type=self._message.type,
            role=self._message.role,
            content=content,
            model=self._message.model,
            stop_reason=self._stop_reason,
            stop_sequence=self._stop_sequence,
            usage=self._usage,
        )

    def _content(self) -> str:
        return "".join(
            "".join(block.text)
            for _, block in sorted(self._blocks.items())
            if block.type == "text"
        )

    def _tool_calls(self) -> list[ToolCall]:
        return [
            ToolCall(id=block.id, function=FunctionCall(name=block.name, arguments=block.raw_input()))
            for _, block in sorted(self._blocks.items())
            if block.type == "tool_use"
        ]

    def _finish_reason(self) -> str | None:
        return self._stop_reason


# ============================================================================
# Stream handle
# ============================================================================


class ChatCompletionStream(Generic[ChunkT, ResultT]):
    """One in-flight streamed completion.

    Use as an async context manager. Iterating yields decoded chunks in
    arrival order while the reconciler folds them. Leaving the block early
    abandons the stream; ``partial`` then reports what arrived.

    Example:
        >>> async with builder.create_stream() as stream:
        ...     async for chunk in stream:
        ...         ...
        ...     completion = stream.completion
    """

    def __init__(
        self,
        opener: Callable[[], AbstractAsyncContextManager[httpx.Response]],
        reconciler: StreamReconciler[ChunkT, ResultT],
        *,
        metrics: "CallMetrics | None" = None,
    ) -> None:
        self.reconciler = reconciler
        self._opener = opener
        self._metrics = metrics
        self._stack = AsyncExitStack()
        self._response: httpx.Response | None = None
        self._iterator: AsyncIterator[ChunkT] | None = None

    async def __aenter__(self) -> "ChatCompletionStream[ChunkT, ResultT]":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def open(self) -> None:
        if self._response is not None:
            return
        if self._metrics is not None:
            self._metrics.start()
        try:
            self._response = await self._stack.enter_async_context(self._opener())
        except LLMError as exc:
            self._record_failure(exc)
            raise

    async def aclose(self) -> None:
        if self._iterator is not None:
            await self._iterator.aclose()  # type: ignore[attr-defined]
        await self._stack.aclose()
        if not self.reconciler.done:
            logger.info(
                "%s stream closed early after %d chunks",
                self.reconciler.provider.value,
                self.reconciler.chunks,
            )

    def __aiter__(self) -> AsyncIterator[ChunkT]:
        if self._iterator is None:
            self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncIterator[ChunkT]:
        await self.open()
        response = self._response
        try:
            async for event in iter_events(response):
                chunk = self.reconciler.feed_data(event.data)
                if chunk is not None:
                    yield chunk
                if self.reconciler.state is StreamState.COMPLETE:
                    break
            self.reconciler.close()
        except TransportError as exc:
            self.reconciler.fail(exc)
            self._record_failure(exc)
            raise
        except StreamError as exc:
            self._record_failure(exc)
            raise
        finally:
            await self._stack.aclose()

        if self._metrics is not None:
            self._metrics.success(self.reconciler.result(), chunks=self.reconciler.chunks)

    @property
    def state(self) -> StreamState:
        return self.reconciler.state

    @property
    def partial(self) -> PartialCompletion:
        return self.reconciler.partial()

    @property
    def completion(self) -> ResultT:
        return self.reconciler.result()

    async def collect(self) -> ResultT:
        """Drain the stream and return the completed result."""
        async for _ in self:
            pass
        return self.reconciler.result()

    def _record_failure(self, error: LLMError) -> None:
        if self._metrics is not None:
            self._metrics.failure(error)
