# src/llm_wire/llms/anthropic.py

"""Anthropic Messages API wire types."""

from collections.abc import Iterable
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import Field

from .base import ChatCompletionMessage, WireModel

if TYPE_CHECKING:
    from .builder import AnthropicChatCompletionBuilder

MESSAGES_ROUTE = "messages"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicUsage(WireModel):
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


class TextBlock(WireModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(WireModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock], Field(discriminator="type")]


class AnthropicChatCompletion(WireModel):
    id: str
    type: str
    role: str
    content: list[ContentBlock]
    model: str
    stop_reason: str | None
    stop_sequence: str | None = None
    usage: AnthropicUsage

    @property
    def text(self) -> str:
        """Concatenated text of every text block."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @classmethod
    def builder(
        cls,
        model: str,
        system: str,
        messages: Iterable[ChatCompletionMessage],
    ) -> "AnthropicChatCompletionBuilder":
        """Start a Messages API request.

        Args:
            model: The model to use (e.g. "claude-3-5-sonnet-20241022").
            system: System prompt. An empty string means no system prompt.
            messages: The conversation so far.
        """
        from .builder import AnthropicChatCompletionBuilder

        return AnthropicChatCompletionBuilder(model, messages).system(system)


# ============================================================================
# Streaming events
# ============================================================================


class TextDelta(WireModel):
    type: Literal["text_delta"]
    text: str


class InputJsonDelta(WireModel):
    type: Literal["input_json_delta"]
    partial_json: str


BlockDelta = Annotated[Union[TextDelta, InputJsonDelta], Field(discriminator="type")]


class MessageStartEvent(WireModel):
    type: Literal["message_start"]
    message: AnthropicChatCompletion


class ContentBlockStartEvent(WireModel):
    type: Literal["content_block_start"]
    index: int
    content_block: ContentBlock


class ContentBlockDeltaEvent(WireModel):
    type: Literal["content_block_delta"]
    index: int
    delta: BlockDelta


class ContentBlockStopEvent(WireModel):
    type: Literal["content_block_stop"]
    index: int


class MessageDelta(WireModel):
    stop_reason: str | None = None
    stop_sequence: str | None = None


class MessageDeltaEvent(WireModel):
    type: Literal["message_delta"]
    delta: MessageDelta
    usage: dict[str, Any] | None = None


class MessageStopEvent(WireModel):
    type: Literal["message_stop"]


class PingEvent(WireModel):
    type: Literal["ping"]


AnthropicStreamEvent = Annotated[
    Union[
        MessageStartEvent,
        ContentBlockStartEvent,
        ContentBlockDeltaEvent,
        ContentBlockStopEvent,
        MessageDeltaEvent,
        MessageStopEvent,
        PingEvent,
    ],
    Field(discriminator="type"),
]

STREAM_EVENT_TYPES = frozenset(
    {
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
        "ping",
        "error",
    }
)
