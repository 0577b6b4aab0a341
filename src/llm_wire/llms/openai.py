# src/llm_wire/llms/openai.py

"""OpenAI chat completion wire types.

These mirror the provider's JSON one to one. They are deliberately not
unified with the Anthropic shapes.
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING

from pydantic import Field

from .base import ChatCompletionMessage, Role, WireModel

if TYPE_CHECKING:
    from .builder import ChatCompletionBuilder

CHAT_COMPLETIONS_ROUTE = "chat/completions"
DONE_SENTINEL = "[DONE]"


class Usage(WireModel):
    """Token usage for a completion."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionChoice(WireModel):
    index: int
    message: ChatCompletionMessage
    finish_reason: str | None


class ChatCompletion(WireModel):
    id: str
    object: str
    created: int
    model: str
    choices: list[ChatCompletionChoice] = Field(min_length=1)
    usage: Usage
    system_fingerprint: str | None = None

    @classmethod
    def builder(
        cls, model: str, messages: Iterable[ChatCompletionMessage]
    ) -> "ChatCompletionBuilder":
        """Start a chat completion request.

        Example:
            >>> completion = await (
            ...     ChatCompletion.builder("gpt-4o", [ChatCompletionMessage.user("ping")])
            ...     .temperature(0.2)
            ...     .create()
            ... )
        """
        from .builder import ChatCompletionBuilder

        return ChatCompletionBuilder(model, messages)


# ============================================================================
# Streaming
# ============================================================================


class FunctionCallDelta(WireModel):
    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(WireModel):
    index: int
    id: str | None = None
    type: str | None = None
    function: FunctionCallDelta | None = None


class ChatCompletionMessageDelta(WireModel):
    """Same as ChatCompletionMessage, but received during a response stream."""

    role: Role | None = None
    content: str | None = None
    refusal: str | None = None
    function_call: FunctionCallDelta | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChatCompletionChunkChoice(WireModel):
    index: int
    delta: ChatCompletionMessageDelta
    finish_reason: str | None = None


class ChatCompletionChunk(WireModel):
    id: str
    object: str
    created: int
    model: str
    choices: list[ChatCompletionChunkChoice]
    usage: Usage | None = None
    system_fingerprint: str | None = None
