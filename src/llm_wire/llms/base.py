# src/llm_wire/llms/base.py

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from llm_wire.tools.tool import dump_arguments


class WireModel(BaseModel):
    """Base for every wire structure.

    Frozen, compared field by field, and tolerant of fields the provider adds
    later.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)


class Role(str, Enum):
    """Message role in a conversation.

    Shared by both providers. Anthropic has no in-message system role; system
    content is hoisted into a top-level field when encoding.
    """

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"
    TOOL = "tool"


class FunctionCall(WireModel):
    """A function invocation. ``arguments`` is the raw JSON text."""

    name: str
    arguments: str


class ToolCall(WireModel):
    id: str
    type: str = "function"
    function: FunctionCall

    @classmethod
    def from_arguments(
        cls, id: str, name: str, arguments: Mapping[str, Any]
    ) -> "ToolCall":
        return cls(
            id=id,
            function=FunctionCall(name=name, arguments=dump_arguments(arguments)),
        )


class ChatCompletionMessage(WireModel):
    """A single message, used both in requests and in decoded responses.

    ``content`` is absent only when a function call, tool calls or a refusal
    stands in for it. ``tool_call_id`` and ``tool_calls`` are encoded for
    Anthropic requests only.
    """

    role: Role
    content: str | None = None
    name: str | None = None
    function_call: FunctionCall | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    refusal: str | None = None

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _null_tool_calls(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _content_or_call(self) -> "ChatCompletionMessage":
        if self.content is None and not (
            self.function_call or self.tool_calls or self.refusal is not None
        ):
            raise ValueError("content is required unless a function or tool call is present")
        return self

    @classmethod
    def system(cls, content: str) -> "ChatCompletionMessage":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, *, name: str | None = None) -> "ChatCompletionMessage":
        return cls(role=Role.USER, content=content, name=name)

    @classmethod
    def assistant(
        cls,
        content: str | None = None,
        *,
        tool_calls: list[ToolCall] | None = None,
        function_call: FunctionCall | None = None,
    ) -> "ChatCompletionMessage":
        return cls(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tool_calls or [],
            function_call=function_call,
        )

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "ChatCompletionMessage":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    @classmethod
    def function_result(cls, name: str, content: str) -> "ChatCompletionMessage":
        return cls(role=Role.FUNCTION, content=content, name=name)
