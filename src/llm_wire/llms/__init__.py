# src/llm_wire/llms/__init__.py

"""Chat completion layer for llm-wire.

Maps one native call onto one HTTP request against either an
OpenAI-compatible or an Anthropic-compatible API.

Design principles:
- Values only: Credentials and builders are immutable, no shared state
- One request per call: No retries, no backoff, no rate limiting
- Loud failures: Provider errors surface verbatim, nothing is defaulted
- Same shape either way: Streamed results equal non-streamed ones

Example:
    >>> from llm_wire.llms import ChatCompletion, ChatCompletionMessage, Credentials
    >>>
    >>> completion = await (
    ...     ChatCompletion.builder("gpt-4o", [ChatCompletionMessage.user("Hello!")])
    ...     .credentials(Credentials.from_env("openai"))
    ...     .create()
    ... )
    >>> print(completion.choices[0].message.content)
"""

from .anthropic import (
    AnthropicChatCompletion,
    AnthropicUsage,
    TextBlock,
    ToolUseBlock,
)
from .base import ChatCompletionMessage, FunctionCall, Role, ToolCall
from .builder import (
    AnthropicChatCompletionBuilder,
    ChatCompletionBuilder,
    RequestBuilder,
)
from .credentials import Credentials, Provider
from .decoding import decode_response
from .encoding import EncodedRequest, encode_chat_request
from .errors import (
    ApiError,
    ConfigurationError,
    DecodeError,
    LLMError,
    ProviderError,
    StreamError,
    TransportError,
)
from .openai import ChatCompletion, ChatCompletionChoice, ChatCompletionChunk, Usage
from .streaming import (
    AnthropicStreamReconciler,
    ChatCompletionStream,
    OpenAIStreamReconciler,
    PartialCompletion,
    StreamState,
)

__all__ = [
    # Credentials
    "Credentials",
    "Provider",
    # Messages
    "ChatCompletionMessage",
    "FunctionCall",
    "Role",
    "ToolCall",
    # Builders
    "RequestBuilder",
    "ChatCompletionBuilder",
    "AnthropicChatCompletionBuilder",
    # Encoding / decoding
    "EncodedRequest",
    "encode_chat_request",
    "decode_response",
    # OpenAI results
    "ChatCompletion",
    "ChatCompletionChoice",
    "ChatCompletionChunk",
    "Usage",
    # Anthropic results
    "AnthropicChatCompletion",
    "AnthropicUsage",
    "TextBlock",
    "ToolUseBlock",
    # Streaming
    "ChatCompletionStream",
    "OpenAIStreamReconciler",
    "AnthropicStreamReconciler",
    "PartialCompletion",
    "StreamState",
    # Errors
    "LLMError",
    "ConfigurationError",
    "TransportError",
    "ApiError",
    "DecodeError",
    "StreamError",
    "ProviderError",
]
