# Chat completions
from .llms import (
    AnthropicChatCompletion,
    ApiError,
    ChatCompletion,
    ChatCompletionMessage,
    ConfigurationError,
    Credentials,
    DecodeError,
    LLMError,
    Provider,
    Role,
    StreamError,
    StreamState,
    TransportError,
)

# Observability
from .observability import MetricsHook, NoOpMetricsHook

# Tools
from .tools import Tool

__all__ = [
    # Chat completions
    "AnthropicChatCompletion",
    "ChatCompletion",
    "ChatCompletionMessage",
    "Credentials",
    "Provider",
    "Role",
    "StreamState",
    # Errors
    "LLMError",
    "ConfigurationError",
    "TransportError",
    "ApiError",
    "DecodeError",
    "StreamError",
    # Observability
    "MetricsHook",
    "NoOpMetricsHook",
    # Tools
    "Tool",
]
