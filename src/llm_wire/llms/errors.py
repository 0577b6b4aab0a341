# src/llm_wire/llms/errors.py

"""Error taxonomy for llm-wire.

Every failure a caller can see is one of five kinds, all rooted at
``LLMError``. Nothing is retried or swallowed at this layer.
"""

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from .credentials import Provider
    from .streaming import PartialCompletion


class ProviderError(BaseModel):
    """Error payload as reported by the provider.

    OpenAI: ``{"error": {"message", "type", "param", "code"}}``.
    Anthropic: ``{"type": "error", "error": {"type", "message"}}``.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: str
    message: str
    param: str | None = None
    code: str | int | None = None

    def __str__(self) -> str:
        return self.message


class LLMError(RuntimeError):
    pass


class ConfigurationError(LLMError):
    """Missing or invalid credentials, or a required request field."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class TransportError(LLMError):
    """Network-level failure. The underlying httpx error is the ``__cause__``."""


class ApiError(LLMError):
    """The provider answered with a non-success status (or an error envelope)."""

    def __init__(
        self,
        *,
        status_code: int,
        provider: "Provider",
        body: str,
        error: ProviderError | None = None,
    ) -> None:
        self.status_code = status_code
        self.provider = provider
        self.body = body
        self.error = error
        if error is not None:
            detail = f"{error.type}: {error.message}"
        else:
            detail = body or "<empty body>"
        super().__init__(f"{provider.value} API error {status_code}: {detail}")


class DecodeError(LLMError):
    """The response body does not match the expected schema."""

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class StreamError(LLMError):
    """A stream ended early, carried a malformed chunk or an error event.

    ``partial`` holds whatever was accumulated before the failure. It is
    always marked incomplete.
    """

    def __init__(
        self,
        message: str,
        *,
        partial: "PartialCompletion | None" = None,
        provider_error: ProviderError | None = None,
    ) -> None:
        super().__init__(message)
        self.partial = partial
        self.provider_error = provider_error
