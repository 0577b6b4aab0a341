# src/llm_wire/llms/credentials.py

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """The closed set of supported provider APIs."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


DEFAULT_BASE_URLS: dict[Provider, str] = {
    Provider.OPENAI: "https://api.openai.com/v1/",
    Provider.ANTHROPIC: "https://api.anthropic.com/v1/",
}

# (api key variable, base url variable)
ENV_VARS: dict[Provider, tuple[str, str]] = {
    Provider.OPENAI: ("OPENAI_KEY", "OPENAI_BASE_URL"),
    Provider.ANTHROPIC: ("ANTHROPIC_KEY", "ANTHROPIC_BASE_URL"),
}


def coerce_provider(value: Provider | str) -> Provider:
    try:
        return Provider(value)
    except ValueError:
        raise ConfigurationError(f"Unknown provider: {value!r}", field="provider") from None


def parse_base_url(value: str) -> str:
    if not value.endswith("/"):
        value += "/"
    return value


def infer_provider(base_url: str) -> Provider:
    """Guess the provider from a base URL.

    Raises:
        ConfigurationError: If the URL names neither provider.
    """
    lowered = base_url.lower()
    if "openai" in lowered:
        return Provider.OPENAI
    if "anthropic" in lowered:
        return Provider.ANTHROPIC
    raise ConfigurationError(
        f"Cannot infer provider from base URL {base_url!r}; pass provider explicitly",
        field="provider",
    )


@dataclass(frozen=True)
class Credentials:
    """API key, base URL and provider tag for one provider.

    Immutable. Cheap to copy into every request. The key never shows up in
    ``repr`` output.
    """

    api_key: str = field(repr=False)
    base_url: str
    provider: Provider

    def __post_init__(self) -> None:
        provider = coerce_provider(self.provider)
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError("API key must not be empty", field="api_key")

        base_url = self.base_url or DEFAULT_BASE_URLS[provider]
        object.__setattr__(self, "provider", provider)
        object.__setattr__(self, "base_url", parse_base_url(base_url))

    @classmethod
    def new(
        cls,
        api_key: str,
        base_url: str | None = None,
        provider: Provider | str | None = None,
    ) -> "Credentials":
        """Build credentials, filling in whatever can be derived.

        Args:
            api_key: Provider API key. Must be non-empty.
            base_url: API root. Defaults to the provider's public endpoint.
            provider: Provider tag. Inferred from ``base_url`` when omitted.

        Raises:
            ConfigurationError: If the key is empty, or neither a provider nor
                a recognizable base URL is given.
        """
        if provider is None:
            if not base_url:
                raise ConfigurationError(
                    "Either provider or base_url is required", field="provider"
                )
            provider = infer_provider(base_url)
        return cls(api_key=api_key, base_url=base_url or "", provider=provider)  # type: ignore[arg-type]

    @classmethod
    def from_env(
        cls,
        provider: Provider | str,
        environ: Mapping[str, str] | None = None,
    ) -> "Credentials":
        """Read credentials for ``provider`` from the process environment.

        Args:
            provider: Which provider's variables to read.
            environ: Mapping to read instead of ``os.environ``.

        Raises:
            ConfigurationError: If the provider is unknown, or the API key
                variable is unset or empty.
        """
        env = os.environ if environ is None else environ
        provider = coerce_provider(provider)
        key_var, url_var = ENV_VARS[provider]

        api_key = env.get(key_var)
        if not api_key:
            raise ConfigurationError(
                f"Environment variable {key_var} is not set", field=key_var
            )

        base_url = env.get(url_var) or DEFAULT_BASE_URLS[provider]
        logger.debug("Loaded %s credentials from environment", provider.value)
        return cls(api_key=api_key, base_url=base_url, provider=provider)

    def url_for(self, route: str) -> str:
        return self.base_url + route.lstrip("/")
