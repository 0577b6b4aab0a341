# src/llm_wire/llms/transport.py

"""HTTP boundary.

One POST per logical call. Provider-specific authentication headers, status
handling and server-sent event framing live here; connection pooling, TLS and
timeouts belong to httpx.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

import httpx

from .anthropic import ANTHROPIC_VERSION
from .credentials import Credentials, Provider
from .decoding import parse_api_error
from .encoding import EncodedRequest
from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ServerSentEvent:
    event: str | None
    data: str


def request_headers(credentials: Credentials, *, stream: bool = False) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if credentials.provider is Provider.ANTHROPIC:
        headers["x-api-key"] = credentials.api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
    else:
        headers["Authorization"] = f"Bearer {credentials.api_key}"
    if stream:
        headers["Accept"] = "text/event-stream"
    return headers


@asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def post(
    credentials: Credentials,
    request: EncodedRequest,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> bytes:
    """POST ``request`` and return the raw success body.

    Raises:
        TransportError: On any network-level failure.
        ApiError: On a non-200 status.
    """
    url = credentials.url_for(request.route)
    logger.debug("POST %s (%s)", url, credentials.provider.value)

    async with _client_scope(client, timeout) as http:
        try:
            response = await http.post(
                url, content=request.body, headers=request_headers(credentials)
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    logger.debug("Raw response (%d): %s", response.status_code, response.text)
    if response.status_code != 200:
        error = parse_api_error(credentials.provider, response.status_code, response.content)
        logger.warning("%s", error)
        raise error
    return response.content


@asynccontextmanager
async def open_stream(
    credentials: Credentials,
    request: EncodedRequest,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> AsyncIterator[httpx.Response]:
    """Open a streaming POST. The response is closed when the block exits.

    Raises:
        TransportError: If the connection cannot be established.
        ApiError: On a non-200 status, after reading the error body.
    """
    url = credentials.url_for(request.route)
    logger.debug("POST %s (%s, streaming)", url, credentials.provider.value)

    async with AsyncExitStack() as stack:
        http = await stack.enter_async_context(_client_scope(client, timeout))
        try:
            response = await stack.enter_async_context(
                http.stream(
                    "POST",
                    url,
                    content=request.body,
                    headers=request_headers(credentials, stream=True),
                )
            )
            if response.status_code != 200:
                await response.aread()
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code != 200:
            error = parse_api_error(
                credentials.provider, response.status_code, response.content
            )
            logger.warning("%s", error)
            raise error
        yield response


async def iter_events(response: httpx.Response) -> AsyncIterator[ServerSentEvent]:
    """Frame a server-sent event stream into events.

    Raises:
        TransportError: If the connection drops while reading.
    """
    event: str | None = None
    data: list[str] = []
    try:
        async for line in response.aiter_lines():
            if not line:
                if data:
                    yield ServerSentEvent(event, "\n".join(data))
                event, data = None, []
                continue
            if line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if name == "event":
                event = value
            elif name == "data":
                data.append(value)
    except httpx.HTTPError as exc:
        raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    if data:
        yield ServerSentEvent(event, "\n".join(data))
