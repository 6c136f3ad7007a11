"""Streaming chat transport over Ollama's newline-delimited JSON protocol."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Iterable, Mapping
from dataclasses import dataclass
import logging
from typing import Any, Literal
from urllib.parse import urlparse

import httpx

from .exceptions import (
    HTTPStatusError,
    InvalidEndpointError,
    NetworkError,
    OllamaChatError,
    OllamaConnectionError,
    OllamaModelNotFoundError,
    OllamaStreamingError,
)
from .framing import aiter_lines
from .wire import ChatRequest, ChatResponseLine, EventDecoder, WireError, WireMessage

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434/api"
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

# httpx failures that map onto the domain taxonomy.
HTTP_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    httpx.InvalidURL,
    httpx.StreamError,
)
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (OllamaChatError, *HTTP_ERRORS)


@dataclass(frozen=True)
class Endpoint:
    """Validated base URL of one Ollama API."""

    base_url: str
    host: str

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"


def parse_endpoint(url: str) -> Endpoint:
    """Validate a configured base URL such as ``http://localhost:11434/api``."""
    candidate = url.strip().rstrip("/") if isinstance(url, str) else ""
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise InvalidEndpointError(f"Invalid Ollama API URL: {url!r}")
    try:
        parsed.port
    except ValueError as exc:
        raise InvalidEndpointError(f"Invalid Ollama API URL: {url!r}") from exc
    return Endpoint(base_url=candidate, host=parsed.hostname)


def map_exception(exc: BaseException, endpoint: Endpoint) -> OllamaChatError:
    """Translate httpx failures into the domain error taxonomy."""
    if isinstance(exc, OllamaChatError):
        return exc
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout)):
        return OllamaConnectionError(
            f"Failed to connect to Ollama at {endpoint.base_url}. "
            "Make sure Ollama is running."
        )
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL)):
        return InvalidEndpointError(f"Invalid Ollama API URL: {endpoint.base_url!r}")
    return NetworkError(f"Network error: {exc}")


async def raise_for_status(response: httpx.Response) -> None:
    """Raise before any line is decoded when the status is not 200."""
    if response.status_code == 200:
        return
    try:
        body = await response.aread()
    except (httpx.HTTPError, httpx.StreamError):
        body = b""
    detail = EventDecoder.error_detail(body)
    if response.status_code == 404 and "model" in detail.lower():
        raise OllamaModelNotFoundError(response.status_code, detail)
    raise HTTPStatusError(response.status_code, detail)


def to_wire_messages(messages: Iterable[Any]) -> list[WireMessage]:
    """Accept wire models, ``{role, content}`` mappings, or objects with ``to_wire``."""
    converted: list[WireMessage] = []
    for item in messages:
        if isinstance(item, WireMessage):
            converted.append(item)
        elif isinstance(item, Mapping):
            converted.append(WireMessage.model_validate(item))
        elif hasattr(item, "to_wire"):
            converted.append(WireMessage.model_validate(item.to_wire()))
        else:
            raise TypeError(f"Cannot convert {type(item).__name__} to a chat message.")
    return converted


@dataclass(frozen=True)
class TransportEvent:
    """One event from a chat stream; every kind except ``delta`` is terminal."""

    kind: Literal["delta", "done", "error", "cancelled"]
    text: str = ""
    role: str = "assistant"
    error: OllamaChatError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind != "delta"


class StreamObserver:
    """Diagnostic hooks for streamed requests. The base class ignores everything.

    Line counts are passed in by the caller, so one observer can be shared by
    overlapping requests.
    """

    def on_request(self, method: str, url: str, payload: Mapping[str, Any]) -> None:
        pass

    def on_line(self, line: str, index: int) -> None:
        pass

    def on_skip(self, line: str) -> None:
        pass

    def on_terminal(self, event: TransportEvent, lines: int = 0) -> None:
        pass


NullStreamObserver = StreamObserver


class LoggingStreamObserver(StreamObserver):
    """Emit structured log records for each stage of a streamed request."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOGGER

    def on_request(self, method: str, url: str, payload: Mapping[str, Any]) -> None:
        messages = payload.get("messages")
        self.logger.info(
            "transport.request.start",
            extra={
                "event": "transport.request.start",
                "method": method,
                "url": url,
                "model": payload.get("model") or payload.get("name"),
                "message_count": len(messages) if isinstance(messages, list) else 0,
            },
        )

    def on_line(self, line: str, index: int) -> None:
        self.logger.debug(
            "transport.line",
            extra={"event": "transport.line", "index": index, "line": line[:100]},
        )

    def on_skip(self, line: str) -> None:
        self.logger.debug(
            "transport.line.skipped",
            extra={"event": "transport.line.skipped", "line": line[:100]},
        )

    def on_terminal(self, event: TransportEvent, lines: int = 0) -> None:
        extra: dict[str, Any] = {
            "event": f"transport.request.{event.kind}",
            "lines": lines,
        }
        if event.error is not None:
            extra["error_type"] = type(event.error).__name__
            extra["error"] = str(event.error)
            self.logger.warning(extra["event"], extra=extra)
        else:
            self.logger.info(extra["event"], extra=extra)


class EndpointClient:
    """Shared httpx plumbing for everything that talks to one endpoint."""

    def __init__(
        self,
        endpoint: str | Endpoint = DEFAULT_ENDPOINT,
        *,
        client: httpx.AsyncClient | None = None,
        observer: StreamObserver | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        self.endpoint = (
            endpoint if isinstance(endpoint, Endpoint) else parse_endpoint(endpoint)
        )
        self.observer = observer if observer is not None else LoggingStreamObserver()
        self.decoder = EventDecoder()
        self.connect_timeout = connect_timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Long generations are expected: only connecting is bounded.
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=self.connect_timeout)
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> EndpointClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class ChatStream:
    """A single cancellable chat request yielding at most one terminal event."""

    def __init__(self, transport: ChatTransport, request: ChatRequest) -> None:
        self._transport = transport
        self.request = request
        self._cancel_requested = False
        self._consumed = False
        self._terminal: TransportEvent | None = None
        self.lines = 0

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    @property
    def terminated(self) -> bool:
        return self._terminal is not None

    @property
    def terminal_event(self) -> TransportEvent | None:
        return self._terminal

    def cancel(self) -> None:
        """Ask the stream to stop at the next line boundary."""
        self._cancel_requested = True

    def __aiter__(self) -> AsyncGenerator[TransportEvent, None]:
        """Return the event generator; ``aclose`` it to release the response."""
        if self._consumed:
            raise RuntimeError("A chat stream can only be iterated once.")
        self._consumed = True
        return self._events()

    def _finish(self, event: TransportEvent) -> TransportEvent:
        self._terminal = event
        self._transport.observer.on_terminal(event, self.lines)
        return event

    async def _events(self) -> AsyncGenerator[TransportEvent, None]:
        if self._cancel_requested:
            yield self._finish(TransportEvent(kind="cancelled"))
            return

        transport = self._transport
        url = transport.endpoint.url("chat")
        payload = self.request.model_dump()
        transport.observer.on_request("POST", url, payload)

        terminal: TransportEvent | None = None
        try:
            async with transport.client.stream("POST", url, json=payload) as response:
                await raise_for_status(response)
                async for line in aiter_lines(response.aiter_bytes()):
                    if self._cancel_requested:
                        terminal = TransportEvent(kind="cancelled")
                        break
                    self.lines += 1
                    transport.observer.on_line(line, self.lines)
                    event = transport.decoder.decode(line)
                    if isinstance(event, WireError):
                        terminal = TransportEvent(
                            kind="error", error=OllamaStreamingError(event.error)
                        )
                        break
                    if not isinstance(event, ChatResponseLine):
                        if line.strip():
                            transport.observer.on_skip(line)
                        continue
                    if event.content:
                        yield TransportEvent(
                            kind="delta", text=event.content, role=event.role
                        )
                        if self._cancel_requested:
                            terminal = TransportEvent(kind="cancelled")
                            break
                    if event.done:
                        terminal = TransportEvent(kind="done")
                        break
        except (asyncio.CancelledError, GeneratorExit):
            # Task cancelled, or the consumer closed the generator mid-stream.
            self._cancel_requested = True
            self._finish(TransportEvent(kind="cancelled"))
            raise
        except TRANSPORT_ERRORS as exc:
            terminal = TransportEvent(
                kind="error", error=map_exception(exc, transport.endpoint)
            )

        if terminal is None:
            # The body ended without a done line; treat it as a normal finish.
            terminal = TransportEvent(
                kind="cancelled" if self._cancel_requested else "done"
            )
        yield self._finish(terminal)


class ChatTransport(EndpointClient):
    """Build chat requests and open streams against ``POST /chat``."""

    def build_request(self, model: str, messages: Iterable[Any]) -> ChatRequest:
        return ChatRequest(
            model=model, messages=to_wire_messages(messages), stream=True
        )

    def stream_chat(self, model: str, messages: Iterable[Any]) -> ChatStream:
        """Return a lazily started stream; nothing is sent until iteration begins."""
        return ChatStream(self, self.build_request(model, messages))
