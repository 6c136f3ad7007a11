"""Model listing, pulling, and deletion against one Ollama endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
import logging

from .exceptions import OllamaChatError, OllamaStreamingError
from .framing import aiter_lines
from .transport import (
    HTTP_ERRORS,
    EndpointClient,
    TransportEvent,
    map_exception,
    raise_for_status,
)
from .wire import ModelTag, PullStatus, WireError

LOGGER = logging.getLogger(__name__)


class ModelRegistry(EndpointClient):
    """Non-chat operations: ``/tags``, ``/pull``, and ``/delete``."""

    async def list_models(self) -> list[ModelTag]:
        """Return installed models sorted by name."""
        url = self.endpoint.url("tags")
        try:
            response = await self.client.get(url)
            await raise_for_status(response)
        except OllamaChatError:
            raise
        except HTTP_ERRORS as exc:
            raise map_exception(exc, self.endpoint) from exc
        tags = self.decoder.decode_tags(response.content)
        LOGGER.info(
            "registry.tags.loaded",
            extra={"event": "registry.tags.loaded", "count": len(tags)},
        )
        return sorted(tags, key=lambda tag: tag.name)

    async def model_names(self) -> list[str]:
        return [tag.name for tag in await self.list_models()]

    async def check_connection(self) -> bool:
        """Return whether the endpoint answers a tag listing."""
        try:
            await self.list_models()
        except Exception as exc:  # noqa: BLE001 - any failure means offline.
            LOGGER.info(
                "registry.connection.failed",
                extra={
                    "event": "registry.connection.failed",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return False
        return True

    async def pull(self, model_name: str) -> AsyncIterator[PullStatus]:
        """Stream pull progress until a status mentions success or completion.

        Malformed status lines are skipped. A non-200 response, an in-band
        error line, or a transport failure raises.
        """
        url = self.endpoint.url("pull")
        payload = {"name": model_name, "stream": True}
        self.observer.on_request("POST", url, payload)
        lines = 0
        try:
            async with self.client.stream("POST", url, json=payload) as response:
                await raise_for_status(response)
                async for line in aiter_lines(response.aiter_bytes()):
                    lines += 1
                    self.observer.on_line(line, lines)
                    event = self.decoder.decode(line)
                    if isinstance(event, WireError):
                        raise OllamaStreamingError(event.error)
                    if not isinstance(event, PullStatus):
                        if line.strip():
                            self.observer.on_skip(line)
                        continue
                    yield event
                    if event.is_terminal:
                        break
        except asyncio.CancelledError:
            self.observer.on_terminal(TransportEvent(kind="cancelled"), lines)
            raise
        except OllamaChatError as exc:
            self.observer.on_terminal(TransportEvent(kind="error", error=exc), lines)
            raise
        except HTTP_ERRORS as exc:
            error = map_exception(exc, self.endpoint)
            self.observer.on_terminal(
                TransportEvent(kind="error", error=error), lines
            )
            raise error from exc
        self.observer.on_terminal(TransportEvent(kind="done"), lines)

    async def delete(self, model_name: str) -> bool:
        """Delete a model; any status other than 200 raises without retrying."""
        url = self.endpoint.url("delete")
        try:
            response = await self.client.request(
                "DELETE", url, json={"name": model_name}
            )
            await raise_for_status(response)
        except OllamaChatError:
            raise
        except HTTP_ERRORS as exc:
            raise map_exception(exc, self.endpoint) from exc
        LOGGER.info(
            "registry.model.deleted",
            extra={"event": "registry.model.deleted", "model": model_name},
        )
        return True

