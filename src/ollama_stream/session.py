"""One endpoint wired into transport, registry, managers, and a conversation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
from typing import Any

import httpx

from .conversation import Conversation
from .managers import ConnectionManager, ModelManager
from .registry import ModelRegistry
from .state import ConnectionState
from .transport import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_ENDPOINT,
    ChatTransport,
    StreamObserver,
    parse_endpoint,
)

LOGGER = logging.getLogger(__name__)


class ChatSession:
    """Owns the shared HTTP client and keeps collaborators in sync.

    Connection changes feed the conversation's send guard and model
    selection changes feed the conversation's active model.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        model: str = "",
        check_interval_seconds: int = 15,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        observer: StreamObserver | None = None,
        history: Iterable[Mapping[str, Any]] | None = None,
    ) -> None:
        # Raises InvalidEndpointError before any connection is attempted.
        self.endpoint = parse_endpoint(endpoint)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout)
        )
        self.transport = ChatTransport(
            self.endpoint, client=self.client, observer=observer
        )
        self.registry = ModelRegistry(
            self.endpoint, client=self.client, observer=observer
        )
        self.connection = ConnectionManager(self.registry, check_interval_seconds)
        self.models = ModelManager(
            self.registry, selected_model=model, connection=self.connection
        )
        self.conversation = Conversation(self.transport, model=model, history=history)

        self.connection.on_state_change(self._on_connection_change)
        self.models.on_selection_change(self._on_model_selected)

    @classmethod
    def from_config(
        cls, config: Mapping[str, Mapping[str, Any]], **kwargs: Any
    ) -> ChatSession:
        """Build a session from a validated config dict (see ``load_config``)."""
        ollama = config.get("ollama", {})
        connection = config.get("connection", {})
        return cls(
            str(ollama.get("endpoint", DEFAULT_ENDPOINT)),
            model=str(ollama.get("model", "") or ""),
            check_interval_seconds=int(connection.get("check_interval_seconds", 15)),
            connect_timeout=float(
                ollama.get("connect_timeout_seconds", DEFAULT_CONNECT_TIMEOUT_SECONDS)
            ),
            **kwargs,
        )

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    async def start(self, monitor: bool = True) -> bool:
        """Check the endpoint, load models when reachable, optionally keep polling."""
        connected = await self.refresh_connection()
        LOGGER.info(
            "session.start",
            extra={
                "event": "session.start",
                "endpoint": self.endpoint.base_url,
                "connected": connected,
                "model": self.conversation.model,
            },
        )
        if monitor:
            await self.connection.start_monitoring()
        return connected

    async def refresh_connection(self) -> bool:
        state = await self.connection.check_connection()
        if state is ConnectionState.ONLINE:
            await self.models.refresh()
        return state is ConnectionState.ONLINE

    async def select_model(self, model_name: str) -> None:
        """User-initiated model switch, announced in the conversation."""
        await self.conversation.set_model(model_name, announce=True)
        await self.models.select(model_name)

    async def aclose(self) -> None:
        await self.conversation.cancel()
        await self.connection.stop_monitoring()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> ChatSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _on_connection_change(
        self, old_state: ConnectionState, new_state: ConnectionState
    ) -> None:
        self.conversation.set_connected(new_state is ConnectionState.ONLINE)

    async def _on_model_selected(self, model_name: str | None) -> None:
        if model_name is None:
            self.conversation.model = ""
            return
        await self.conversation.set_model(model_name, announce=False)
