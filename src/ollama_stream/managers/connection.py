"""Connection state monitoring for the configured endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import inspect
import logging
from typing import TYPE_CHECKING, Any

from ..state import ConnectionState

if TYPE_CHECKING:
    from ..registry import ModelRegistry

LOGGER = logging.getLogger(__name__)

StateCallback = Callable[[ConnectionState, ConnectionState], Any]


class ConnectionManager:
    """Poll the endpoint and publish reachability changes."""

    def __init__(
        self,
        registry: ModelRegistry,
        check_interval_seconds: int = 15,
    ) -> None:
        """Initialize connection manager.

        Args:
            registry: Registry whose tag listing doubles as a health check
            check_interval_seconds: How often the background loop checks
        """
        self.registry = registry
        self.check_interval = check_interval_seconds
        self._state = ConnectionState.UNKNOWN
        self._check_task: asyncio.Task[None] | None = None
        self._on_state_change: list[StateCallback] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.ONLINE

    @property
    def monitoring(self) -> bool:
        return self._check_task is not None and not self._check_task.done()

    def on_state_change(self, callback: StateCallback) -> None:
        """Register ``callback(old_state, new_state)``; may be sync or async."""
        self._on_state_change.append(callback)

    async def start_monitoring(self) -> None:
        if self._check_task is None:
            self._check_task = asyncio.create_task(self._monitor_loop())
            LOGGER.info(
                "connection.monitor.start",
                extra={
                    "event": "connection.monitor.start",
                    "interval_seconds": self.check_interval,
                },
            )

    async def stop_monitoring(self) -> None:
        if self._check_task:
            self._check_task.cancel()
            try:
                await self._check_task
            except asyncio.CancelledError:
                pass
            self._check_task = None
            LOGGER.info(
                "connection.monitor.stop", extra={"event": "connection.monitor.stop"}
            )

    async def check_connection(self) -> ConnectionState:
        """Check the endpoint once and return the resulting state."""
        is_connected = await self.registry.check_connection()
        new_state = ConnectionState.ONLINE if is_connected else ConnectionState.OFFLINE

        if new_state != self._state:
            old_state = self._state
            self._state = new_state
            LOGGER.info(
                "connection.state.changed",
                extra={
                    "event": "connection.state.changed",
                    "old": old_state.value,
                    "new": new_state.value,
                },
            )
            await self._notify_change(old_state, new_state)

        return self._state

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.check_connection()
            except Exception as exc:  # noqa: BLE001 - keep polling.
                LOGGER.error(
                    "connection.check.error",
                    extra={"event": "connection.check.error", "error": str(exc)},
                )
            await asyncio.sleep(self.check_interval)

    async def _notify_change(
        self, old_state: ConnectionState, new_state: ConnectionState
    ) -> None:
        for callback in self._on_state_change:
            try:
                result = callback(old_state, new_state)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - isolate callbacks.
                LOGGER.error(
                    "connection.callback.error",
                    extra={"event": "connection.callback.error", "error": str(exc)},
                )
