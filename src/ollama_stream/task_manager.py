"""Lifecycle tracking for the long-lived request tasks of a session."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Start, await, and cancel named asyncio tasks.

    One name maps to at most one task; starting a task under a name that
    is still running is a programming error.
    """

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}

    def start(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        existing = self._named.get(name)
        if existing is not None and not existing.done():
            coro.close()
            raise RuntimeError(f"Task {name!r} is already running.")
        task = asyncio.create_task(coro, name=name)
        self._named[name] = task
        task.add_done_callback(lambda done: self._on_done(name, done))
        return task

    def _on_done(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.exception",
                extra={
                    "event": "task.exception",
                    "task": name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        return self._named.get(name)

    def running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    async def wait(self, name: str) -> None:
        """Await a named task without cancelling it."""
        task = self._named.get(name)
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def cancel(self, name: str) -> bool:
        """Cancel a named task and wait until it has unwound."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def cancel_all(self) -> None:
        for name in list(self._named):
            await self.cancel(name)
