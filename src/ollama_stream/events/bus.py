"""Event bus used by the conversation to publish changes to subscribers.

Usage:
    bus = EventBus()

    async def on_updated(event):
        print(event.data["message"].content)

    bus.subscribe("message.updated", on_updated)
    await bus.publish("message.updated", {"message": message})

Handlers run sequentially in subscription order, so subscribers observe
changes in the order they were made.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass(frozen=True)
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


class EventBus:
    """Publish/subscribe dispatcher keyed by event name.

    Subscribing to ``ALL_EVENTS`` receives every published event.
    """

    def __init__(self, source: str | None = None) -> None:
        self.source = source
        self._subscribers: dict[str, list[Callable[[Event], Any]]] = {}

    def subscribe(
        self, event_name: str, handler: Callable[[Event], Any]
    ) -> Callable[[], None]:
        """Register ``handler`` and return a callable that unsubscribes it."""
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug("Subscribed to event: %s", event_name)

        def _unsubscribe() -> None:
            self.unsubscribe(event_name, handler)

        return _unsubscribe

    def unsubscribe(self, event_name: str, handler: Callable[[Event], Any]) -> None:
        handlers = self._subscribers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        LOGGER.debug("Unsubscribed from event: %s", event_name)

    async def publish(self, event_name: str, data: dict[str, Any]) -> Event:
        """Deliver an event to its subscribers and to wildcard subscribers."""
        event = Event(name=event_name, data=data, source=self.source)
        handlers = list(self._subscribers.get(event_name, ()))
        handlers.extend(self._subscribers.get(ALL_EVENTS, ()))

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - isolate subscribers.
                LOGGER.error(
                    "event.handler.failed",
                    extra={
                        "event": "event.handler.failed",
                        "event_name": event_name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
        return event

    def clear(self, event_name: str | None = None) -> None:
        if event_name:
            self._subscribers.pop(event_name, None)
        else:
            self._subscribers.clear()
