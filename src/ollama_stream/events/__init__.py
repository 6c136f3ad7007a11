"""Change notifications for observable conversation state."""

from .bus import ALL_EVENTS, Event, EventBus

__all__ = ["ALL_EVENTS", "Event", "EventBus"]
