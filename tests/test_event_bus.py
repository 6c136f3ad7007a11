"""Tests for the conversation event bus."""

from __future__ import annotations

import unittest

from ollama_stream.events import ALL_EVENTS, Event, EventBus


class EventBusTests(unittest.IsolatedAsyncioTestCase):
    """Validate ordered delivery and subscriber isolation."""

    async def test_sync_and_async_handlers_run_in_order(self) -> None:
        bus = EventBus(source="test")
        seen: list[str] = []

        def _first(event: Event) -> None:
            seen.append(f"sync:{event.data['n']}")

        async def _second(event: Event) -> None:
            seen.append(f"async:{event.data['n']}")

        bus.subscribe("tick", _first)
        bus.subscribe("tick", _second)
        event = await bus.publish("tick", {"n": 1})
        self.assertEqual(seen, ["sync:1", "async:1"])
        self.assertEqual(event.source, "test")

    async def test_wildcard_receives_everything(self) -> None:
        bus = EventBus()
        names: list[str] = []
        bus.subscribe(ALL_EVENTS, lambda event: names.append(event.name))
        await bus.publish("a", {})
        await bus.publish("b", {})
        self.assertEqual(names, ["a", "b"])

    async def test_unsubscribe_callable(self) -> None:
        bus = EventBus()
        names: list[str] = []
        unsubscribe = bus.subscribe("a", lambda event: names.append(event.name))
        unsubscribe()
        unsubscribe()
        await bus.publish("a", {})
        self.assertEqual(names, [])

    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        names: list[str] = []

        def _broken(event: Event) -> None:
            raise RuntimeError("subscriber bug")

        bus.subscribe("a", _broken)
        bus.subscribe("a", lambda event: names.append(event.name))
        with self.assertLogs("ollama_stream.events.bus", level="ERROR") as logs:
            await bus.publish("a", {})
        self.assertEqual(names, ["a"])
        self.assertTrue(any("event.handler.failed" in line for line in logs.output))

    async def test_clear(self) -> None:
        bus = EventBus()
        names: list[str] = []
        bus.subscribe("a", lambda event: names.append(event.name))
        bus.clear("a")
        await bus.publish("a", {})
        bus.subscribe("b", lambda event: names.append(event.name))
        bus.clear()
        await bus.publish("b", {})
        self.assertEqual(names, [])


if __name__ == "__main__":
    unittest.main()
