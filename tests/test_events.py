"""Tests for the event bus."""

from __future__ import annotations

import asyncio

from contextfold.events.bus import EventBus, FoldEvent


class TestEventBus:
    def test_subscribe_and_publish(self):
        """Handlers receive the event and payload."""
        bus = EventBus()
        received = []
        bus.subscribe(FoldEvent.CONDENSE_COMPLETED, lambda e, p: received.append((e, p)))
        bus.publish(FoldEvent.CONDENSE_COMPLETED, {"task_id": "t"})
        bus.publish(FoldEvent.CONDENSE_FAILED, {"task_id": "t"})
        assert received == [(FoldEvent.CONDENSE_COMPLETED, {"task_id": "t"})]

    def test_subscribe_all(self):
        """Global handlers see every event."""
        bus = EventBus()
        received = []
        bus.subscribe_all(lambda e, p: received.append(e))
        bus.publish(FoldEvent.CONTEXT_TRUNCATED, {})
        bus.publish(FoldEvent.HISTORY_CLEANED, {})
        assert received == [FoldEvent.CONTEXT_TRUNCATED, FoldEvent.HISTORY_CLEANED]

    def test_unsubscribe(self):
        """Removed handlers are not called; unknown handlers are ignored."""
        bus = EventBus()
        received = []

        def handler(event, payload):
            received.append(event)

        bus.subscribe(FoldEvent.CONDENSE_REQUESTED, handler)
        bus.unsubscribe(FoldEvent.CONDENSE_REQUESTED, handler)
        bus.unsubscribe(FoldEvent.CONDENSE_FAILED, handler)
        bus.publish(FoldEvent.CONDENSE_REQUESTED, {})
        assert received == []

    def test_handler_errors_swallowed(self):
        """A failing handler does not stop later handlers."""
        bus = EventBus()
        received = []

        def broken(event, payload):
            raise RuntimeError("boom")

        bus.subscribe(FoldEvent.CONDENSE_FAILED, broken)
        bus.subscribe(FoldEvent.CONDENSE_FAILED, lambda e, p: received.append(e))
        bus.publish(FoldEvent.CONDENSE_FAILED, {})
        assert received == [FoldEvent.CONDENSE_FAILED]

    async def test_async_handler_scheduled(self):
        """Async handlers run as background tasks."""
        bus = EventBus()
        received = []

        async def handler(event, payload):
            received.append(payload["task_id"])

        bus.subscribe(FoldEvent.CONDENSE_COMPLETED, handler)
        bus.publish(FoldEvent.CONDENSE_COMPLETED, {"task_id": "t"})
        await asyncio.sleep(0)
        assert received == ["t"]

    def test_event_values(self):
        """Event names are stable strings."""
        assert FoldEvent.CONDENSE_COMPLETED == "condense.completed"
