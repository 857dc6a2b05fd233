"""In-process pub/sub event bus for context compaction events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

Handler = Callable[["FoldEvent", dict[str, Any]], None | Awaitable[None]]


class FoldEvent(StrEnum):
    """All event types published by contextfold components.

    Typed payload definitions for each event live in
    :mod:`contextfold.events.payloads`.

    **Payload schemas by event:**

    ``CONDENSE_REQUESTED``
        :class:`~contextfold.events.payloads.CondenseRequestedPayload`:
        ``task_id``, ``is_automatic_trigger``, ``used_custom_prompt``

    ``CONDENSE_COMPLETED``
        :class:`~contextfold.events.payloads.CondenseCompletedPayload`:
        ``task_id``, ``condense_id``, ``cost``, ``new_context_tokens``,
        ``messages_tagged``

    ``CONDENSE_FAILED``
        :class:`~contextfold.events.payloads.CondenseFailedPayload`:
        ``task_id``, ``error_kind``, ``error``

    ``CONTEXT_TRUNCATED``
        :class:`~contextfold.events.payloads.ContextTruncatedPayload`:
        ``task_id``, ``messages_removed``, ``truncation_id``

    ``HISTORY_CLEANED``
        :class:`~contextfold.events.payloads.HistoryCleanedPayload`:
        ``task_id``, ``messages_restored``
    """

    CONDENSE_REQUESTED = "condense.requested"
    CONDENSE_COMPLETED = "condense.completed"
    CONDENSE_FAILED = "condense.failed"
    CONTEXT_TRUNCATED = "context.truncated"
    HISTORY_CLEANED = "history.cleaned"


class EventBus:
    """
    Simple in-process pub/sub event bus.

    Design decisions:
    - Sync handlers are called inline within ``publish()``.
    - Async handlers are scheduled via ``asyncio.create_task()`` (fire-and-forget).
    - Handler exceptions are logged but never propagate to the publisher.

    Example::

        bus = EventBus()

        def on_condense(event, payload):
            print(f"Condensed, {payload['new_context_tokens']} tokens in context")

        bus.subscribe(FoldEvent.CONDENSE_COMPLETED, on_condense)
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[FoldEvent, list[Handler]] = {}
        self._global_handlers: list[Handler] = []
        self._logger = logger or structlog.get_logger("contextfold.events")

    def subscribe(self, event: FoldEvent, handler: Handler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event: The event type to listen for.
            handler: Callable accepting ``(event, payload)``. May be sync or async.
        """
        self._handlers.setdefault(event, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register a handler for ALL event types."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event: FoldEvent, handler: Handler) -> None:
        """Remove a previously registered handler. No-op if not found."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: FoldEvent, payload: dict[str, Any]) -> None:
        """
        Publish an event to all registered handlers.

        Sync handlers are called immediately in registration order.
        Async handlers are scheduled as background tasks (non-blocking).
        Exceptions from any handler are logged and swallowed.

        Args:
            event: The event type to publish.
            payload: Event-specific data dictionary.
        """
        all_handlers = list(self._handlers.get(event, [])) + list(self._global_handlers)
        for handler in all_handlers:
            try:
                result = handler(event, payload)
                if asyncio.iscoroutine(result):
                    try:
                        loop = asyncio.get_running_loop()
                        _task = loop.create_task(result)  # noqa: RUF006
                    except RuntimeError:
                        # No running event loop, skip async handler
                        result.close()
            except Exception as exc:
                self._logger.error(
                    "event_handler_error",
                    event=str(event),
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(exc),
                )
