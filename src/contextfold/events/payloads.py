"""Typed payload definitions for each FoldEvent.

Usage example::

    from contextfold.events.bus import EventBus, FoldEvent
    from contextfold.events.payloads import CondenseCompletedPayload

    def on_condense(event: FoldEvent, payload: CondenseCompletedPayload) -> None:
        print(f"Summary {payload['condense_id']} cost ${payload['cost']:.4f}")

    bus.subscribe(FoldEvent.CONDENSE_COMPLETED, on_condense)  # type: ignore[arg-type]
"""

from __future__ import annotations

from typing import TypedDict


class CondenseRequestedPayload(TypedDict):
    """Payload for :attr:`FoldEvent.CONDENSE_REQUESTED`."""

    task_id: str
    is_automatic_trigger: bool
    used_custom_prompt: bool


class CondenseCompletedPayload(TypedDict):
    """Payload for :attr:`FoldEvent.CONDENSE_COMPLETED`."""

    task_id: str
    condense_id: str
    cost: float
    new_context_tokens: int
    messages_tagged: int
    """Number of messages that received the new ``condense_parent`` tag."""


class CondenseFailedPayload(TypedDict):
    """Payload for :attr:`FoldEvent.CONDENSE_FAILED`."""

    task_id: str
    error_kind: str
    error: str


class ContextTruncatedPayload(TypedDict):
    """Payload for :attr:`FoldEvent.CONTEXT_TRUNCATED`."""

    task_id: str
    messages_removed: int
    truncation_id: str | None
    """Set when the truncation was non-destructive (marker inserted)."""


class HistoryCleanedPayload(TypedDict):
    """Payload for :attr:`FoldEvent.HISTORY_CLEANED`."""

    task_id: str
    messages_restored: int
