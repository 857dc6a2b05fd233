"""contextfold event bus."""

from contextfold.events.bus import EventBus, FoldEvent, Handler
from contextfold.events.payloads import (
    CondenseCompletedPayload,
    CondenseFailedPayload,
    CondenseRequestedPayload,
    ContextTruncatedPayload,
    HistoryCleanedPayload,
)

__all__ = [
    "CondenseCompletedPayload",
    "CondenseFailedPayload",
    "CondenseRequestedPayload",
    "ContextTruncatedPayload",
    "EventBus",
    "FoldEvent",
    "Handler",
    "HistoryCleanedPayload",
]
