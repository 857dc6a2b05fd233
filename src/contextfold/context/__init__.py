"""Effective-history projection and request assembly."""

from contextfold.context.history import (
    cleanup_after_truncation,
    get_effective_history,
    get_messages_since_last_summary,
    merge_consecutive_messages,
)

__all__ = [
    "cleanup_after_truncation",
    "get_effective_history",
    "get_messages_since_last_summary",
    "merge_consecutive_messages",
]
