"""Compaction: budget evaluation, condensation and sliding-window truncation."""

from contextfold.compaction.budget import (
    TOKEN_BUFFER_PERCENTAGE,
    build_budget,
    estimate_token_count,
    evaluate_and_compact,
    evaluate_context,
)
from contextfold.compaction.condense import (
    MAX_CONDENSE_THRESHOLD,
    MIN_CONDENSE_THRESHOLD,
    CondensationEngine,
    summarize_conversation,
)
from contextfold.compaction.sliding_window import (
    truncate_conversation,
    truncate_conversation_tagged,
)

__all__ = [
    "MAX_CONDENSE_THRESHOLD",
    "MIN_CONDENSE_THRESHOLD",
    "TOKEN_BUFFER_PERCENTAGE",
    "CondensationEngine",
    "build_budget",
    "estimate_token_count",
    "evaluate_and_compact",
    "evaluate_context",
    "summarize_conversation",
    "truncate_conversation",
    "truncate_conversation_tagged",
]
