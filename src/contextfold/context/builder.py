"""Request assembly: effective history, merged and counted."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from contextfold.compaction.budget import build_budget
from contextfold.context.history import get_effective_history, merge_consecutive_messages
from contextfold.models.config import ContextFoldConfig, ModelInfo
from contextfold.models.message import AnyMessage, ContextBudget
from contextfold.tokens.estimator import TokenEstimator


@dataclass
class BuiltContext:
    """The history to transmit with the next request."""

    messages: list[AnyMessage]
    system_prompt: str
    token_estimate: int
    """System prompt plus every message in ``messages``."""
    prior_tokens: int
    """System prompt plus the effective history without its last stored message, unmerged
    (the budget evaluator's ``total_tokens``)."""
    budget: ContextBudget
    has_summary: bool
    summary_token_count: int = 0


class ContextBuilder:
    """
    Assembles the message list sent to the model on each turn.

    Invariants:
    1. Only the effective history is included (nothing hidden by an active
       summary or truncation marker).
    2. Consecutive user messages are merged; the stored history is untouched.
    3. The system prompt is counted against the budget.
    """

    def __init__(self, token_estimator: TokenEstimator | None = None) -> None:
        self._estimator = token_estimator or TokenEstimator()
        self._logger = structlog.get_logger("contextfold.context_builder")

    def build(
        self,
        messages: Sequence[AnyMessage],
        model: ModelInfo,
        system_prompt: str,
        config: ContextFoldConfig | None = None,
    ) -> BuiltContext:
        """
        Build the request history from the full stored history.

        Args:
            messages: The full tagged history.
            model: Model metadata for budget and tokenisation.
            system_prompt: Counted against the budget.
            config: Budget settings.

        Returns:
            BuiltContext with the merged effective history and its token estimate.
        """
        effective = get_effective_history(messages)
        merged = merge_consecutive_messages(effective)

        system_tokens = self._estimator.estimate(system_prompt, model)
        per_message = [self._estimator.estimate_message(m, model) for m in merged]
        total = system_tokens + sum(per_message)
        # Unmerged: the budget evaluator counts the last stored message itself.
        prior = system_tokens + sum(
            self._estimator.estimate_message(m, model) for m in effective[:-1]
        )

        summary_tokens = sum(
            count for msg, count in zip(merged, per_message, strict=True) if msg.is_summary
        )
        budget = build_budget(model.context_window, model.max_tokens, config)

        self._logger.debug(
            "context_built",
            stored=len(messages),
            effective=len(effective),
            sent=len(merged),
            token_estimate=total,
            allowed=budget.allowed,
        )
        return BuiltContext(
            messages=merged,
            system_prompt=system_prompt,
            token_estimate=total,
            prior_tokens=prior,
            budget=budget,
            has_summary=any(m.is_summary for m in merged),
            summary_token_count=summary_tokens,
        )
