"""Budget evaluator: decide whether the next request fits and compact when it does not.

The decision, per request:

- ``reserved = max_tokens`` when the model reports one, else
  ``default_reserved_fraction`` (20 %) of the window.
- ``allowed = context_window * (1 - TOKEN_BUFFER_PERCENTAGE) - reserved``.
- ``effective = total_tokens + tokens(last message)``; the caller's
  ``total_tokens`` never includes the message about to be sent.

If ``effective <= allowed`` nothing happens. Otherwise the history is
condensed when auto-condense is on, and sliding-window truncation is the
fallback when it is off or condensation fails. Exceeding the budget is never
an exception.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog

from contextfold.compaction.condense import CondensationEngine
from contextfold.compaction.sliding_window import (
    truncate_conversation,
    truncate_conversation_tagged,
)
from contextfold.events.bus import EventBus, FoldEvent
from contextfold.files.folded import IgnorePolicy
from contextfold.models.config import ContextFoldConfig
from contextfold.models.message import (
    AnyMessage,
    CompactionOutcome,
    ContextBudget,
    Message,
    SummarizeResult,
)

if TYPE_CHECKING:
    from contextfold.llm.handler import LanguageModelHandler

TOKEN_BUFFER_PERCENTAGE = 0.1

logger = structlog.get_logger("contextfold.budget")


async def estimate_token_count(content: Sequence[Any], handler: LanguageModelHandler) -> int:
    """Count tokens for a block list with the handler's counter. Empty content is 0."""
    if not content:
        return 0
    return await handler.count_tokens(list(content))


def build_budget(
    context_window: int,
    max_tokens: int | None,
    config: ContextFoldConfig | None = None,
) -> ContextBudget:
    """Return the budget for a model window and its reserved response size."""
    budget_config = (config or ContextFoldConfig()).budget
    reserved = max_tokens or context_window * budget_config.default_reserved_fraction
    return ContextBudget(
        context_window=context_window,
        reserved_tokens=reserved,
        buffer_fraction=budget_config.token_buffer_fraction,
    )


async def _last_message_tokens(messages: Sequence[AnyMessage], handler: LanguageModelHandler) -> int:
    if not messages:
        return 0
    last = messages[-1]
    if isinstance(last, Message):
        return await estimate_token_count(last.blocks(), handler)
    return await estimate_token_count(last.summary, handler)


async def evaluate_context(
    messages: Sequence[AnyMessage],
    total_tokens: int,
    context_window: int,
    max_tokens: int | None,
    handler: LanguageModelHandler,
    auto_condense: bool = True,
    *,
    system_prompt: str = "",
    task_id: str = "",
    config: ContextFoldConfig | None = None,
    engine: CondensationEngine | None = None,
    event_bus: EventBus | None = None,
    custom_prompt: str | None = None,
    environment_details: str | None = None,
    files_read: Sequence[str] | None = None,
    cwd: str | None = None,
    ignore_policy: IgnorePolicy | None = None,
    metadata: dict[str, Any] | None = None,
) -> CompactionOutcome:
    """
    Evaluate the budget and compact the history if needed.

    Args:
        messages: The full task history; the last message is the one about to be sent.
        total_tokens: Tokens used by everything except the last message.
        context_window: The model's total context window.
        max_tokens: The model's maximum response size, or None if unknown.
        handler: Used to count the last message and to run condensation.
        auto_condense: Prefer condensation over truncation.
        system_prompt: Forwarded to the condensation engine.
        task_id: Identifier for logs and events.
        config: Budget, condensation and sliding-window settings.
        engine: Condensation engine to use. Built from ``config`` when None.
        event_bus: Receives truncation events (and condensation events for a
            built engine).
        custom_prompt: Condensing instructions override.
        environment_details: Embedded into an automatically triggered summary.
        files_read: Paths for folded file context.
        cwd: Working directory for ``files_read``.
        ignore_policy: Excludes files from folded context.
        metadata: Passed through to ``handler.create_message``.

    Returns:
        CompactionOutcome with the resulting history and what was done.
    """
    config = config or ContextFoldConfig()
    bus = event_bus or EventBus()
    budget = build_budget(context_window, max_tokens, config)

    effective = total_tokens + await _last_message_tokens(messages, handler)
    allowed = budget.allowed

    threshold = config.condense.auto_condense_percent
    early_condense = (
        auto_condense and threshold < 100 and budget.percent_used(effective) >= threshold
    )

    logger.debug(
        "budget_evaluated",
        task_id=task_id,
        effective_tokens=effective,
        allowed_tokens=allowed,
        percent_used=round(budget.percent_used(effective), 1),
        early_condense=early_condense,
    )

    fits = budget.fits(effective)
    if fits and not early_condense:
        return CompactionOutcome(
            messages=list(messages),
            action="none",
            effective_tokens=effective,
            allowed_tokens=allowed,
        )

    summarize_result: SummarizeResult | None = None
    if auto_condense:
        condenser = engine or CondensationEngine(
            config.condense,
            event_bus=bus,
            folded_config=config.folded_context,
        )
        summarize_result = await condenser.summarize(
            messages,
            handler,
            system_prompt,
            task_id,
            is_automatic_trigger=True,
            custom_prompt=custom_prompt,
            environment_details=environment_details,
            files_read=files_read,
            cwd=cwd,
            ignore_policy=ignore_policy,
            metadata=metadata,
        )
        if summarize_result.ok:
            return CompactionOutcome(
                messages=summarize_result.messages,
                action="condensed",
                effective_tokens=effective,
                allowed_tokens=allowed,
                summarize_result=summarize_result,
            )

    error = summarize_result.error if summarize_result is not None else None

    # An early condensation that failed leaves a history that still fits.
    if fits:
        return CompactionOutcome(
            messages=list(messages),
            action="none",
            effective_tokens=effective,
            allowed_tokens=allowed,
            summarize_result=summarize_result,
            error=error,
        )

    window = config.sliding_window
    truncation_id: str | None = None
    if window.non_destructive:
        truncated, truncation_id = truncate_conversation_tagged(messages, window.fraction_to_remove)
        removed = sum(1 for m in truncated if truncation_id and m.truncation_parent == truncation_id)
    else:
        truncated = truncate_conversation(messages, window.fraction_to_remove)
        removed = len(messages) - len(truncated)

    bus.publish(
        FoldEvent.CONTEXT_TRUNCATED,
        {"task_id": task_id, "messages_removed": removed, "truncation_id": truncation_id},
    )
    return CompactionOutcome(
        messages=truncated,
        action="truncated",
        effective_tokens=effective,
        allowed_tokens=allowed,
        summarize_result=summarize_result,
        truncation_id=truncation_id,
        error=error,
    )


async def evaluate_and_compact(
    messages: Sequence[AnyMessage],
    total_tokens: int,
    context_window: int,
    max_tokens: int | None,
    handler: LanguageModelHandler,
    auto_condense: bool = True,
    **kwargs: Any,
) -> list[AnyMessage]:
    """Return the history to use for the next request. See :func:`evaluate_context`."""
    outcome = await evaluate_context(
        messages,
        total_tokens,
        context_window,
        max_tokens,
        handler,
        auto_condense,
        **kwargs,
    )
    return outcome.messages
