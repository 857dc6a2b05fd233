"""TaskContext: the orchestrator-side facade over store, budget and condensation."""

from __future__ import annotations

from typing import Any, cast

import structlog
from ulid import ULID

from contextfold.compaction.budget import evaluate_context
from contextfold.compaction.condense import CondensationEngine
from contextfold.context.builder import BuiltContext, ContextBuilder
from contextfold.context.history import get_effective_history
from contextfold.events.bus import EventBus, FoldEvent
from contextfold.files.folded import FoldedFileContext, IgnorePolicy
from contextfold.llm.handler import LanguageModelHandler, LiteLLMHandler
from contextfold.models.config import ContextFoldConfig
from contextfold.models.message import (
    AnyMessage,
    CompactionOutcome,
    ContentBlock,
    Message,
    ResultContentBlock,
    SummarizeResult,
    ToolResultBlock,
)
from contextfold.store.history import HistoryStore
from contextfold.tokens.estimator import TokenEstimator


def make_id(prefix: str) -> str:
    """
    Generate a ULID-based sortable identifier.

    Args:
        prefix: Short prefix for readability (e.g. ``"cond"``, ``"trunc"``, ``"task"``).

    Returns:
        ID string in the format ``"{prefix}_{ulid}"``.
    """
    return f"{prefix}_{ULID()}"


class TaskContext:
    """
    Context management for one agent task.

    Owns the task's :class:`HistoryStore` and runs the budget evaluator before
    every request, so the caller only appends messages and asks for the
    history to send.

    Usage::

        ctx = TaskContext.create(model="anthropic/claude-sonnet-4-5", system_prompt=prompt)
        ctx.add_user_message("Add retry logic to the HTTP client")
        history = await ctx.prepare_request()
        # ... call the model with `history`, then record the reply:
        ctx.add_assistant_message(reply_blocks)

    Manual condensation and rewind::

        result = await ctx.condense(custom_prompt="Focus on the open bugs.")
        ctx.rewind_to(checkpoint_ts)  # summaries after the checkpoint disappear
    """

    def __init__(
        self,
        task_id: str,
        handler: LanguageModelHandler,
        system_prompt: str = "",
        config: ContextFoldConfig | None = None,
        store: HistoryStore | None = None,
        event_bus: EventBus | None = None,
        token_estimator: TokenEstimator | None = None,
        cwd: str | None = None,
        ignore_policy: IgnorePolicy | None = None,
    ) -> None:
        self._task_id = task_id
        self._handler = handler
        self._system_prompt = system_prompt
        self._config = config or ContextFoldConfig()
        self._store = store or HistoryStore(task_id)
        self._event_bus = event_bus or EventBus()
        self._estimator = token_estimator or TokenEstimator()
        self._cwd = cwd
        self._ignore_policy = ignore_policy
        self._files_read: list[str] = []
        self._builder = ContextBuilder(self._estimator)
        self._engine = CondensationEngine(
            self._config.condense,
            event_bus=self._event_bus,
            file_context=FoldedFileContext(self._config.folded_context),
            id_generator=make_id,
        )
        self._last_outcome: CompactionOutcome | None = None
        self._logger = structlog.get_logger("contextfold.session").bind(task_id=task_id)

    @classmethod
    def create(
        cls,
        *,
        model: str,
        task_id: str | None = None,
        system_prompt: str = "",
        config: ContextFoldConfig | None = None,
        cwd: str | None = None,
        ignore_policy: IgnorePolicy | None = None,
        event_bus: EventBus | None = None,
    ) -> TaskContext:
        """
        Create a task context backed by :class:`LiteLLMHandler`.

        Args:
            model: LiteLLM model string (e.g. ``"anthropic/claude-sonnet-4-5"``).
            task_id: Explicit task ID. Auto-generated if None.
            system_prompt: The agent's system prompt.
            config: contextfold configuration. Defaults to ``ContextFoldConfig()``.
            cwd: Working directory for folded file context.
            ignore_policy: Files excluded from folded file context.
            event_bus: Shared event bus. A new one is created if None.

        Returns:
            A new TaskContext with an empty history.
        """
        estimator = TokenEstimator()
        handler = LiteLLMHandler(model, estimator=estimator)
        return cls(
            task_id or make_id("task"),
            handler,
            system_prompt=system_prompt,
            config=config,
            event_bus=event_bus,
            token_estimator=estimator,
            cwd=cwd,
            ignore_policy=ignore_policy,
        )

    # ── History ─────────────────────────────────────────────────────────────────

    def add_user_message(self, content: str | list[ContentBlock]) -> Message:
        """Append a user message and return it as stored."""
        return self._append(Message(role="user", content=content))

    def add_assistant_message(
        self,
        content: str | list[ContentBlock],
        response_id: str | None = None,
    ) -> Message:
        """Append an assistant message (text and/or tool calls)."""
        return self._append(Message(role="assistant", content=content, id=response_id))

    def add_tool_result(
        self,
        tool_call_id: str,
        output: str | list[ResultContentBlock],
        tool_name: str = "unknown",
        is_error: bool | None = None,
    ) -> Message:
        """Append a tool message answering the call *tool_call_id*."""
        block = ToolResultBlock(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            output=output,
            is_error=is_error,
        )
        return self._append(Message(role="tool", content=[block]))

    def record_file_read(self, path: str) -> None:
        """Remember a file the agent read; it is folded into future summaries."""
        if path not in self._files_read:
            self._files_read.append(path)

    def _append(self, message: Message) -> Message:
        stored = self._store.append(message)
        return cast(Message, stored)

    # ── Requests ────────────────────────────────────────────────────────────────

    async def prepare_request(
        self,
        total_tokens: int | None = None,
        environment_details: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[AnyMessage]:
        """
        Compact the history if the next request would not fit, then return it.

        Args:
            total_tokens: Tokens used by everything except the last message, as
                reported by the provider for the previous request. Estimated
                from the effective history when None.
            environment_details: Embedded into a summary if one is produced.
            metadata: Passed through to the handler's ``create_message``.

        Returns:
            The effective history, with consecutive user messages merged.
        """
        model = self._handler.get_model()
        if total_tokens is None:
            total_tokens = self.build_context().prior_tokens

        outcome = await evaluate_context(
            self._store.messages(),
            total_tokens,
            model.context_window,
            model.max_tokens,
            self._handler,
            self._config.condense.auto_condense,
            system_prompt=self._system_prompt,
            task_id=self._task_id,
            config=self._config,
            engine=self._engine,
            event_bus=self._event_bus,
            environment_details=environment_details,
            files_read=self._files_read,
            cwd=self._cwd,
            ignore_policy=self._ignore_policy,
            metadata=metadata,
        )
        self._last_outcome = outcome
        if outcome.action != "none":
            self._store.replace(outcome.messages)
            self._logger.info(
                "context_compacted",
                action=outcome.action,
                effective_tokens=outcome.effective_tokens,
                allowed_tokens=outcome.allowed_tokens,
                error=outcome.error,
            )
        return self.build_context().messages

    async def condense(
        self,
        custom_prompt: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SummarizeResult:
        """
        Manually condense the conversation.

        Environment details are never embedded for a manual condensation; the
        next turn supplies fresh ones.

        Returns:
            SummarizeResult; the store is only updated when ``result.ok``.
        """
        self._logger.info("manual_condense_triggered")
        result = await self._engine.summarize(
            self._store.messages(),
            self._handler,
            self._system_prompt,
            self._task_id,
            is_automatic_trigger=False,
            custom_prompt=custom_prompt,
            files_read=self._files_read,
            cwd=self._cwd,
            ignore_policy=self._ignore_policy,
            metadata=metadata,
        )
        if result.ok:
            self._store.replace(result.messages)
        return result

    def rewind_to(self, ts: int) -> int:
        """
        Remove the message with timestamp *ts* and everything after it.

        Messages hidden by a summary or truncation marker that was removed
        become visible again.

        Raises:
            MessageNotFoundError: No message has timestamp *ts*.

        Returns:
            The number of messages made visible again.
        """
        restored = self._store.rewind_to(ts)
        self._event_bus.publish(
            FoldEvent.HISTORY_CLEANED,
            {"task_id": self._task_id, "messages_restored": restored},
        )
        return restored

    def effective_history(self) -> list[AnyMessage]:
        """Return what the model currently sees, unmerged."""
        return get_effective_history(self._store.messages())

    def build_context(self) -> BuiltContext:
        """Assemble the next request from the current history without compacting."""
        return self._builder.build(
            self._store.messages(),
            self._handler.get_model(),
            self._system_prompt,
            self._config,
        )

    # ── Accessors ───────────────────────────────────────────────────────────────

    @property
    def id(self) -> str:
        """The task ID."""
        return self._task_id

    @property
    def store(self) -> HistoryStore:
        return self._store

    @property
    def event_bus(self) -> EventBus:
        """The event bus for this task. Subscribe to monitor events."""
        return self._event_bus

    @property
    def last_outcome(self) -> CompactionOutcome | None:
        """What the most recent :meth:`prepare_request` decided."""
        return self._last_outcome

    def subscribe(self, event: FoldEvent, handler: Any) -> None:
        """
        Register an event handler on this task's event bus.

        Convenience wrapper for ``ctx.event_bus.subscribe()``.
        """
        self._event_bus.subscribe(event, handler)
