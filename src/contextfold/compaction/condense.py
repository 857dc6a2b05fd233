"""Condensation engine: summarise the conversation and tag what the summary replaces.

Fresh-start model:

1. The model is asked for a structured summary of everything since the last
   summary. Tool blocks are flattened to text so the request needs no
   ``tools`` parameter.
2. The summary is appended as a **user** message carrying a new
   ``condense_id``. Every message without a ``condense_parent`` is tagged
   with it, so the effective history afterwards starts at the summary.
3. Nothing is deleted. Rewinding past the summary and running
   :func:`~contextfold.context.history.cleanup_after_truncation` restores the
   tagged messages.

Failures never raise: they come back as a :class:`SummarizeResult` whose
``messages`` is the untouched input and whose ``error`` / ``error_kind``
explain what went wrong. Callers fall back to sliding-window truncation.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from contextfold.compaction.directives import active_workflows_reminder, extract_command_blocks
from contextfold.compaction.transforms import (
    drop_reasoning_messages,
    inject_synthetic_tool_results,
    remove_image_blocks,
    transform_messages_for_condensing,
)
from contextfold.context.history import get_messages_since_last_summary
from contextfold.events.bus import EventBus, FoldEvent
from contextfold.files.folded import FileContextProvider, FoldedFileContext, IgnorePolicy
from contextfold.models.config import CondenseConfig, FoldedContextConfig
from contextfold.models.message import (
    AnyMessage,
    CondenseErrorKind,
    Message,
    SummarizeResult,
    TextBlock,
    TextChunk,
    UsageChunk,
)

if TYPE_CHECKING:
    from contextfold.llm.handler import LanguageModelHandler

# Percentage bounds for CondenseConfig.auto_condense_percent.
MIN_CONDENSE_THRESHOLD = 5
MAX_CONDENSE_THRESHOLD = 100

ERROR_MESSAGES: dict[CondenseErrorKind, str] = {
    "not_enough_messages": "Not enough messages to condense the conversation.",
    "condensed_recently": "Context was condensed recently; nothing new to condense.",
    "handler_invalid": "The language model handler cannot be used for condensing.",
    "api_failed": "Failed to condense context: {message}",
    "empty_summary": "Failed to condense context: the model returned an empty summary.",
}


def format_error_details(exc: BaseException) -> str:
    """
    Build operator-facing diagnostics for a failed summarisation call.

    Includes the message, and when the exception carries them, the HTTP
    status, provider error code, and JSON-encoded response and body.
    """
    details = f"Error: {exc}"
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if status:
        details += f"\n\nHTTP Status: {status}"
    code = getattr(exc, "code", None)
    if code:
        details += f"\nError Code: {code}"
    response = getattr(exc, "response", None)
    if response:
        try:
            details += f"\n\nAPI Response:\n{json.dumps(response, indent=2)}"
        except (TypeError, ValueError):
            details += "\n\nAPI Response: [Unable to serialize]"
    body = getattr(exc, "body", None)
    if body:
        try:
            details += f"\n\nResponse Body:\n{json.dumps(body, indent=2)}"
        except (TypeError, ValueError):
            details += "\n\nResponse Body: [Unable to serialize]"
    return details


class CondensationEngine:
    """
    Runs the summarisation protocol against a :class:`LanguageModelHandler`.

    Guarantees:
    - ``summarize()`` never raises; every failure is a result with ``error`` set.
    - On failure the returned ``messages`` is the input history, unmodified.
    - Tags are only written after the model produced a non-empty summary.
    - The EventBus receives ``CONDENSE_REQUESTED`` and then either
      ``CONDENSE_COMPLETED`` or ``CONDENSE_FAILED``.

    Example::

        engine = CondensationEngine(config.condense, event_bus=bus)
        result = await engine.summarize(
            messages, handler, system_prompt, task_id="task_1", is_automatic_trigger=True
        )
        if result.ok:
            store.replace(result.messages)
    """

    def __init__(
        self,
        config: CondenseConfig | None = None,
        event_bus: EventBus | None = None,
        file_context: FileContextProvider | None = None,
        id_generator: Callable[[str], str] | None = None,
        folded_config: FoldedContextConfig | None = None,
    ) -> None:
        self._config = config or CondenseConfig()
        self._event_bus = event_bus or EventBus()
        self._file_context = file_context or FoldedFileContext(folded_config)
        self._id_gen = id_generator or _default_id_generator
        self._logger = structlog.get_logger("contextfold.condense")

    async def summarize(
        self,
        messages: Sequence[AnyMessage],
        handler: LanguageModelHandler,
        system_prompt: str,
        task_id: str,
        is_automatic_trigger: bool = False,
        custom_prompt: str | None = None,
        environment_details: str | None = None,
        files_read: Sequence[str] | None = None,
        cwd: str | None = None,
        ignore_policy: IgnorePolicy | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SummarizeResult:
        """
        Summarise the conversation since the last summary. Never raises.

        Args:
            messages: The full task history (all stored messages).
            handler: Model handler used for the summary request and token counting.
            system_prompt: The agent's system prompt; only used to compute
                ``new_context_tokens``.
            task_id: Task identifier for logs and events.
            is_automatic_trigger: True when the budget evaluator triggered this
                condensation. Environment details are only embedded then.
            custom_prompt: Condensing instructions overriding the configured
                prompt. Blank values fall back to the default.
            environment_details: Environment snapshot to embed (automatic only).
            files_read: Paths read during the task, for folded file context.
            cwd: Working directory the paths are relative to.
            ignore_policy: Policy excluding files from folded context.
            metadata: Passed through to ``handler.create_message``. A ``tools``
                list, if present, is counted into ``new_context_tokens``.

        Returns:
            SummarizeResult describing the outcome.
        """
        prompt_override = custom_prompt if custom_prompt is not None else self._config.custom_prompt
        self._logger.info(
            "condense_requested",
            task_id=task_id,
            is_automatic_trigger=is_automatic_trigger,
            message_count=len(messages),
        )
        self._event_bus.publish(
            FoldEvent.CONDENSE_REQUESTED,
            {
                "task_id": task_id,
                "is_automatic_trigger": is_automatic_trigger,
                "used_custom_prompt": bool(prompt_override and prompt_override.strip()),
            },
        )

        try:
            result = await self._summarize_inner(
                list(messages),
                handler,
                system_prompt,
                task_id,
                is_automatic_trigger,
                prompt_override,
                environment_details,
                files_read,
                cwd,
                ignore_policy,
                metadata,
            )
        except Exception as exc:
            self._logger.error("condense_unexpected_error", task_id=task_id, error=str(exc))
            result = self._failure(
                messages,
                "api_failed",
                message=str(exc),
                error_details=format_error_details(exc),
            )

        if result.ok:
            self._event_bus.publish(
                FoldEvent.CONDENSE_COMPLETED,
                {
                    "task_id": task_id,
                    "condense_id": result.condense_id,
                    "cost": result.cost,
                    "new_context_tokens": result.new_context_tokens or 0,
                    "messages_tagged": sum(
                        1 for m in result.messages if m.condense_parent == result.condense_id
                    ),
                },
            )
        else:
            self._logger.warning(
                "condense_failed",
                task_id=task_id,
                error_kind=result.error_kind,
                error=result.error,
            )
            self._event_bus.publish(
                FoldEvent.CONDENSE_FAILED,
                {"task_id": task_id, "error_kind": result.error_kind or "", "error": result.error or ""},
            )
        return result

    # ── Internal implementation ─────────────────────────────────────────────────

    async def _summarize_inner(
        self,
        messages: list[AnyMessage],
        handler: LanguageModelHandler,
        system_prompt: str,
        task_id: str,
        is_automatic_trigger: bool,
        custom_prompt: str | None,
        environment_details: str | None,
        files_read: Sequence[str] | None,
        cwd: str | None,
        ignore_policy: IgnorePolicy | None,
        metadata: dict[str, Any] | None,
    ) -> SummarizeResult:
        to_summarize = get_messages_since_last_summary(messages)

        if len(to_summarize) <= 1:
            kind: CondenseErrorKind = (
                "not_enough_messages" if len(messages) <= 1 else "condensed_recently"
            )
            return self._failure(messages, kind)

        # A summary with at most one message after it has nothing new to fold in.
        if len(to_summarize) <= 2 and any(m.is_summary for m in to_summarize):
            return self._failure(messages, "condensed_recently")

        if handler is None or not callable(getattr(handler, "create_message", None)):
            self._logger.error("condense_handler_invalid", task_id=task_id)
            return self._failure(messages, "handler_invalid")

        instructions = (
            custom_prompt.strip()
            if custom_prompt and custom_prompt.strip()
            else self._config.condense_prompt
        )
        request = self._build_request(to_summarize, handler, instructions)

        summary = ""
        cost = 0.0
        output_tokens = 0
        try:
            async for chunk in handler.create_message(
                self._config.summary_prompt, request, metadata
            ):
                if isinstance(chunk, TextChunk):
                    summary += chunk.text
                elif isinstance(chunk, UsageChunk):
                    cost = chunk.total_cost or 0.0
                    output_tokens = chunk.output_tokens
        except Exception as exc:
            self._logger.error("condense_api_error", task_id=task_id, error=str(exc))
            return self._failure(
                messages,
                "api_failed",
                cost=cost,
                message=str(exc),
                error_details=format_error_details(exc),
            )

        summary = summary.strip()
        if not summary:
            return self._failure(messages, "empty_summary", cost=cost)

        summary_blocks = await self._build_summary_blocks(
            summary,
            messages,
            is_automatic_trigger,
            environment_details,
            files_read,
            cwd,
            ignore_policy,
            task_id,
        )

        condense_id = self._id_gen("cond")
        summary_message = Message(
            role="user",
            content=summary_blocks,
            ts=messages[-1].ts + 1,
            is_summary=True,
            condense_id=condense_id,
        )

        tagged: list[AnyMessage] = [
            msg if msg.condense_parent else msg.model_copy(update={"condense_parent": condense_id})
            for msg in messages
        ]
        tagged.append(summary_message)

        new_context_tokens = await handler.count_tokens(
            [TextBlock(text=system_prompt), *summary_blocks]
        )
        tools = (metadata or {}).get("tools")
        if tools:
            new_context_tokens += await handler.count_tokens(
                [TextBlock(text=json.dumps(tools, default=str))]
            )

        self._logger.info(
            "condense_completed",
            task_id=task_id,
            condense_id=condense_id,
            summarized=len(to_summarize),
            summary_output_tokens=output_tokens,
            new_context_tokens=new_context_tokens,
            cost=cost,
        )
        return SummarizeResult(
            messages=tagged,
            summary=summary,
            cost=cost,
            new_context_tokens=new_context_tokens,
            condense_id=condense_id,
        )

    def _build_request(
        self,
        to_summarize: list[AnyMessage],
        handler: LanguageModelHandler,
        instructions: str,
    ) -> list[Message]:
        """Prepare the summarisation request: repaired, role-only, text-only tool blocks."""
        with_results = inject_synthetic_tool_results(to_summarize)
        role_messages = drop_reasoning_messages(with_results)
        role_messages.append(Message(role="user", content=instructions))

        supports_images = True
        get_model = getattr(handler, "get_model", None)
        if callable(get_model):
            supports_images = get_model().supports_images
        without_images = remove_image_blocks(role_messages, supports_images)
        flattened = transform_messages_for_condensing(without_images)
        # Only role and content are sent; tags are bookkeeping.
        return [Message(role=m.role, content=m.content, ts=m.ts) for m in flattened]

    async def _build_summary_blocks(
        self,
        summary: str,
        messages: list[AnyMessage],
        is_automatic_trigger: bool,
        environment_details: str | None,
        files_read: Sequence[str] | None,
        cwd: str | None,
        ignore_policy: IgnorePolicy | None,
        task_id: str,
    ) -> list[TextBlock]:
        blocks = [TextBlock(text=f"## Conversation Summary\n{summary}")]

        commands = extract_command_blocks(messages[0])
        if commands:
            blocks.append(TextBlock(text=active_workflows_reminder(commands)))

        if self._config.include_folded_context and files_read and cwd:
            try:
                folded = await self._file_context.generate(files_read, cwd, ignore_policy)
                blocks.extend(TextBlock(text=s) for s in folded.sections if s.strip())
            except Exception as exc:
                self._logger.warning("folded_context_failed", task_id=task_id, error=str(exc))

        if is_automatic_trigger and environment_details and environment_details.strip():
            blocks.append(TextBlock(text=environment_details))
        return blocks

    def _failure(
        self,
        messages: Sequence[AnyMessage],
        kind: CondenseErrorKind,
        cost: float = 0.0,
        message: str = "",
        error_details: str | None = None,
    ) -> SummarizeResult:
        return SummarizeResult(
            messages=list(messages),
            cost=cost,
            error=ERROR_MESSAGES[kind].format(message=message),
            error_kind=kind,
            error_details=error_details,
        )


async def summarize_conversation(
    messages: Sequence[AnyMessage],
    handler: LanguageModelHandler,
    system_prompt: str,
    task_id: str,
    is_automatic_trigger: bool = False,
    custom_prompt: str | None = None,
    environment_details: str | None = None,
    files_read: Sequence[str] | None = None,
    cwd: str | None = None,
    ignore_policy: IgnorePolicy | None = None,
    metadata: dict[str, Any] | None = None,
) -> SummarizeResult:
    """Summarise *messages* with a default-configured :class:`CondensationEngine`."""
    engine = CondensationEngine()
    return await engine.summarize(
        messages,
        handler,
        system_prompt,
        task_id,
        is_automatic_trigger=is_automatic_trigger,
        custom_prompt=custom_prompt,
        environment_details=environment_details,
        files_read=files_read,
        cwd=cwd,
        ignore_policy=ignore_policy,
        metadata=metadata,
    )


def _default_id_generator(prefix: str) -> str:
    from contextfold.session import make_id

    return make_id(prefix)
