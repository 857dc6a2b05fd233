"""Effective-history projection over a non-destructively tagged message history.

Nothing in this module deletes data. Compaction tags superseded messages
with ``condense_parent`` / ``truncation_parent``; the functions here decide,
from those tags, which messages the model should see:

- :func:`get_effective_history`: the subsequence sent with the next request
  ("fresh start": nothing before the active summary is visible).
- :func:`cleanup_after_truncation`: after the caller physically removes
  messages (rewind/delete), clear tags whose summary or marker is gone so the
  hidden messages become active again.
- :func:`merge_consecutive_messages`: request shaping only; never used on the
  stored history.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Literal

import structlog

from contextfold.models.message import (
    AnyMessage,
    Message,
    ReasoningMessage,
    TextBlock,
    is_tool_call_block,
    is_tool_result_block,
)

logger = structlog.get_logger("contextfold.history")

Role = Literal["user", "assistant", "tool"]


def find_last_summary_index(messages: Sequence[AnyMessage]) -> int:
    """Return the index of the most recent summary message, or -1."""
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].is_summary:
            return index
    return -1


def get_messages_since_last_summary(messages: Sequence[AnyMessage]) -> list[AnyMessage]:
    """
    Return every message from the most recent summary onwards (inclusive).

    Returns all messages when no summary exists. Summaries are always
    user-role messages, so a non-empty result after a summary starts with one.
    """
    index = find_last_summary_index(messages)
    if index == -1:
        return list(messages)
    return list(messages[index:])


def existing_marker_ids(messages: Iterable[AnyMessage]) -> tuple[set[str], set[str]]:
    """Return ``(condense_ids, truncation_ids)`` of summaries and markers present in *messages*."""
    summary_ids: set[str] = set()
    truncation_ids: set[str] = set()
    for msg in messages:
        if msg.is_summary and msg.condense_id:
            summary_ids.add(msg.condense_id)
        if msg.is_truncation_marker and msg.truncation_id:
            truncation_ids.add(msg.truncation_id)
    return summary_ids, truncation_ids


def _tool_call_ids(messages: Iterable[AnyMessage]) -> set[str]:
    ids: set[str] = set()
    for msg in messages:
        if isinstance(msg, Message) and msg.role == "assistant" and isinstance(msg.content, list):
            ids.update(block.call_id for block in msg.content if is_tool_call_block(block))
    return ids


def _drop_orphan_results(msg: AnyMessage, call_ids: set[str]) -> AnyMessage | None:
    """Strip tool results whose call is not in *call_ids*; None if nothing remains."""
    if not isinstance(msg, Message) or msg.role not in ("tool", "user"):
        return msg
    if not isinstance(msg.content, list):
        return msg
    kept = [
        block
        for block in msg.content
        if not is_tool_result_block(block) or block.call_id in call_ids
    ]
    if not kept:
        return None
    if len(kept) != len(msg.content):
        return msg.model_copy(update={"content": kept})
    return msg


def _without_orphan_results(messages: Sequence[AnyMessage]) -> list[AnyMessage]:
    call_ids = _tool_call_ids(messages)
    out: list[AnyMessage] = []
    for msg in messages:
        kept = _drop_orphan_results(msg, call_ids)
        if kept is not None:
            out.append(kept)
    return out


def get_effective_history(messages: Sequence[AnyMessage]) -> list[AnyMessage]:
    """
    Compute the subsequence of *messages* to send to the model.

    Fresh-start model: when a summary exists, only the summary and everything
    after it is visible, and messages hidden by a truncation marker that is
    itself in that slice stay hidden.

    Without a summary, messages are hidden only when their ``condense_parent``
    or ``truncation_parent`` points at a summary or marker that still exists;
    tags left dangling by a rewind are ignored.

    In both cases tool results whose call is no longer visible are removed,
    and a message emptied this way is dropped.

    Args:
        messages: The full tagged history.

    Returns:
        A new list; the input is not modified.
    """
    summary_index = find_last_summary_index(messages)

    if summary_index != -1:
        from_summary = messages[summary_index:]
        _, truncation_ids = existing_marker_ids(from_summary)
        return _without_orphan_results(
            [
                msg
                for msg in from_summary
                if not (msg.truncation_parent and msg.truncation_parent in truncation_ids)
            ]
        )

    summary_ids, truncation_ids = existing_marker_ids(messages)
    visible = [
        msg
        for msg in messages
        if not (msg.condense_parent and msg.condense_parent in summary_ids)
        and not (msg.truncation_parent and msg.truncation_parent in truncation_ids)
    ]
    return _without_orphan_results(visible)


def cleanup_after_truncation(messages: Sequence[AnyMessage]) -> list[AnyMessage]:
    """
    Clear orphaned ``condense_parent`` / ``truncation_parent`` references.

    Call after any operation that physically removed messages from the
    history (rewind, delete). A message whose summary or truncation marker no
    longer exists becomes active again; references to markers that still exist
    are left untouched.

    Args:
        messages: The history after messages were removed.

    Returns:
        A new list with restored copies where tags were cleared.
    """
    summary_ids, truncation_ids = existing_marker_ids(messages)

    cleaned: list[AnyMessage] = []
    restored = 0
    for msg in messages:
        update: dict[str, None] = {}
        if msg.condense_parent and msg.condense_parent not in summary_ids:
            update["condense_parent"] = None
        if msg.truncation_parent and msg.truncation_parent not in truncation_ids:
            update["truncation_parent"] = None
        if update:
            restored += 1
            cleaned.append(msg.model_copy(update=update))
        else:
            cleaned.append(msg)

    if restored:
        logger.debug("history_cleanup", restored=restored, total=len(cleaned))
    return cleaned


def _as_block_list(content: str | list) -> list:
    if isinstance(content, list):
        return list(content)
    return [TextBlock(text=content)]


def merge_consecutive_messages(
    messages: Sequence[AnyMessage],
    roles: Iterable[Role] = ("user",),
) -> list[AnyMessage]:
    """
    Merge runs of consecutive messages that share a role.

    Request shaping only: the stored history must keep individual messages so
    rewind and edit operations can address them. Regular messages may be
    merged into a preceding summary, but a summary is never merged into
    something else, and truncation markers are never merged. Reasoning
    messages pass through and break runs.

    Args:
        messages: Usually the output of :func:`get_effective_history`.
        roles: Roles eligible for merging (default: user only).

    Returns:
        A new list; merged messages keep the newest ``ts``.
    """
    if len(messages) <= 1:
        return list(messages)

    merge_roles = set(roles)
    out: list[AnyMessage] = []
    for msg in messages:
        if isinstance(msg, ReasoningMessage):
            out.append(msg)
            continue

        prev = out[-1] if out else None
        if not isinstance(prev, Message):
            out.append(msg)
            continue
        can_merge = (
            prev.role == msg.role
            and msg.role in merge_roles
            and not msg.is_summary
            and not prev.is_truncation_marker
            and not msg.is_truncation_marker
        )
        if not can_merge:
            out.append(msg)
            continue

        out[-1] = prev.model_copy(
            update={
                "content": _as_block_list(prev.content) + _as_block_list(msg.content),
                "ts": max(prev.ts, msg.ts),
            }
        )
    return out
