"""Sliding-window truncation: the synchronous fallback when condensation is off or fails."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence

import structlog

from contextfold.models.message import AnyMessage, Message

logger = structlog.get_logger("contextfold.sliding_window")

TRUNCATION_NOTICE = (
    "[{count} earlier messages were hidden to keep the conversation within the "
    "model's context window.]"
)


def messages_to_remove(total: int, frac_to_remove: float) -> int:
    """
    Return how many messages after the first a truncation removes.

    The count is rounded down to an even number so user/assistant pairs are
    dropped together.
    """
    if total <= 1:
        return 0
    raw = math.floor((total - 1) * frac_to_remove)
    return raw - raw % 2


def truncate_conversation(
    messages: Sequence[AnyMessage],
    frac_to_remove: float,
) -> list[AnyMessage]:
    """
    Drop a fraction of the oldest messages, always keeping the first one.

    Args:
        messages: The history to truncate. Not modified.
        frac_to_remove: Fraction (0 to 1) of the messages after the first to drop.

    Returns:
        ``[messages[0], *messages[1 + n:]]`` where ``n`` is the even-rounded
        removal count. An empty input returns an empty list.
    """
    if not messages:
        return []
    count = messages_to_remove(len(messages), frac_to_remove)
    truncated = [messages[0], *messages[1 + count :]]
    logger.info(
        "sliding_window_truncated",
        messages_before=len(messages),
        messages_removed=count,
        non_destructive=False,
    )
    return truncated


def truncate_conversation_tagged(
    messages: Sequence[AnyMessage],
    frac_to_remove: float,
    id_generator: Callable[[str], str] | None = None,
) -> tuple[list[AnyMessage], str | None]:
    """
    Hide the messages :func:`truncate_conversation` would drop, without deleting them.

    The would-be-removed messages receive ``truncation_parent`` and a
    truncation marker is inserted directly after them. Messages already hidden
    by an earlier summary or truncation are left as they are.

    Args:
        messages: The history to truncate. Not modified.
        frac_to_remove: Fraction (0 to 1) of the messages after the first to hide.
        id_generator: Callable producing ids from a prefix. Defaults to ULID ids.

    Returns:
        ``(new_messages, truncation_id)``. ``truncation_id`` is None when
        nothing was hidden, in which case the messages are returned unchanged.
    """
    count = messages_to_remove(len(messages), frac_to_remove)
    if count == 0:
        return list(messages), None

    make = id_generator or _default_id_generator
    truncation_id = make("trunc")

    hidden_range = messages[1 : 1 + count]
    tagged: list[AnyMessage] = [messages[0]]
    newly_hidden = 0
    for msg in hidden_range:
        if msg.condense_parent or msg.truncation_parent:
            tagged.append(msg)
        else:
            tagged.append(msg.model_copy(update={"truncation_parent": truncation_id}))
            newly_hidden += 1

    last_hidden_ts = hidden_range[-1].ts
    marker = Message(
        role="user",
        content=TRUNCATION_NOTICE.format(count=count),
        ts=last_hidden_ts + 1,
        is_truncation_marker=True,
        truncation_id=truncation_id,
    )
    tagged.append(marker)
    tagged.extend(messages[1 + count :])

    logger.info(
        "sliding_window_truncated",
        messages_before=len(messages),
        messages_removed=newly_hidden,
        truncation_id=truncation_id,
        non_destructive=True,
    )
    return tagged, truncation_id


def _default_id_generator(prefix: str) -> str:
    from contextfold.session import make_id

    return make_id(prefix)
