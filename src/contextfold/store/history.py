"""In-memory, ts-ordered message history for one task, with JSON persistence."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import structlog

from contextfold.context.history import cleanup_after_truncation
from contextfold.models.message import AnyMessage, MessageHistory

# ── Exceptions ─────────────────────────────────────────────────────────────────


class ContextFoldStoreError(Exception):
    """Base class for store errors."""


class MessageNotFoundError(ContextFoldStoreError):
    """Raised when no stored message has the requested timestamp."""

    def __init__(self, ts: int) -> None:
        super().__init__(f"Message not found: ts={ts!r}")
        self.ts = ts


class HistoryStore:
    """
    Ordered message history for a single task.

    Compaction never edits this store directly: it receives a snapshot from
    :meth:`messages` and hands back a new list, which is stored with
    :meth:`replace`. The only operations that physically remove messages are
    :meth:`rewind_to` and :meth:`delete`, and both run
    :func:`~contextfold.context.history.cleanup_after_truncation` afterwards
    so messages hidden by a removed summary or marker become visible again.

    Example::

        store = HistoryStore("task_1")
        store.append(Message(role="user", content="Fix the failing test"))
        store.save("history.json")
        restored = HistoryStore.load("history.json", task_id="task_1")
    """

    def __init__(self, task_id: str, messages: Iterable[AnyMessage] | None = None) -> None:
        self._task_id = task_id
        self._messages: list[AnyMessage] = list(messages or [])
        self._logger = structlog.get_logger("contextfold.store").bind(task_id=task_id)

    @property
    def task_id(self) -> str:
        return self._task_id

    def __len__(self) -> int:
        return len(self._messages)

    def messages(self) -> list[AnyMessage]:
        """Return a snapshot of the stored history."""
        return list(self._messages)

    def last_ts(self) -> int | None:
        return self._messages[-1].ts if self._messages else None

    def append(self, message: AnyMessage) -> AnyMessage:
        """
        Append a message, keeping timestamps strictly increasing.

        A message whose ``ts`` is not newer than the last stored one is stored
        with ``last.ts + 1`` instead.

        Returns:
            The message as stored.
        """
        last = self.last_ts()
        if last is not None and message.ts <= last:
            message = message.model_copy(update={"ts": last + 1})
        self._messages.append(message)
        return message

    def replace(self, messages: Iterable[AnyMessage]) -> None:
        """Swap in a new history (typically the output of a compaction)."""
        self._messages = list(messages)

    def get(self, ts: int) -> AnyMessage:
        """
        Return the message with timestamp *ts*.

        Raises:
            MessageNotFoundError: No such message.
        """
        return self._messages[self._index_of(ts)]

    def rewind_to(self, ts: int) -> int:
        """
        Remove the message with timestamp *ts* and everything after it.

        Raises:
            MessageNotFoundError: No message has timestamp *ts*.

        Returns:
            The number of hidden messages made visible again by the cleanup.
        """
        index = self._index_of(ts)
        removed = len(self._messages) - index
        self._messages = self._messages[:index]
        restored = self._cleanup()
        self._logger.info("history_rewound", ts=ts, removed=removed, restored=restored)
        return restored

    def delete(self, ts: int) -> int:
        """
        Remove the single message with timestamp *ts*.

        Raises:
            MessageNotFoundError: No message has timestamp *ts*.

        Returns:
            The number of hidden messages made visible again by the cleanup.
        """
        index = self._index_of(ts)
        del self._messages[index]
        restored = self._cleanup()
        self._logger.info("history_message_deleted", ts=ts, restored=restored)
        return restored

    def save(self, path: str | Path) -> None:
        """Write the history as versioned JSON."""
        payload = MessageHistory(messages=self._messages).model_dump_json(indent=2)
        Path(path).write_text(payload, encoding="utf-8")
        self._logger.debug("history_saved", path=str(path), messages=len(self._messages))

    @classmethod
    def load(cls, path: str | Path, task_id: str) -> HistoryStore:
        """Read a history written by :meth:`save`."""
        history = MessageHistory.model_validate_json(Path(path).read_text(encoding="utf-8"))
        return cls(task_id, history.messages)

    def _index_of(self, ts: int) -> int:
        # A truncation marker can share its ts with the next kept message; the kept message wins.
        matches = [index for index, msg in enumerate(self._messages) if msg.ts == ts]
        if not matches:
            raise MessageNotFoundError(ts)
        for index in matches:
            if not self._messages[index].is_truncation_marker:
                return index
        return matches[0]

    def _cleanup(self) -> int:
        before = self._messages
        self._messages = cleanup_after_truncation(before)
        return sum(1 for old, new in zip(before, self._messages, strict=True) if old is not new)
