"""Shared fixtures for contextfold tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

import pytest

from contextfold.events.bus import EventBus, FoldEvent
from contextfold.models.config import ModelInfo
from contextfold.models.message import (
    Message,
    TextBlock,
    TextChunk,
    ToolCallBlock,
    ToolResultBlock,
    UsageChunk,
)
from contextfold.tokens.estimator import TokenEstimator


@pytest.fixture
def estimator():
    """TokenEstimator using heuristic only (no tiktoken required in tests)."""
    e = TokenEstimator()
    e._force_heuristic = True
    return e


@pytest.fixture
def event_bus():
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[tuple[FoldEvent, dict[str, Any]]] = []

    def _collect(event: FoldEvent, payload: dict[str, Any]) -> None:
        collected.append((event, payload))

    bus.subscribe_all(_collect)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


class FakeHandler:
    """Scripted LanguageModelHandler: streams a fixed summary and counts tokens heuristically."""

    def __init__(
        self,
        summary: str = "The user asked for a refactor; tests were updated.",
        cost: float = 0.05,
        output_tokens: int = 120,
        error: Exception | None = None,
        supports_images: bool = True,
        context_window: int = 100_000,
        max_tokens: int | None = None,
    ) -> None:
        self.summary = summary
        self.cost = cost
        self.output_tokens = output_tokens
        self.error = error
        self.model = ModelInfo(
            model_id="fake/model",
            context_window=context_window,
            max_tokens=max_tokens,
            supports_images=supports_images,
            encoding="unknown",
        )
        self.calls: list[dict[str, Any]] = []
        self.count_calls: list[list[Any]] = []
        self._estimator = TokenEstimator()
        self._estimator._force_heuristic = True

    async def create_message(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        metadata: dict[str, Any] | None = None,
    ) -> AsyncIterator[Any]:
        self.calls.append(
            {"system_prompt": system_prompt, "messages": list(messages), "metadata": metadata}
        )
        if self.error is not None:
            raise self.error
        for word in self.summary.split(" "):
            yield TextChunk(text=word + " ")
        yield UsageChunk(input_tokens=500, output_tokens=self.output_tokens, total_cost=self.cost)

    async def count_tokens(self, blocks: Sequence[Any]) -> int:
        self.count_calls.append(list(blocks))
        return self._estimator.estimate_blocks(blocks)

    def get_model(self) -> ModelInfo:
        return self.model


@pytest.fixture
def handler():
    """FakeHandler with a non-empty summary."""
    return FakeHandler()


def user(text: str, ts: int, **tags: Any) -> Message:
    """Helper to create a user text message."""
    return Message(role="user", content=text, ts=ts, **tags)


def assistant(text: str, ts: int, **tags: Any) -> Message:
    """Helper to create an assistant text message."""
    return Message(role="assistant", content=[TextBlock(text=text)], ts=ts, **tags)


def tool_call(call_id: str, ts: int, name: str = "read_file", **tags: Any) -> Message:
    """Helper to create an assistant message containing one tool call."""
    return Message(
        role="assistant",
        content=[ToolCallBlock(tool_call_id=call_id, tool_name=name, input={"path": "src/app.py"})],
        ts=ts,
        **tags,
    )


def tool_result(call_id: str, ts: int, output: str = "file contents", **tags: Any) -> Message:
    """Helper to create a tool message answering *call_id*."""
    return Message(
        role="tool",
        content=[ToolResultBlock(tool_call_id=call_id, tool_name="read_file", output=output)],
        ts=ts,
        **tags,
    )


def summary(condense_id: str, ts: int, text: str = "## Conversation Summary\nEarlier work.") -> Message:
    """Helper to create a summary message."""
    return Message(
        role="user",
        content=[TextBlock(text=text)],
        ts=ts,
        is_summary=True,
        condense_id=condense_id,
    )


def conversation(count: int, start_ts: int = 1) -> list[Message]:
    """Alternating user/assistant text messages."""
    return [
        user(f"user message {i}", start_ts + i)
        if i % 2 == 0
        else assistant(f"assistant message {i}", start_ts + i)
        for i in range(count)
    ]
