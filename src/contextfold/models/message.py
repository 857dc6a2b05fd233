"""Core message, content block and result models for contextfold."""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

# ── Content Blocks ─────────────────────────────────────────────────────────────


class TextBlock(BaseModel):
    """A plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str


class ImageBlock(BaseModel):
    """An inline image (base64 payload or URL)."""

    type: Literal["image"] = "image"
    image: str = ""
    media_type: str | None = None


class ReasoningBlock(BaseModel):
    """Chain-of-thought text embedded in an assistant message."""

    type: Literal["reasoning"] = "reasoning"
    text: str


ResultContentBlock = Annotated[TextBlock | ImageBlock, Field(discriminator="type")]


class ToolCallBlock(BaseModel):
    """A tool invocation requested by the assistant."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: Any = Field(default_factory=dict)

    @property
    def call_id(self) -> str:
        return self.tool_call_id

    @property
    def call_name(self) -> str:
        return self.tool_name


class ToolResultBlock(BaseModel):
    """The output of a tool invocation, keyed by the originating call id."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str = "unknown"
    output: str | list[ResultContentBlock] = ""
    is_error: bool | None = None
    """Explicit error flag. When unset, an ``[ERROR]`` output prefix marks an error."""

    @property
    def call_id(self) -> str:
        return self.tool_call_id

    @property
    def result_content(self) -> str | list[Any]:
        return self.output

    @property
    def errored(self) -> bool:
        if self.is_error is not None:
            return self.is_error
        if isinstance(self.output, str):
            return self.output.lstrip().startswith("[ERROR]")
        return any(
            isinstance(block, TextBlock) and block.text.lstrip().startswith("[ERROR]")
            for block in self.output
        )


class LegacyToolUseBlock(BaseModel):
    """Anthropic-format ``tool_use`` block found in histories written by older versions."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Any = Field(default_factory=dict)

    @property
    def call_id(self) -> str:
        return self.id

    @property
    def call_name(self) -> str:
        return self.name


class LegacyToolResultBlock(BaseModel):
    """Anthropic-format ``tool_result`` block found in histories written by older versions."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str | list[ResultContentBlock] | None = None
    is_error: bool | None = None

    @property
    def call_id(self) -> str:
        return self.tool_use_id

    @property
    def result_content(self) -> str | list[Any] | None:
        return self.content

    @property
    def errored(self) -> bool:
        return bool(self.is_error)


# Discriminated on ``type``.
ContentBlock = Annotated[
    TextBlock
    | ImageBlock
    | ReasoningBlock
    | ToolCallBlock
    | ToolResultBlock
    | LegacyToolUseBlock
    | LegacyToolResultBlock,
    Field(discriminator="type"),
]

TOOL_CALL_TYPES = (ToolCallBlock, LegacyToolUseBlock)
TOOL_RESULT_TYPES = (ToolResultBlock, LegacyToolResultBlock)

AnyToolCallBlock = ToolCallBlock | LegacyToolUseBlock
AnyToolResultBlock = ToolResultBlock | LegacyToolResultBlock


def is_tool_call_block(block: Any) -> bool:
    """Return True for both ``tool-call`` and legacy ``tool_use`` blocks."""
    return isinstance(block, TOOL_CALL_TYPES)


def is_tool_result_block(block: Any) -> bool:
    """Return True for both ``tool-result`` and legacy ``tool_result`` blocks."""
    return isinstance(block, TOOL_RESULT_TYPES)


# ── Message Models ─────────────────────────────────────────────────────────────


class MessageTags(BaseModel):
    """
    Bookkeeping fields shared by every stored message.

    The ``*_parent`` fields are the non-destructive compaction tags: a message
    whose parent id refers to a summary or truncation marker that still exists
    in the history is hidden from the model, but never removed.
    """

    ts: int = Field(default_factory=lambda: int(time.time() * 1000))
    """Logical timestamp. Identity and ordering key within a history."""
    is_summary: bool = False
    condense_id: str | None = None
    """Set on a summary message; referenced by ``condense_parent`` of the messages it replaces."""
    condense_parent: str | None = None
    is_truncation_marker: bool = False
    truncation_id: str | None = None
    truncation_parent: str | None = None


class Message(MessageTags):
    """A user, assistant or tool message."""

    role: Literal["user", "assistant", "tool"]
    content: str | list[ContentBlock]
    id: str | None = None
    """Provider response id (assistant messages only)."""

    def blocks(self) -> list[Any]:
        """Return content as a block list, wrapping plain string content."""
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)]
        return list(self.content)

    def text_content(self) -> str:
        """Concatenate the text of all text blocks."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))


class ReasoningMessage(MessageTags):
    """
    A standalone encrypted reasoning item stored between role messages.

    Has no role and is passed through (or dropped) by every role-based transform.
    """

    type: Literal["reasoning"] = "reasoning"
    encrypted_content: str
    id: str | None = None
    summary: list[TextBlock] = Field(default_factory=list)


AnyMessage = Message | ReasoningMessage

MESSAGE_HISTORY_VERSION = 2


class MessageHistory(BaseModel):
    """Versioned wrapper for a persisted message history."""

    version: Literal[2] = MESSAGE_HISTORY_VERSION
    messages: list[AnyMessage] = Field(default_factory=list)


# ── Model Stream Chunks ────────────────────────────────────────────────────────


class TextChunk(BaseModel):
    """A streamed text delta."""

    type: Literal["text"] = "text"
    text: str


class ReasoningChunk(BaseModel):
    """A streamed reasoning delta."""

    type: Literal["reasoning"] = "reasoning"
    text: str


class UsageChunk(BaseModel):
    """Token usage and cost reported by the provider, usually at the end of a stream."""

    type: Literal["usage"] = "usage"
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float | None = None


StreamChunk = Annotated[TextChunk | ReasoningChunk | UsageChunk, Field(discriminator="type")]


# ── Context Budget ─────────────────────────────────────────────────────────────


class ContextBudget(BaseModel):
    """Token budget for deciding whether the next request fits the context window."""

    context_window: int
    reserved_tokens: float
    buffer_fraction: float

    @property
    def allowed(self) -> float:
        """Maximum tokens available for conversation history."""
        return self.context_window * (1 - self.buffer_fraction) - self.reserved_tokens

    def fits(self, token_count: float) -> bool:
        """Return True if token_count fits within the allowed budget."""
        return token_count <= self.allowed

    def percent_used(self, token_count: float) -> float:
        """Return token_count as a percentage of the full context window."""
        if self.context_window <= 0:
            return 0.0
        return token_count / self.context_window * 100


# ── Result Types ───────────────────────────────────────────────────────────────

CondenseErrorKind = Literal[
    "not_enough_messages",
    "condensed_recently",
    "handler_invalid",
    "api_failed",
    "empty_summary",
]


class SummarizeResult(BaseModel):
    """
    The result of a condensation attempt.

    On failure ``error`` is set, ``messages`` is the untouched input history
    and ``condense_id`` is None. On success ``messages`` is the re-tagged
    history with the new summary appended.
    """

    messages: list[AnyMessage]
    summary: str = ""
    cost: float = 0.0
    new_context_tokens: int | None = None
    condense_id: str | None = None
    error: str | None = None
    error_kind: CondenseErrorKind | None = None
    error_details: str | None = None
    """Operator-facing diagnostics (HTTP status, error code, raw response body)."""

    @property
    def ok(self) -> bool:
        return self.error is None


class CompactionOutcome(BaseModel):
    """What the budget evaluator decided and the history it produced."""

    messages: list[AnyMessage]
    action: Literal["none", "condensed", "truncated"]
    effective_tokens: float
    allowed_tokens: float
    summarize_result: SummarizeResult | None = None
    truncation_id: str | None = None
    error: str | None = None
    """Condensation error that forced the sliding-window fallback, if any."""
