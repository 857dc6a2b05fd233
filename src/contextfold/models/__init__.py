"""contextfold data models."""

from contextfold.models.config import (
    BudgetConfig,
    CondenseConfig,
    ContextFoldConfig,
    FoldedContextConfig,
    ModelInfo,
    SlidingWindowConfig,
)
from contextfold.models.message import (
    TOOL_CALL_TYPES,
    TOOL_RESULT_TYPES,
    AnyMessage,
    AnyToolCallBlock,
    AnyToolResultBlock,
    CompactionOutcome,
    ContentBlock,
    ContextBudget,
    ImageBlock,
    LegacyToolResultBlock,
    LegacyToolUseBlock,
    Message,
    MessageHistory,
    MessageTags,
    ReasoningBlock,
    ReasoningChunk,
    ReasoningMessage,
    StreamChunk,
    SummarizeResult,
    TextBlock,
    TextChunk,
    ToolCallBlock,
    ToolResultBlock,
    UsageChunk,
    is_tool_call_block,
    is_tool_result_block,
)

__all__ = [
    # Config
    "BudgetConfig",
    "CondenseConfig",
    "ContextFoldConfig",
    "FoldedContextConfig",
    "ModelInfo",
    "SlidingWindowConfig",
    # Content blocks
    "TextBlock",
    "ImageBlock",
    "ReasoningBlock",
    "ToolCallBlock",
    "ToolResultBlock",
    "LegacyToolUseBlock",
    "LegacyToolResultBlock",
    "ContentBlock",
    "AnyToolCallBlock",
    "AnyToolResultBlock",
    "TOOL_CALL_TYPES",
    "TOOL_RESULT_TYPES",
    "is_tool_call_block",
    "is_tool_result_block",
    # Messages
    "MessageTags",
    "Message",
    "ReasoningMessage",
    "AnyMessage",
    "MessageHistory",
    # Stream
    "TextChunk",
    "ReasoningChunk",
    "UsageChunk",
    "StreamChunk",
    # Budget and results
    "ContextBudget",
    "SummarizeResult",
    "CompactionOutcome",
]
