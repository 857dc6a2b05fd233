"""
contextfold: context compaction for long-running AI coding agents.

Primary entry points::

    from contextfold import TaskContext

    ctx = TaskContext.create(model="anthropic/claude-sonnet-4-5", system_prompt=prompt)
    ctx.add_user_message("Refactor the config loader")
    history = await ctx.prepare_request()

Or the stateless functions, for callers that keep their own history::

    from contextfold import evaluate_and_compact, get_effective_history

    messages = await evaluate_and_compact(messages, total_tokens, window, max_tokens, handler)
    to_send = get_effective_history(messages)
"""

from contextfold.session import TaskContext, make_id
from contextfold.models import (
    ContextFoldConfig,
    CondenseConfig,
    BudgetConfig,
    SlidingWindowConfig,
    FoldedContextConfig,
    ModelInfo,
    TextBlock,
    ImageBlock,
    ReasoningBlock,
    ToolCallBlock,
    ToolResultBlock,
    LegacyToolUseBlock,
    LegacyToolResultBlock,
    Message,
    ReasoningMessage,
    MessageHistory,
    TextChunk,
    ReasoningChunk,
    UsageChunk,
    ContextBudget,
    SummarizeResult,
    CompactionOutcome,
)
from contextfold.compaction import (
    CondensationEngine,
    evaluate_and_compact,
    evaluate_context,
    summarize_conversation,
    truncate_conversation,
    truncate_conversation_tagged,
)
from contextfold.context import (
    cleanup_after_truncation,
    get_effective_history,
    merge_consecutive_messages,
)
from contextfold.events.bus import EventBus, FoldEvent
from contextfold.files.folded import FoldedFileContext, GlobIgnorePolicy
from contextfold.llm.handler import LanguageModelHandler, LiteLLMHandler
from contextfold.store.history import ContextFoldStoreError, HistoryStore, MessageNotFoundError
from contextfold.tokens.estimator import TokenEstimator

__version__ = "0.1.0"

__all__ = [
    # Core
    "TaskContext",
    "make_id",
    # Config
    "ContextFoldConfig",
    "CondenseConfig",
    "BudgetConfig",
    "SlidingWindowConfig",
    "FoldedContextConfig",
    "ModelInfo",
    # Models
    "TextBlock",
    "ImageBlock",
    "ReasoningBlock",
    "ToolCallBlock",
    "ToolResultBlock",
    "LegacyToolUseBlock",
    "LegacyToolResultBlock",
    "Message",
    "ReasoningMessage",
    "MessageHistory",
    "TextChunk",
    "ReasoningChunk",
    "UsageChunk",
    "ContextBudget",
    "SummarizeResult",
    "CompactionOutcome",
    # Compaction
    "CondensationEngine",
    "evaluate_and_compact",
    "evaluate_context",
    "summarize_conversation",
    "truncate_conversation",
    "truncate_conversation_tagged",
    # History
    "cleanup_after_truncation",
    "get_effective_history",
    "merge_consecutive_messages",
    # Events
    "EventBus",
    "FoldEvent",
    # Files
    "FoldedFileContext",
    "GlobIgnorePolicy",
    # LLM
    "LanguageModelHandler",
    "LiteLLMHandler",
    # Store
    "ContextFoldStoreError",
    "HistoryStore",
    "MessageNotFoundError",
    # Tokens
    "TokenEstimator",
]
