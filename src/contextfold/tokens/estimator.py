"""Multi-model token estimation with caching and graceful fallback."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from contextfold.models.config import ModelInfo

from contextfold.models.message import (
    ImageBlock,
    Message,
    ReasoningBlock,
    ReasoningMessage,
    TextBlock,
    is_tool_call_block,
    is_tool_result_block,
)

# Flat cost charged for an image block; providers bill images by resolution,
# which is not known here.
IMAGE_TOKEN_ESTIMATE = 1_000


class TokenEstimator:
    """
    Multi-model token counting with caching and graceful fallback.

    Priority order:
    1. tiktoken for OpenAI model families (gpt-4, gpt-3.5, o1, o3)
    2. Character-based heuristic (``len // 3``) for Claude models
    3. Character-based heuristic (``len // 4``) for all other models

    Caching:
    - Encoder objects are cached by encoding name (one load per process).
    - Token counts are cached by SHA-256 of content for immutable content
      (summary messages). Use ``estimate_cached()`` for this.
    """

    def __init__(self) -> None:
        self._encoder_cache: dict[str, Any] = {}
        self._count_cache: dict[str, int] = {}
        self._force_heuristic: bool = False
        """Set to True in tests to skip tiktoken import."""

    def estimate(self, text: str, model: ModelInfo | None = None) -> int:
        """
        Estimate the token count for a string.

        Args:
            text: The text to estimate.
            model: Optional model info for accurate tokenisation. Uses heuristic
                when None or model encoding is unknown.

        Returns:
            Estimated token count, always >= 1 for non-empty text.
        """
        if not text:
            return 0
        if self._force_heuristic or model is None:
            return self._heuristic(text)

        encoding = model.encoding
        if encoding == "claude_heuristic":
            return max(1, len(text) // 3)
        if encoding in ("cl100k_base", "o200k_base"):
            try:
                return self._tiktoken_estimate(text, encoding)
            except Exception:
                pass
        return self._heuristic(text)

    def estimate_cached(
        self,
        text: str,
        cache_key: str,
        model: ModelInfo | None = None,
    ) -> int:
        """
        Estimate with caching, keyed by ``cache_key``.

        Args:
            text: The text to estimate.
            cache_key: A stable identifier for this content (e.g. SHA-256 hash).
            model: Optional model info for accurate tokenisation.

        Returns:
            Estimated token count from cache or fresh computation.
        """
        if cache_key in self._count_cache:
            return self._count_cache[cache_key]
        count = self.estimate(text, model)
        self._count_cache[cache_key] = count
        return count

    def estimate_blocks(
        self,
        blocks: Iterable[Any],
        model: ModelInfo | None = None,
    ) -> int:
        """
        Estimate tokens for a sequence of content blocks.

        Tool calls count their name plus JSON-serialised input; tool results
        count their textual content; images are charged a flat estimate.

        Args:
            blocks: Content blocks (any mix of the block models).
            model: Optional model info for accurate tokenisation.

        Returns:
            Total estimated token count.
        """
        total = 0
        for block in blocks:
            if isinstance(block, (TextBlock, ReasoningBlock)):
                total += self.estimate(block.text, model)
            elif isinstance(block, ImageBlock):
                total += IMAGE_TOKEN_ESTIMATE
            elif is_tool_call_block(block):
                total += self.estimate(block.call_name, model)
                total += self.estimate(json.dumps(block.input, default=str), model)
            elif is_tool_result_block(block):
                content = block.result_content
                if isinstance(content, str):
                    total += self.estimate(content, model)
                elif content:
                    total += self.estimate_blocks(content, model)
            else:
                total += max(1, len(str(block)) // 4)
        return total

    def estimate_message(self, msg: Message | ReasoningMessage, model: ModelInfo | None = None) -> int:
        """
        Estimate total tokens for a message, including a small per-message overhead.

        Summary messages never change once written, so their count is cached.
        """
        if isinstance(msg, ReasoningMessage):
            return 4 + sum(self.estimate(block.text, model) for block in msg.summary)
        if msg.is_summary and msg.condense_id:
            text = msg.text_content()
            return 4 + self.estimate_cached(text, self.content_hash(text), model)
        return 4 + self.estimate_blocks(msg.blocks(), model)

    def _heuristic(self, text: str) -> int:
        """Conservative heuristic: 4 characters per token, minimum 1."""
        return max(1, len(text) // 4)

    def _tiktoken_estimate(self, text: str, encoding_name: str) -> int:
        """Encode with tiktoken, caching the encoder object."""
        if encoding_name not in self._encoder_cache:
            import tiktoken

            self._encoder_cache[encoding_name] = tiktoken.get_encoding(encoding_name)
        encoder = self._encoder_cache[encoding_name]
        return len(encoder.encode(text))

    @staticmethod
    def content_hash(text: str) -> str:
        """Return a stable SHA-256 hex digest for use as a cache key."""
        return hashlib.sha256(text.encode()).hexdigest()
