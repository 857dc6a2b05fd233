"""Configuration models for contextfold components."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from contextfold.prompts import CONDENSE_PROMPT, PROMPT_VERSION, SUMMARY_PROMPT


class CondenseConfig(BaseModel):
    """Configuration for the condensation engine."""

    auto_condense: bool = True
    """Whether the budget evaluator may summarise before falling back to truncation."""

    auto_condense_percent: int = Field(
        default=100,
        ge=5,
        le=100,
        description=(
            "Percentage of the context window at which automatic condensation fires even "
            "when the request still fits the allowed budget. 100 disables early condensation."
        ),
    )

    custom_prompt: str | None = Field(
        default=None,
        description="Condensing instructions used instead of condense_prompt. Blank = default.",
    )

    summary_prompt: str = Field(
        default=SUMMARY_PROMPT,
        description="System prompt sent with every summarisation request.",
    )

    condense_prompt: str = Field(
        default=CONDENSE_PROMPT,
        description="Final user instruction asking the model for a structured summary.",
    )

    prompt_version: str = PROMPT_VERSION

    include_folded_context: bool = True
    """Whether previously read files are folded into the summary message."""


class BudgetConfig(BaseModel):
    """Configuration for the token budget evaluator."""

    token_buffer_fraction: float = Field(
        default=0.1,
        ge=0.0,
        le=0.5,
        description="Fraction of the context window kept free as a safety buffer.",
    )

    default_reserved_fraction: float = Field(
        default=0.2,
        ge=0.0,
        le=0.9,
        description="Fraction of the context window reserved for the response when "
        "the model reports no explicit max_tokens.",
    )

    @model_validator(mode="after")
    def validate_fractions(self) -> BudgetConfig:
        if self.token_buffer_fraction + self.default_reserved_fraction >= 1.0:
            raise ValueError(
                "token_buffer_fraction + default_reserved_fraction must be less than 1.0"
            )
        return self


class SlidingWindowConfig(BaseModel):
    """Configuration for the sliding-window fallback."""

    fraction_to_remove: float = Field(
        default=0.5,
        gt=0.0,
        lt=1.0,
        description="Fraction of messages after the first one removed per truncation.",
    )

    non_destructive: bool = False
    """Hide truncated messages behind a truncation marker instead of dropping them."""


class FoldedContextConfig(BaseModel):
    """Configuration for folded file context embedded in summaries."""

    max_files: int = Field(default=20, ge=1, le=200)

    max_chars_per_file: int = Field(
        default=20_000,
        ge=500,
        description="Upper bound on the size of one folded section.",
    )

    max_definitions: int = Field(
        default=200,
        ge=1,
        description="Maximum number of definitions listed per file.",
    )


class ContextFoldConfig(BaseModel):
    """
    Top-level configuration for contextfold.

    All sub-configs have sensible defaults and can be overridden individually.

    Example::

        config = ContextFoldConfig(
            condense=CondenseConfig(auto_condense_percent=75),
            sliding_window=SlidingWindowConfig(non_destructive=True),
        )
    """

    condense: CondenseConfig = Field(default_factory=CondenseConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    sliding_window: SlidingWindowConfig = Field(default_factory=SlidingWindowConfig)
    folded_context: FoldedContextConfig = Field(default_factory=FoldedContextConfig)

    @classmethod
    def default(cls) -> ContextFoldConfig:
        """Return a config instance with all defaults."""
        return cls()


class ModelInfo(BaseModel):
    """Resolved model metadata used for budget calculations."""

    model_id: str
    provider_id: str = ""
    context_window: int = Field(
        default=200_000,
        description="Total input + output token limit for this model.",
    )
    max_tokens: int | None = Field(
        default=8_192,
        description="Maximum output tokens for a single response. None = unknown.",
    )
    supports_images: bool = True
    encoding: Literal["cl100k_base", "o200k_base", "claude_heuristic", "unknown"] = "cl100k_base"

    @classmethod
    def from_model_string(cls, model: str) -> ModelInfo:
        """
        Create a ModelInfo by heuristically parsing a model string.

        Supports litellm-style strings like ``anthropic/claude-sonnet-4-5``,
        ``gpt-4o``, ``openai/gpt-4-turbo``, etc.
        """
        lower = model.lower()
        provider = ""
        model_name = lower

        if "/" in lower:
            provider, model_name = lower.split("/", 1)

        if "claude-opus" in model_name or "claude-3-opus" in model_name:
            return cls(
                model_id=model,
                provider_id=provider or "anthropic",
                context_window=200_000,
                max_tokens=32_000,
                encoding="claude_heuristic",
            )
        if "claude" in model_name:
            return cls(
                model_id=model,
                provider_id=provider or "anthropic",
                context_window=200_000,
                max_tokens=8_192,
                encoding="claude_heuristic",
            )
        if "o1" in model_name or "o3" in model_name:
            return cls(
                model_id=model,
                provider_id=provider or "openai",
                context_window=200_000,
                max_tokens=100_000,
                encoding="o200k_base",
            )
        if "gpt-4o" in model_name:
            return cls(
                model_id=model,
                provider_id=provider or "openai",
                context_window=128_000,
                max_tokens=16_384,
                encoding="o200k_base",
            )
        if "gpt-4" in model_name or "gpt-3" in model_name:
            return cls(
                model_id=model,
                provider_id=provider or "openai",
                context_window=128_000,
                max_tokens=4_096,
                supports_images="gpt-3" not in model_name,
                encoding="cl100k_base",
            )
        if "gemini" in model_name:
            return cls(
                model_id=model,
                provider_id=provider or "google",
                context_window=1_000_000,
                max_tokens=8_192,
                encoding="cl100k_base",
            )
        # Safe default for unknown models: no max_tokens, so 20 % of the window is reserved
        return cls(
            model_id=model,
            provider_id=provider,
            context_window=128_000,
            max_tokens=None,
            supports_images=False,
            encoding="unknown",
        )
