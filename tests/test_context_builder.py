"""Tests for ContextBuilder."""

from __future__ import annotations

import pytest

from contextfold.context.builder import ContextBuilder
from contextfold.models.config import ModelInfo
from contextfold.models.message import Message, TextBlock
from tests.conftest import assistant, summary, user


@pytest.fixture
def model_info():
    return ModelInfo(model_id="test-model", context_window=100_000, max_tokens=4_000, encoding="unknown")


@pytest.fixture
def builder(estimator):
    return ContextBuilder(estimator)


class TestContextBuilder:
    def test_empty_history(self, builder, model_info):
        """Only the system prompt is counted."""
        ctx = builder.build([], model_info, "s" * 8)
        assert ctx.messages == []
        assert ctx.token_estimate == 2
        assert ctx.has_summary is False

    def test_token_estimate_and_prior(self, builder, model_info):
        """prior_tokens excludes the last message."""
        messages = [user("x" * 40, 1), assistant("y" * 80, 2)]
        ctx = builder.build(messages, model_info, "s" * 8)
        assert ctx.token_estimate == 2 + 14 + 24
        assert ctx.prior_tokens == 2 + 14

    def test_hidden_messages_excluded(self, builder, model_info):
        """Messages replaced by a summary are not sent."""
        messages = [
            user("old", 1, condense_parent="cond_A"),
            assistant("old reply", 2, condense_parent="cond_A"),
            summary("cond_A", 3),
            assistant("after", 4),
        ]
        ctx = builder.build(messages, model_info, "")
        assert [m.ts for m in ctx.messages] == [3, 4]
        assert ctx.has_summary is True
        assert ctx.summary_token_count > 0

    def test_user_messages_merged_into_summary(self, builder, model_info):
        """A user message following a summary is merged into it for sending."""
        messages = [
            user("old", 1, condense_parent="cond_A"),
            summary("cond_A", 2, text="## Conversation Summary\nwork"),
            user("continue", 3),
        ]
        ctx = builder.build(messages, model_info, "")
        assert len(ctx.messages) == 1
        merged = ctx.messages[0]
        assert merged.is_summary
        assert merged.ts == 3
        assert merged.content[-1] == TextBlock(text="continue")

    def test_budget_from_model(self, builder, model_info):
        """The budget reserves max_tokens and the buffer."""
        ctx = builder.build([Message(role="user", content="hi", ts=1)], model_info, "")
        assert ctx.budget.allowed == 100_000 * 0.9 - 4_000

    def test_prior_tokens_include_merged_summary(self, builder, model_info):
        """A user message merged into the summary does not hide the summary from prior_tokens."""
        messages = [
            user("old", 1, condense_parent="cond_A"),
            summary("cond_A", 2, text="s" * 400),
            user("y" * 40, 3),
        ]
        ctx = builder.build(messages, model_info, "")
        assert len(ctx.messages) == 1
        assert ctx.prior_tokens == 104
