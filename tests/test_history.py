"""Tests for effective-history projection, cleanup and API message merging."""

from __future__ import annotations

from contextfold.compaction.sliding_window import truncate_conversation_tagged
from contextfold.context.history import (
    cleanup_after_truncation,
    get_effective_history,
    get_messages_since_last_summary,
    merge_consecutive_messages,
)
from contextfold.models.message import (
    LegacyToolResultBlock,
    LegacyToolUseBlock,
    Message,
    ReasoningMessage,
    TextBlock,
    ToolResultBlock,
    is_tool_call_block,
    is_tool_result_block,
)
from tests.conftest import assistant, conversation, summary, tool_call, tool_result, user


def _call_and_result_ids(messages):
    calls, results = set(), set()
    for msg in messages:
        if isinstance(msg, Message) and isinstance(msg.content, list):
            for block in msg.content:
                if is_tool_call_block(block):
                    calls.add(block.call_id)
                if is_tool_result_block(block):
                    results.add(block.call_id)
    return calls, results


class TestMessagesSinceLastSummary:
    def test_no_summary_returns_all(self):
        """Without a summary every message is in scope."""
        messages = conversation(4)
        assert get_messages_since_last_summary(messages) == messages

    def test_slices_from_latest_summary(self):
        """Scope starts at the most recent summary, inclusive."""
        messages = [
            user("task", 1),
            summary("cond_A", 2),
            assistant("a", 3),
            summary("cond_B", 4),
            user("b", 5),
        ]
        scope = get_messages_since_last_summary(messages)
        assert [m.ts for m in scope] == [4, 5]


class TestEffectiveHistoryWithSummary:
    def test_fresh_start_from_summary(self):
        """Everything before the active summary is invisible."""
        messages = [
            user("task", 1, condense_parent="cond_A"),
            assistant("work", 2, condense_parent="cond_A"),
            summary("cond_A", 3),
            user("continue", 4),
        ]
        effective = get_effective_history(messages)
        assert [m.ts for m in effective] == [3, 4]

    def test_orphan_tool_result_dropped(self):
        """A result whose call was condensed away is removed, and its emptied message with it."""
        messages = [
            user("task", 1, condense_parent="cond_A"),
            tool_call("call_A", 2, condense_parent="cond_A"),
            summary("cond_A", 3),
            tool_result("call_A", 4),
            user("next", 5),
        ]
        effective = get_effective_history(messages)
        assert [m.ts for m in effective] == [3, 5]

    def test_partial_orphans_keep_remaining_blocks(self):
        """Only the orphaned blocks are removed from a mixed message."""
        mixed = Message(
            role="tool",
            content=[
                ToolResultBlock(tool_call_id="call_OLD", output="stale"),
                ToolResultBlock(tool_call_id="call_NEW", output="fresh"),
            ],
            ts=5,
        )
        messages = [summary("cond_A", 3), tool_call("call_NEW", 4), mixed]
        effective = get_effective_history(messages)
        assert len(effective) == 3
        kept = effective[2].content
        assert len(kept) == 1
        assert kept[0].tool_call_id == "call_NEW"

    def test_legacy_user_tool_result_orphan(self):
        """Legacy tool_result blocks in user messages are filtered too."""
        legacy = Message(
            role="user",
            content=[
                LegacyToolResultBlock(tool_use_id="toolu_OLD", content="stale"),
                TextBlock(text="also this"),
            ],
            ts=4,
        )
        messages = [summary("cond_A", 3), legacy]
        effective = get_effective_history(messages)
        assert len(effective) == 2
        assert effective[1].content == [TextBlock(text="also this")]

    def test_legacy_tool_use_counts_as_call(self):
        """A legacy tool_use block satisfies a matching tool-result."""
        call = Message(
            role="assistant",
            content=[LegacyToolUseBlock(id="toolu_1", name="ls", input={})],
            ts=4,
        )
        messages = [summary("cond_A", 3), call, tool_result("toolu_1", 5)]
        assert len(get_effective_history(messages)) == 3

    def test_truncation_inside_slice_hides(self):
        """A marker after the summary hides the messages it tags."""
        messages = [
            summary("cond_A", 1),
            user("old", 2, truncation_parent="trunc_X"),
            Message(
                role="user", content="notice", ts=3, is_truncation_marker=True, truncation_id="trunc_X"
            ),
            user("new", 4),
        ]
        assert [m.ts for m in get_effective_history(messages)] == [1, 3, 4]

    def test_idempotent(self):
        """Projecting an already-projected history changes nothing."""
        messages = [
            user("task", 1, condense_parent="cond_A"),
            tool_call("call_A", 2, condense_parent="cond_A"),
            summary("cond_A", 3),
            tool_result("call_A", 4),
            tool_call("call_B", 5),
            tool_result("call_B", 6),
            user("next", 7),
        ]
        once = get_effective_history(messages)
        assert get_effective_history(once) == once

    def test_no_orphans(self):
        """Every remaining tool result has its call in the effective history."""
        messages = [
            tool_call("call_A", 1, condense_parent="cond_A"),
            summary("cond_A", 2),
            tool_result("call_A", 3),
            tool_call("call_B", 4),
            tool_result("call_B", 5),
        ]
        calls, results = _call_and_result_ids(get_effective_history(messages))
        assert results <= calls


class TestEffectiveHistoryWithoutSummary:
    def test_dangling_condense_parent_ignored(self):
        """A condense_parent pointing at a missing summary does not hide the message."""
        messages = [user("task", 1, condense_parent="cond_GONE"), assistant("a", 2)]
        assert len(get_effective_history(messages)) == 2

    def test_existing_marker_hides(self):
        """truncation_parent pointing at an existing marker hides the message."""
        messages = [
            user("task", 1),
            assistant("a", 2, truncation_parent="trunc_X"),
            Message(role="user", content="n", ts=3, is_truncation_marker=True, truncation_id="trunc_X"),
            assistant("b", 4),
        ]
        assert [m.ts for m in get_effective_history(messages)] == [1, 3, 4]

    def test_result_of_hidden_call_dropped(self):
        """A tool result whose call a marker hides is dropped with it."""
        messages = [
            user("task", 1),
            tool_call("call_A", 2, truncation_parent="trunc_X"),
            Message(role="user", content="n", ts=3, is_truncation_marker=True, truncation_id="trunc_X"),
            tool_result("call_A", 4),
            user("next", 5),
        ]
        assert [m.ts for m in get_effective_history(messages)] == [1, 3, 5]

    def test_no_orphans_after_tagged_truncation(self):
        """Hiding part of call/result triples never leaves a visible result without its call."""
        messages = [user("task", 1)]
        for turn in range(3):
            ts = 2 + turn * 3
            messages += [
                tool_call(f"call_{turn}", ts),
                tool_result(f"call_{turn}", ts + 1),
                user(f"step {turn}", ts + 2),
            ]
        tagged, _ = truncate_conversation_tagged(messages, 0.5, id_generator=lambda p: f"{p}_X")
        calls, results = _call_and_result_ids(get_effective_history(tagged))
        assert results <= calls

    def test_does_not_mutate_input(self):
        """The input list and messages are left untouched."""
        messages = conversation(4)
        snapshot = [m.model_copy() for m in messages]
        get_effective_history(messages)
        assert messages == snapshot


class TestCleanupAfterTruncation:
    def test_clears_references_to_removed_summary(self):
        """Rewinding past a summary restores what it replaced."""
        messages = [
            user("task", 1, condense_parent="cond_A"),
            assistant("a", 2, condense_parent="cond_A"),
        ]
        cleaned = cleanup_after_truncation(messages)
        assert all(m.condense_parent is None for m in cleaned)

    def test_keeps_valid_references(self):
        """Tags pointing at summaries that still exist are preserved."""
        messages = [user("task", 1, condense_parent="cond_A"), summary("cond_A", 2)]
        cleaned = cleanup_after_truncation(messages)
        assert cleaned[0].condense_parent == "cond_A"

    def test_clears_dangling_truncation_parent(self):
        """Tags pointing at a removed marker are cleared."""
        messages = [user("task", 1), assistant("a", 2, truncation_parent="trunc_GONE")]
        cleaned = cleanup_after_truncation(messages)
        assert cleaned[1].truncation_parent is None

    def test_reversibility(self):
        """Removing the summary and cleaning up yields the pre-condense effective history."""
        before = [user("task", 1), tool_call("call_A", 2), tool_result("call_A", 3)]
        tagged = [m.model_copy(update={"condense_parent": "cond_A"}) for m in before]
        after_condense = [*tagged, summary("cond_A", 4)]
        rewound = cleanup_after_truncation(after_condense[:-1])
        assert [m.model_dump() for m in get_effective_history(rewound)] == [
            m.model_dump() for m in get_effective_history(before)
        ]


class TestMergeConsecutiveMessages:
    def test_merges_user_runs(self):
        """Consecutive user messages collapse into one with the newest ts."""
        merged = merge_consecutive_messages([user("a", 1), user("b", 2), assistant("c", 3)])
        assert len(merged) == 2
        assert merged[0].content == [TextBlock(text="a"), TextBlock(text="b")]
        assert merged[0].ts == 2

    def test_assistant_not_merged_by_default(self):
        """Only user runs merge unless other roles are requested."""
        messages = [assistant("a", 1), assistant("b", 2)]
        assert len(merge_consecutive_messages(messages)) == 2
        assert len(merge_consecutive_messages(messages, roles=("assistant",))) == 1

    def test_summary_never_merged_into_previous(self):
        """A summary starts its own message."""
        merged = merge_consecutive_messages([user("a", 1), summary("cond_A", 2)])
        assert len(merged) == 2
        assert merged[1].is_summary

    def test_user_merges_into_summary(self):
        """A following user message may be folded into the summary."""
        merged = merge_consecutive_messages([summary("cond_A", 1), user("go on", 2)])
        assert len(merged) == 1
        assert merged[0].is_summary

    def test_truncation_marker_untouched(self):
        """Markers are never merged in either direction."""
        marker = Message(
            role="user", content="notice", ts=2, is_truncation_marker=True, truncation_id="t"
        )
        merged = merge_consecutive_messages([user("a", 1), marker, user("b", 3)])
        assert len(merged) == 3

    def test_reasoning_passes_through(self):
        """Reasoning items are kept in place and break runs."""
        reasoning = ReasoningMessage(encrypted_content="opaque", ts=2)
        merged = merge_consecutive_messages([user("a", 1), reasoning, user("b", 3)])
        assert len(merged) == 3
        assert merged[1] is reasoning
