"""
Example 01: Task Context
========================

Demonstrates the orchestrator-side facade, TaskContext:
- Creating a context with create()
- Recording user, assistant and tool messages
- Letting prepare_request() condense when the budget is exceeded
- Watching events and rewinding past a summary

Run without an API key:
    CONTEXTFOLD_MOCK_LLM=1 uv run python examples/01_task_context.py

Run with a real LLM (set your API key first):
    ANTHROPIC_API_KEY=sk-... uv run python examples/01_task_context.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path when running directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


async def main() -> None:
    from contextfold import (
        CondenseConfig,
        ContextFoldConfig,
        FoldEvent,
        TaskContext,
        TextBlock,
        ToolCallBlock,
    )

    print("=== contextfold Task Context Example ===\n")

    # Condense early so the demo does not need a huge history
    config = ContextFoldConfig(condense=CondenseConfig(auto_condense_percent=5))

    ctx = TaskContext.create(
        model="anthropic/claude-sonnet-4-5",
        system_prompt="You are a coding agent working in a Python repository.",
        config=config,
        cwd=str(Path(__file__).parent.parent),
    )
    ctx.subscribe(
        FoldEvent.CONDENSE_COMPLETED,
        lambda event, payload: print(
            f"  [event] {event}: {payload['messages_tagged']} messages folded, "
            f"{payload['new_context_tokens']} tokens in context"
        ),
    )
    print(f"Task: {ctx.id}\n")

    ctx.add_user_message("Add retry logic to the HTTP client in src/contextfold/llm/handler.py")
    for turn in range(6):
        call_id = f"call_{turn}"
        ctx.add_assistant_message(
            [
                TextBlock(text=f"Step {turn}: reading the handler."),
                ToolCallBlock(
                    tool_call_id=call_id,
                    tool_name="read_file",
                    input={"path": "src/contextfold/llm/handler.py"},
                ),
            ]
        )
        ctx.add_tool_result(call_id, "x" * 20_000, tool_name="read_file")
        ctx.record_file_read("src/contextfold/llm/handler.py")

    built = ctx.build_context()
    print(f"Stored messages: {len(ctx.store)}, estimated tokens: {built.token_estimate:,}")

    history = await ctx.prepare_request(environment_details="<environment_details/>")
    outcome = ctx.last_outcome
    print(f"Action: {outcome.action} ({outcome.effective_tokens:,.0f} of {outcome.allowed_tokens:,.0f})")
    print(f"Messages sent: {len(history)}, stored: {len(ctx.store)}\n")

    if history and history[0].is_summary:
        print("Summary preview:")
        print(history[0].text_content()[:400])
        print()

        summary_ts = history[0].ts
        restored = ctx.rewind_to(summary_ts)
        print(f"Rewound past the summary: {restored} messages visible again")
        print(f"Effective history: {len(ctx.effective_history())} messages")


if __name__ == "__main__":
    asyncio.run(main())
