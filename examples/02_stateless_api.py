"""
Example 02: Stateless API
=========================

Demonstrates the plain functions an agent loop can call with its own history:
- evaluate_context() deciding between nothing, condensation and truncation
- non-destructive truncation and get_effective_history()
- summarize_conversation() with a custom prompt

Run without an API key:
    CONTEXTFOLD_MOCK_LLM=1 uv run python examples/02_stateless_api.py
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


async def main() -> None:
    from contextfold import (
        ContextFoldConfig,
        LiteLLMHandler,
        Message,
        SlidingWindowConfig,
        evaluate_context,
        get_effective_history,
        summarize_conversation,
    )

    handler = LiteLLMHandler("anthropic/claude-sonnet-4-5")
    model = handler.get_model()

    history = [
        Message(role="user" if i % 2 == 0 else "assistant", content=f"message {i}", ts=i + 1)
        for i in range(11)
    ]

    print("=== Truncation (auto-condense off, non-destructive) ===")
    config = ContextFoldConfig(sliding_window=SlidingWindowConfig(non_destructive=True))
    outcome = await evaluate_context(
        history,
        total_tokens=model.context_window,
        context_window=model.context_window,
        max_tokens=model.max_tokens,
        handler=handler,
        auto_condense=False,
        config=config,
    )
    visible = get_effective_history(outcome.messages)
    print(f"Action: {outcome.action}, marker: {outcome.truncation_id}")
    print(f"Stored: {len(outcome.messages)}, visible: {len(visible)}\n")

    print("=== Manual summarisation ===")
    result = await summarize_conversation(
        history,
        handler,
        system_prompt="You are a coding agent.",
        task_id="task_example",
        custom_prompt="Summarise in three bullet points.",
    )
    if result.ok:
        print(f"Condense id: {result.condense_id}, cost: ${result.cost:.4f}")
        print(result.summary[:300])
    else:
        print(f"Failed: {result.error}")


if __name__ == "__main__":
    asyncio.run(main())
