"""Message transforms applied to the history before it is sent for summarisation.

The summarisation request is sent without a ``tools`` parameter, so every
tool-call / tool-result block is flattened to text first. Both the current
``tool-call``/``tool-result`` and the legacy ``tool_use``/``tool_result``
block formats are handled.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from contextfold.models.message import (
    AnyMessage,
    AnyToolCallBlock,
    AnyToolResultBlock,
    ImageBlock,
    Message,
    ReasoningMessage,
    TextBlock,
    ToolResultBlock,
    is_tool_call_block,
    is_tool_result_block,
)

SYNTHETIC_RESULT_TEXT = "Context condensation triggered. Tool execution deferred."
IMAGE_PLACEHOLDER_TEXT = "[Referenced image in conversation]"


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def tool_use_to_text(block: AnyToolCallBlock) -> str:
    """
    Render a tool call as ``[Tool Use: name]`` followed by one ``key: value`` line per input.

    Nested dict/list values are JSON-encoded with an indent of 2. Non-mapping
    input is rendered with ``str()``.
    """
    raw_input = block.input
    if isinstance(raw_input, dict):
        lines = []
        for key, value in raw_input.items():
            if isinstance(value, (dict, list)):
                formatted = json.dumps(value, indent=2)
            else:
                formatted = _format_scalar(value)
            lines.append(f"{key}: {formatted}")
        rendered = "\n".join(lines)
    else:
        rendered = _format_scalar(raw_input)
    return f"[Tool Use: {block.call_name}]\n{rendered}"


def tool_result_to_text(block: AnyToolResultBlock) -> str:
    """
    Render a tool result as ``[Tool Result]`` (or ``[Tool Result (Error)]``) plus its content.

    List content maps text blocks to their text, images to ``[Image]`` and
    anything else to ``[type]``.
    """
    suffix = " (Error)" if block.errored else ""
    content = block.result_content
    if isinstance(content, str):
        return f"[Tool Result{suffix}]\n{content}"
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, TextBlock):
                parts.append(item.text)
            elif isinstance(item, ImageBlock):
                parts.append("[Image]")
            else:
                parts.append(f"[{getattr(item, 'type', 'unknown')}]")
        return f"[Tool Result{suffix}]\n" + "\n".join(parts)
    return f"[Tool Result{suffix}]"


def convert_tool_blocks_to_text(content: str | list[Any]) -> str | list[Any]:
    """Replace every tool-call / tool-result block in *content* with a text block."""
    if isinstance(content, str):
        return content
    converted: list[Any] = []
    for block in content:
        if is_tool_call_block(block):
            converted.append(TextBlock(text=tool_use_to_text(block)))
        elif is_tool_result_block(block):
            converted.append(TextBlock(text=tool_result_to_text(block)))
        else:
            converted.append(block)
    return converted


def transform_messages_for_condensing(messages: Sequence[Message]) -> list[Message]:
    """Return copies of *messages* with all tool blocks flattened to text."""
    return [
        msg.model_copy(update={"content": convert_tool_blocks_to_text(msg.content)})
        if isinstance(msg.content, list)
        else msg
        for msg in messages
    ]


def inject_synthetic_tool_results(messages: Sequence[AnyMessage]) -> list[AnyMessage]:
    """
    Answer tool calls that have no result yet.

    A condensation can be triggered between a tool call and its result. Every
    such orphaned call gets a synthetic ``tool-result`` block; all of them are
    appended together as one new ``tool`` message.

    Returns:
        The input messages, plus the synthetic message when orphans exist.
    """
    call_ids: list[str] = []
    result_ids: set[str] = set()

    for msg in messages:
        if not isinstance(msg, Message) or not isinstance(msg.content, list):
            continue
        if msg.role == "assistant":
            for block in msg.content:
                if is_tool_call_block(block) and block.call_id not in call_ids:
                    call_ids.append(block.call_id)
        elif msg.role in ("tool", "user"):
            result_ids.update(block.call_id for block in msg.content if is_tool_result_block(block))

    orphan_ids = [call_id for call_id in call_ids if call_id not in result_ids]
    if not orphan_ids:
        return list(messages)

    last_ts = messages[-1].ts if messages else 0
    synthetic = Message(
        role="tool",
        content=[
            ToolResultBlock(tool_call_id=call_id, tool_name="unknown", output=SYNTHETIC_RESULT_TEXT)
            for call_id in orphan_ids
        ],
        ts=last_ts + 1,
    )
    return [*messages, synthetic]


def remove_image_blocks(messages: Sequence[Message], supports_images: bool) -> list[Message]:
    """Replace image blocks with a text placeholder when the model cannot read images."""
    if supports_images:
        return list(messages)

    out: list[Message] = []
    for msg in messages:
        if isinstance(msg.content, list) and any(isinstance(b, ImageBlock) for b in msg.content):
            content = [
                TextBlock(text=IMAGE_PLACEHOLDER_TEXT) if isinstance(b, ImageBlock) else b
                for b in msg.content
            ]
            out.append(msg.model_copy(update={"content": content}))
        else:
            out.append(msg)
    return out


def drop_reasoning_messages(messages: Sequence[AnyMessage]) -> list[Message]:
    """Filter out role-less reasoning items."""
    return [msg for msg in messages if not isinstance(msg, ReasoningMessage)]
