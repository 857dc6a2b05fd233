"""Language-model handler interface and a litellm-backed implementation."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Sequence
from typing import Any, Protocol, runtime_checkable

import structlog

from contextfold.models.config import ModelInfo
from contextfold.models.message import (
    AnyMessage,
    ImageBlock,
    Message,
    ReasoningChunk,
    ReasoningMessage,
    StreamChunk,
    TextBlock,
    TextChunk,
    UsageChunk,
    is_tool_call_block,
    is_tool_result_block,
)
from contextfold.tokens.estimator import TokenEstimator

MOCK_ENV_VAR = "CONTEXTFOLD_MOCK_LLM"


@runtime_checkable
class LanguageModelHandler(Protocol):
    """
    The narrow model interface the compaction engine consumes.

    ``create_message`` returns an async iterator of
    :class:`~contextfold.models.message.TextChunk`,
    :class:`~contextfold.models.message.ReasoningChunk` and
    :class:`~contextfold.models.message.UsageChunk` objects.
    """

    def create_message(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        metadata: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamChunk]: ...

    async def count_tokens(self, blocks: Sequence[Any]) -> int: ...

    def get_model(self) -> ModelInfo: ...


def _image_url(block: ImageBlock) -> str:
    if block.image.startswith(("http://", "https://", "data:")):
        return block.image
    return f"data:{block.media_type or 'image/png'};base64,{block.image}"


def _result_text(content: str | list[Any] | None) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(
        item.text if isinstance(item, TextBlock) else f"[{item.type}]" for item in content
    )


def to_openai_messages(messages: Sequence[AnyMessage]) -> list[dict[str, Any]]:
    """
    Convert stored messages to OpenAI chat-completion dicts (the format litellm accepts).

    Tool calls become ``tool_calls`` on the assistant message; tool results,
    including legacy ``tool_result`` blocks in user messages, become separate
    ``role: "tool"`` messages. Reasoning items are dropped.
    """
    out: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg, ReasoningMessage):
            continue
        if isinstance(msg.content, str):
            out.append({"role": msg.role, "content": msg.content})
            continue

        parts: list[dict[str, Any]] = []
        tool_calls: list[dict[str, Any]] = []
        tool_results: list[dict[str, Any]] = []
        for block in msg.content:
            if isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append({"type": "image_url", "image_url": {"url": _image_url(block)}})
            elif is_tool_call_block(block):
                tool_calls.append(
                    {
                        "id": block.call_id,
                        "type": "function",
                        "function": {
                            "name": block.call_name,
                            "arguments": json.dumps(block.input, default=str),
                        },
                    }
                )
            elif is_tool_result_block(block):
                tool_results.append(
                    {
                        "role": "tool",
                        "tool_call_id": block.call_id,
                        "content": _result_text(block.result_content),
                    }
                )

        out.extend(tool_results)
        if msg.role == "tool":
            continue
        if parts or tool_calls:
            entry: dict[str, Any] = {"role": msg.role, "content": parts or None}
            if tool_calls:
                entry["tool_calls"] = tool_calls
            out.append(entry)
    return out


class LiteLLMHandler:
    """
    :class:`LanguageModelHandler` backed by ``litellm.acompletion``.

    Set ``CONTEXTFOLD_MOCK_LLM=1`` to stream a deterministic canned summary
    instead of calling a provider (useful for examples and offline tests).

    Example::

        handler = LiteLLMHandler("anthropic/claude-sonnet-4-5")
        result = await summarize_conversation(messages, handler, system_prompt, "task_1")
    """

    def __init__(
        self,
        model: str,
        model_info: ModelInfo | None = None,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self._model = model
        self._model_info = model_info or ModelInfo.from_model_string(model)
        self._estimator = estimator or TokenEstimator()
        self._logger = structlog.get_logger("contextfold.llm")

    def get_model(self) -> ModelInfo:
        return self._model_info

    async def count_tokens(self, blocks: Sequence[Any]) -> int:
        return self._estimator.estimate_blocks(blocks, self._model_info)

    async def create_message(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        metadata: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response as text, reasoning and usage chunks."""
        llm_messages = [{"role": "system", "content": system_prompt}, *to_openai_messages(messages)]

        if os.environ.get(MOCK_ENV_VAR) == "1":
            async for chunk in self._mock_response(llm_messages):
                yield chunk
            return

        async for chunk in self._stream_response(llm_messages, metadata):
            yield chunk

    async def _stream_response(
        self,
        llm_messages: list[dict[str, Any]],
        metadata: dict[str, Any] | None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream from the provider via litellm."""
        import litellm

        call_kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": llm_messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self._model_info.max_tokens:
            call_kwargs["max_tokens"] = self._model_info.max_tokens
        if metadata:
            call_kwargs["metadata"] = {k: v for k, v in metadata.items() if k != "tools"}

        async for chunk in await litellm.acompletion(**call_kwargs):
            delta = chunk.choices[0].delta if chunk.choices else None
            if delta is not None:
                if delta.content:
                    yield TextChunk(text=delta.content)
                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield ReasoningChunk(text=reasoning)

            usage = getattr(chunk, "usage", None)
            if usage:
                input_tokens = getattr(usage, "prompt_tokens", 0) or 0
                output_tokens = getattr(usage, "completion_tokens", 0) or 0
                yield UsageChunk(
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    total_cost=self._cost(input_tokens, output_tokens),
                )

    def _cost(self, input_tokens: int, output_tokens: int) -> float:
        """Price a call with litellm's cost map; 0.0 for models it does not know."""
        import litellm

        try:
            prompt_cost, completion_cost = litellm.cost_per_token(
                model=self._model,
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
            )
        except Exception as exc:
            self._logger.debug("cost_unavailable", model=self._model, error=str(exc))
            return 0.0
        return float(prompt_cost + completion_cost)

    async def _mock_response(
        self,
        llm_messages: list[dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Stream a canned summary (CONTEXTFOLD_MOCK_LLM=1)."""
        first_user = next(
            (m["content"] for m in llm_messages if m["role"] == "user"),
            "",
        )
        if isinstance(first_user, list):
            first_user = " ".join(p.get("text", "") for p in first_user if isinstance(p, dict))
        request = " ".join(str(first_user).split())[:200] or "(no user request)"
        turns = sum(1 for m in llm_messages if m["role"] in ("user", "assistant", "tool"))
        mock_text = (
            "## 1. Primary Request and Intent\n"
            f"{request}\n\n"
            "## 2. Current Work\n"
            f"Conversation of {turns} messages condensed for continuation.\n\n"
            "## 3. Optional Next Step\n"
            "Continue with the most recent user request."
        )

        for line in mock_text.splitlines(keepends=True):
            yield TextChunk(text=line)

        yield UsageChunk(
            input_tokens=self._estimator.estimate(json.dumps(llm_messages, default=str)),
            output_tokens=self._estimator.estimate(mock_text),
            total_cost=0.0,
        )
