"""
clai Anthropic Adapter

Wraps the Anthropic SDK (anthropic.AsyncAnthropic) behind the
ProviderAdapter interface.

Stream events handled:
- message_start: input token count
- content_block_start: opens a text or tool_use block at an index
- content_block_delta: text_delta or input_json_delta fragments
- message_delta: stop reason and output token count

A round continues with tools when the stop reason is "tool_use".
"""

from __future__ import annotations

from typing import Any

import anthropic

from clai.core.models import ChatMessage
from clai.providers.base import ProviderAdapter, ProviderConfig, RoundState, ToolCall, ToolOutcome


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Claude adapter via the official SDK.

    Falls back to ANTHROPIC_API_KEY env var if no key provided.
    """

    name = "anthropic"
    tool_use_stop_reason = "tool_use"

    def __init__(
        self,
        config: ProviderConfig | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(config)
        # Retries are handled by the round-trip loop, not the SDK.
        self._client = client or anthropic.AsyncAnthropic(
            api_key=self._config.api_key or None,
            base_url=self._config.base_url or None,
            timeout=self._config.timeout_seconds,
            max_retries=0,
        )

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        return self._client

    def translate_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        translated: list[dict[str, Any]] = []
        for message in messages:
            if message.images:
                content: list[dict[str, Any]] = [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.media_type,
                            "data": image.data,
                        },
                    }
                    for image in message.images
                ]
                if message.content:
                    content.append({"type": "text", "text": message.content})
                translated.append({"role": message.role.value, "content": content})
            else:
                translated.append({"role": message.role.value, "content": message.content})
        return translated

    async def open_stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str,
        max_tokens: int,
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
            "stream": True,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = tools
        return await self._client.messages.create(**kwargs)

    def parse_stream_chunk(self, chunk: Any, state: RoundState) -> str | None:
        event_type = getattr(chunk, "type", None)

        if event_type == "message_start":
            usage = getattr(getattr(chunk, "message", None), "usage", None)
            state.input_tokens += getattr(usage, "input_tokens", 0) or 0

        elif event_type == "content_block_start":
            block = chunk.content_block
            if block.type == "tool_use":
                state.tool_calls[chunk.index] = ToolCall(id=block.id, name=block.name)
            elif block.type == "text":
                initial = getattr(block, "text", "") or ""
                state.text_blocks[chunk.index] = initial
                if initial:
                    state.text += initial
                    return initial

        elif event_type == "content_block_delta":
            delta = chunk.delta
            if delta.type == "text_delta":
                state.text_blocks[chunk.index] = state.text_blocks.get(chunk.index, "") + delta.text
                state.text += delta.text
                return delta.text
            if delta.type == "input_json_delta":
                call = state.tool_calls.get(chunk.index)
                if call is not None:
                    call.arguments += delta.partial_json

        elif event_type == "message_delta":
            stop_reason = getattr(chunk.delta, "stop_reason", None)
            if stop_reason:
                state.stop_reason = stop_reason
            usage = getattr(chunk, "usage", None)
            state.output_tokens += getattr(usage, "output_tokens", 0) or 0

        return None

    def format_assistant_message(self, state: RoundState) -> dict[str, Any]:
        content: list[dict[str, Any]] = []
        for index in sorted({*state.text_blocks, *state.tool_calls}):
            if index in state.tool_calls:
                call = state.tool_calls[index]
                parsed, _ = call.parse_arguments()
                content.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": parsed if parsed is not None else {},
                })
            elif state.text_blocks[index]:
                content.append({"type": "text", "text": state.text_blocks[index]})
        return {"role": "assistant", "content": content}

    def format_tool_results(self, outcomes: list[ToolOutcome]) -> list[dict[str, Any]]:
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": outcome.call.id,
                        "content": outcome.output,
                        "is_error": outcome.is_error,
                    }
                    for outcome in outcomes
                ],
            }
        ]
