"""
clai OpenAI-Compatible Adapter

Wraps the OpenAI SDK (openai.AsyncOpenAI) behind the ProviderAdapter
interface. Serves OpenAI itself and any OpenAI-compatible endpoint
(Groq by default) via base_url override.

Stream chunks carry text in choices[0].delta.content and tool calls as
indexed fragments in choices[0].delta.tool_calls. Usage arrives in a
final chunk with no choices. A round continues with tools when the
finish reason is "tool_calls".
"""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI

from clai.core.models import ChatMessage
from clai.providers.base import ProviderAdapter, ProviderConfig, RoundState, ToolCall, ToolOutcome

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


def convert_tools(tools: list[dict]) -> list[dict]:
    """Convert Anthropic tool schema to OpenAI function calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {}),
            },
        }
        for tool in tools
    ]


class OpenAIAdapter(ProviderAdapter):
    """OpenAI and OpenAI-compatible adapter.

    Uses the official openai Python SDK. Falls back to OPENAI_API_KEY env var.
    """

    name = "openai"
    tool_use_stop_reason = "tool_calls"

    def __init__(
        self,
        config: ProviderConfig | None = None,
        client: AsyncOpenAI | None = None,
        name: str | None = None,
    ):
        super().__init__(config)
        if name:
            self.name = name
        self._client = client or self._create_client()

    def _create_client(self) -> AsyncOpenAI:
        kwargs: dict[str, Any] = {"timeout": self._config.timeout_seconds, "max_retries": 0}
        if self._config.api_key:
            kwargs["api_key"] = self._config.api_key
        if self._config.base_url:
            kwargs["base_url"] = self._config.base_url
        return AsyncOpenAI(**kwargs)

    @property
    def client(self) -> AsyncOpenAI:
        return self._client

    def translate_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        translated: list[dict[str, Any]] = []
        for message in messages:
            if message.images:
                content: list[dict[str, Any]] = []
                if message.content:
                    content.append({"type": "text", "text": message.content})
                content.extend(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{image.media_type};base64,{image.data}"},
                    }
                    for image in message.images
                )
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
        # OpenAI uses a system message in the messages list
        if system_prompt:
            messages = [{"role": "system", "content": system_prompt}, *messages]

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = convert_tools(tools)
        return await self._client.chat.completions.create(**kwargs)

    def parse_stream_chunk(self, chunk: Any, state: RoundState) -> str | None:
        usage = getattr(chunk, "usage", None)
        if usage is None:
            # Groq reports usage under x_groq on the final chunk
            usage = getattr(getattr(chunk, "x_groq", None), "usage", None)
        if usage is not None:
            state.input_tokens += getattr(usage, "prompt_tokens", 0) or 0
            state.output_tokens += getattr(usage, "completion_tokens", 0) or 0

        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return None
        choice = choices[0]
        delta = choice.delta
        text: str | None = None

        if getattr(delta, "content", None):
            text = delta.content
            state.text_blocks[0] = state.text_blocks.get(0, "") + text
            state.text += text

        for fragment in getattr(delta, "tool_calls", None) or []:
            call = state.tool_calls.get(fragment.index)
            function = getattr(fragment, "function", None)
            if call is None:
                call = ToolCall(id=fragment.id or "", name=getattr(function, "name", None) or "")
                state.tool_calls[fragment.index] = call
            else:
                if fragment.id and not call.id:
                    call.id = fragment.id
                if function is not None and function.name and not call.name:
                    call.name = function.name
            if function is not None and function.arguments:
                call.arguments += function.arguments

        if choice.finish_reason:
            state.stop_reason = choice.finish_reason
        return text

    def format_assistant_message(self, state: RoundState) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": state.text or None}
        calls = state.ordered_tool_calls()
        if calls:
            message["tool_calls"] = []
            for call in calls:
                parsed, _ = call.parse_arguments()
                message["tool_calls"].append({
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": call.arguments if parsed is not None and call.arguments.strip() else "{}",
                    },
                })
        return message

    def format_tool_results(self, outcomes: list[ToolOutcome]) -> list[dict[str, Any]]:
        return [
            {
                "role": "tool",
                "tool_call_id": outcome.call.id,
                "content": outcome.output,
            }
            for outcome in outcomes
        ]
