"""
clai Provider Adapter Base

Each LLM provider streams tool calls in its own wire format. An adapter
hides that behind a narrow capability interface so one round-trip loop
can drive every provider:

- translate_messages: conversation history → provider-native messages
- open_stream: start a streaming request with the tool catalog
- parse_stream_chunk: fold one native chunk into a RoundState
- format_assistant_message / format_tool_results: feed a finished
  round back into the native history

Key design decisions:
- Async-first (streams are consumed on the event loop)
- Adapters never execute tools and never talk to the user
- Tool-call arguments are accumulated as raw text and parsed once,
  after the stream ends
"""

from __future__ import annotations

import inspect
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from clai.core.models import ChatMessage
from clai.logging import get_logger

logger = get_logger("clai.providers")


class ProviderConfig(BaseModel):
    """Configuration for an LLM provider."""
    api_key: str | None = None
    base_url: str | None = None
    timeout_seconds: float = 60.0
    max_retries: int = 3
    retry_initial_delay: float = 1.0  # exponential backoff base (1s, 2s, 4s)


@dataclass
class ToolCall:
    """A tool call as streamed by the model, arguments still raw JSON text."""
    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> tuple[dict[str, Any] | None, str | None]:
        """Return (input, None) on success or (None, reason) on failure.

        Empty arguments mean an empty object.
        """
        raw = self.arguments.strip()
        if not raw:
            return {}, None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            return None, f"arguments are not valid JSON ({e.msg})"
        if not isinstance(value, dict):
            return None, "arguments must be a JSON object"
        return value, None


@dataclass
class ToolOutcome:
    """What goes back to the model for one tool call."""
    call: ToolCall
    output: str
    is_error: bool = False


@dataclass
class RoundState:
    """Everything one streamed round produced.

    Text and tool blocks are keyed by the provider's block index so the
    assistant message can be rebuilt in the order the model wrote it.
    """
    text: str = ""
    text_blocks: dict[int, str] = field(default_factory=dict)
    tool_calls: dict[int, ToolCall] = field(default_factory=dict)
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0

    def ordered_tool_calls(self) -> list[ToolCall]:
        return [self.tool_calls[i] for i in sorted(self.tool_calls)]


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters."""

    name: str = "provider"
    tool_use_stop_reason: str = ""

    def __init__(self, config: ProviderConfig | None = None):
        self._config = config or ProviderConfig()

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @abstractmethod
    def translate_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Convert conversation history into provider-native messages."""
        ...

    @abstractmethod
    async def open_stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str,
        max_tokens: int,
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
    ) -> AsyncIterator[Any]:
        """Start a streaming request and return the native chunk stream."""
        ...

    @abstractmethod
    def parse_stream_chunk(self, chunk: Any, state: RoundState) -> str | None:
        """Fold one chunk into the round state. Returns any new text."""
        ...

    @abstractmethod
    def format_assistant_message(self, state: RoundState) -> dict[str, Any]:
        """Native assistant message echoing the round's text and tool calls."""
        ...

    @abstractmethod
    def format_tool_results(self, outcomes: list[ToolOutcome]) -> list[dict[str, Any]]:
        """Native message(s) carrying tool results back to the model."""
        ...

    def is_tool_use_stop(self, state: RoundState) -> bool:
        return state.stop_reason == self.tool_use_stop_reason

    async def close_stream(self, stream: Any) -> None:
        """Release a stream, whether or not it was fully consumed."""
        close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
        if close is None:
            return
        try:
            result = close()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.debug("Error while closing stream", extra={"provider": self.name}, exc_info=True)
