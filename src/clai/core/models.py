"""
clai Core Data Models

Shared types used across the orchestrator: conversation messages and
their display segments, tool call records, tool results, sandbox
decisions and token accounting. This module must not import anything
else from clai.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


# ─── Enums ───────────────────────────────────────────────────

class Role(str, Enum):
    """Author of a conversation message."""
    USER = "user"
    ASSISTANT = "assistant"


class ToolPermission(str, Enum):
    """Per-tool user preference read from the configuration file."""
    ALWAYS = "always"
    ASK = "ask"
    NEVER = "never"


# ─── Segments ────────────────────────────────────────────────

class TextSegment(BaseModel):
    """A run of prose inside an assistant turn."""
    type: Literal["text"] = "text"
    content: str = ""


class ToolSegment(BaseModel):
    """A tool invocation inside an assistant turn.

    A segment whose output is still None is in flight.
    """
    type: Literal["tool"] = "tool"
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: str | None = None
    is_error: bool | None = None

    @property
    def is_open(self) -> bool:
        return self.output is None


Segment = Annotated[Union[TextSegment, ToolSegment], Field(discriminator="type")]


# ─── Messages ────────────────────────────────────────────────

class ImageAttachment(BaseModel):
    """Base64-encoded image sent alongside a user message."""
    data: str
    media_type: str = "image/png"


class ChatMessage(BaseModel):
    """One entry of the conversation history."""
    role: Role
    content: str = ""
    images: list[ImageAttachment] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)

    @classmethod
    def user(cls, content: str, images: list[ImageAttachment] | None = None) -> ChatMessage:
        return cls(role=Role.USER, content=content, images=images or [])

    @classmethod
    def assistant(cls, content: str, segments: list[Segment] | None = None) -> ChatMessage:
        return cls(role=Role.ASSISTANT, content=content, segments=segments or [])


class ToolCallInfo(BaseModel):
    """What the UI is told about a tool call at each stage."""
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: str | None = None
    is_error: bool | None = None


# ─── Accounting ──────────────────────────────────────────────

class TokenUsage(BaseModel):
    """Token counts and USD cost. Adding two usages sums every field."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_cost=self.total_cost + other.total_cost,
        )


class StreamResult(BaseModel):
    """Final value of a completed (or cancelled-with-output) turn."""
    text: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    segments: list[Segment] = Field(default_factory=list)
    rounds: int = 0

    def to_message(self) -> ChatMessage:
        return ChatMessage.assistant(self.text, segments=[s.model_copy() for s in self.segments])


# ─── Tool execution records ──────────────────────────────────

@dataclass(frozen=True)
class ToolResult:
    """Outcome of a single tool execution."""
    output: str
    is_error: bool = False
    requires_approval: bool = False


@dataclass(frozen=True)
class SandboxDecision:
    """Verdict of the path sandbox for one path."""
    allowed: bool
    requires_approval: bool = False
    reason: str | None = None
