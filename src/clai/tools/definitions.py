"""
clai Tool Definitions

A tool is a JSON-schema definition in Anthropic's tool_use shape plus
the synchronous handler that runs it. Handlers receive a ToolContext
carrying the sandbox and the other per-executor collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from clai.core.models import ToolResult

if TYPE_CHECKING:
    from clai.tools.builtin.web_fetch import WebFetcher
    from clai.tools.sandbox import PathSandbox


@dataclass
class ToolDefinition:
    """A tool the model can call."""
    name: str
    description: str
    input_schema: dict = field(default_factory=dict)

    def to_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class ToolContext:
    """Collaborators handed to every handler call."""
    sandbox: PathSandbox
    fetcher: WebFetcher | None = None
    ignore_patterns: list[str] = field(default_factory=list)
    skip_approval_check: bool = False


ToolHandler = Callable[..., ToolResult]


class RegisteredTool:
    """A definition paired with its handler.

    Read-only tools never mutate the filesystem and are not prompted
    for approval under the default "ask" permission.
    """

    def __init__(self, definition: ToolDefinition, handler: ToolHandler, read_only: bool = True):
        self.definition = definition
        self.handler = handler
        self.read_only = read_only

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def required(self) -> list[str]:
        return list(self.definition.input_schema.get("required", []))

    @property
    def properties(self) -> dict[str, dict]:
        return dict(self.definition.input_schema.get("properties", {}))
