"""
clai Tool Executor

Manages tool registration and execution. Execution is synchronous and
never raises: bad arguments, unknown tools, sandbox denials and handler
crashes all come back as error ToolResults the model can read.

Error text is scrubbed of the absolute working directory before it
leaves the executor.
"""

from __future__ import annotations

from typing import Any

from clai.core.models import ToolResult
from clai.logging import get_logger
from clai.sanitize import sanitize_error_path
from clai.tools.builtin import ALL_BUILTIN_TOOLS
from clai.tools.builtin.web_fetch import WebFetcher
from clai.tools.definitions import RegisteredTool, ToolContext
from clai.tools.sandbox import PathSandbox

logger = get_logger("clai.tools.executor")

_JSON_TYPES: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


class ToolExecutor:
    """Runs registered tools against one sandbox."""

    def __init__(
        self,
        sandbox: PathSandbox | None = None,
        fetcher: WebFetcher | None = None,
        ignore_patterns: list[str] | None = None,
    ):
        self.sandbox = sandbox or PathSandbox()
        self._fetcher = fetcher
        self._ignore_patterns = list(ignore_patterns or [])
        self._tools: dict[str, RegisteredTool] = {}

    def register(self, tool: RegisteredTool) -> None:
        """Register a tool. Raises ValueError on a duplicate name."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def get_schemas(self) -> list[dict]:
        """Tool schemas for the Anthropic ``tools`` parameter."""
        return [t.definition.to_schema() for t in self._tools.values()]

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def fetcher(self) -> WebFetcher:
        if self._fetcher is None:
            self._fetcher = WebFetcher()
        return self._fetcher

    def close(self) -> None:
        if self._fetcher is not None:
            self._fetcher.close()

    # ─── Validation ────────────────────────────────────────

    def _validate(self, tool: RegisteredTool, tool_input: Any) -> tuple[dict[str, Any] | None, str | None]:
        if not isinstance(tool_input, dict):
            return None, "Tool input must be a JSON object"

        kwargs: dict[str, Any] = {}
        for prop, schema in tool.properties.items():
            expected = _JSON_TYPES.get(schema.get("type", ""))
            value = tool_input.get(prop)
            if value is None:
                if prop in tool.required:
                    return None, f"Missing or invalid '{prop}'"
                continue
            if expected is not None and (
                not isinstance(value, expected) or (expected is not bool and isinstance(value, bool))
            ):
                return None, f"Missing or invalid '{prop}'"
            kwargs[prop] = value
        return kwargs, None

    def requires_approval(self, name: str, tool_input: dict[str, Any]) -> bool:
        """True when a read would touch a sensitive file.

        Pure sandbox lookup: nothing is read.
        """
        if name != "read_file" or not isinstance(tool_input, dict):
            return False
        path = tool_input.get("path")
        if not isinstance(path, str):
            return False
        decision = self.sandbox.decide(path)
        return decision.allowed and decision.requires_approval

    # ─── Execution ─────────────────────────────────────────

    def execute(self, name: str, tool_input: Any, skip_approval_check: bool = False) -> ToolResult:
        """Execute a tool by name with the given input."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(output=f"Unknown tool: {name}", is_error=True)

        kwargs, error = self._validate(tool, tool_input)
        if error is not None:
            return ToolResult(output=error, is_error=True)

        ctx = ToolContext(
            sandbox=self.sandbox,
            fetcher=self.fetcher if name == "web_fetch" else self._fetcher,
            ignore_patterns=self._ignore_patterns,
            skip_approval_check=skip_approval_check,
        )
        try:
            result = tool.handler(ctx, **kwargs)
        except Exception as e:
            logger.warning("Tool handler crashed", extra={"tool_name": name}, exc_info=True)
            result = ToolResult(output=f"Tool execution error: {e}", is_error=True)

        if result.is_error:
            result = ToolResult(
                output=sanitize_error_path(result.output, self.sandbox.working_directory),
                is_error=True,
                requires_approval=result.requires_approval,
            )
        return result


def create_default_executor(
    sandbox: PathSandbox | None = None,
    fetcher: WebFetcher | None = None,
    ignore_patterns: list[str] | None = None,
) -> ToolExecutor:
    """Create a ToolExecutor with the five built-in tools."""
    executor = ToolExecutor(sandbox=sandbox, fetcher=fetcher, ignore_patterns=ignore_patterns)
    for tool in ALL_BUILTIN_TOOLS:
        executor.register(tool)
    return executor
