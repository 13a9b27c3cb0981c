"""
clai Sandboxed Tool System

Every tool call from the model goes through the PathSandbox before it
touches the disk or the network:

    Model → tool_use → ToolRoundTripLoop (approval) → ToolExecutor → Sandbox → I/O

Components:
- PathSandbox: path policy bound to the working directory
- ToolExecutor: registration, argument validation, execution
- Built-in tools: read_file, list_dir, search_files, write_file, web_fetch
"""

from clai.tools.builtin import TOOL_DEFINITIONS
from clai.tools.definitions import RegisteredTool, ToolContext, ToolDefinition
from clai.tools.executor import ToolExecutor, create_default_executor
from clai.tools.sandbox import PathSandbox

__all__ = [
    "PathSandbox",
    "RegisteredTool",
    "TOOL_DEFINITIONS",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutor",
    "create_default_executor",
]
