"""
clai Built-in Tools

The five tools exposed to the model, in catalog order.
"""

from clai.tools.builtin.file_ops import LIST_DIR_TOOL, READ_FILE_TOOL, SEARCH_FILES_TOOL, WRITE_FILE_TOOL
from clai.tools.builtin.web_fetch import WEB_FETCH_TOOL

ALL_BUILTIN_TOOLS = [
    READ_FILE_TOOL,
    LIST_DIR_TOOL,
    SEARCH_FILES_TOOL,
    WRITE_FILE_TOOL,
    WEB_FETCH_TOOL,
]

TOOL_DEFINITIONS = [tool.definition.to_schema() for tool in ALL_BUILTIN_TOOLS]

__all__ = [
    "ALL_BUILTIN_TOOLS",
    "LIST_DIR_TOOL",
    "READ_FILE_TOOL",
    "SEARCH_FILES_TOOL",
    "TOOL_DEFINITIONS",
    "WEB_FETCH_TOOL",
    "WRITE_FILE_TOOL",
]
