"""File operation tools: read_file, list_dir, search_files, write_file.

Every handler asks the sandbox before touching the disk. Paths are
relative to the sandbox's working directory and are echoed back in that
relative form.
"""

from __future__ import annotations

import os

from clai.context_files import glob_to_regex, should_ignore
from clai.core.models import ToolResult
from clai.tools.definitions import RegisteredTool, ToolContext, ToolDefinition

SEARCH_MAX_DEPTH = 5
SEARCH_MAX_RESULTS = 50
SEARCH_SKIP_DIRS = frozenset({"node_modules", ".git", "dist"})


# ─── Handlers ──────────────────────────────────────────────


def _read_file(ctx: ToolContext, path: str) -> ToolResult:
    """Read a text file inside the working directory."""
    sandbox = ctx.sandbox
    decision = sandbox.decide(path)
    if not decision.allowed:
        return ToolResult(output=decision.reason or "Access denied", is_error=True)

    rel = sandbox.relative(path)
    if decision.requires_approval and not ctx.skip_approval_check:
        return ToolResult(output=f"Approval required to read {rel}", requires_approval=True)

    size = sandbox.check_size(path)
    if not size.allowed:
        return ToolResult(output=size.reason or "File too large", is_error=True)

    try:
        with open(sandbox.resolve(path), encoding="utf-8", errors="replace") as f:
            content = f.read()
    except OSError as e:
        return ToolResult(output=f"Error reading file: {e}", is_error=True)
    return ToolResult(output=f"File: {rel}\n\n{content}")


def _list_dir(ctx: ToolContext, path: str = ".") -> ToolResult:
    """List the direct children of a directory, directories suffixed with '/'."""
    sandbox = ctx.sandbox
    decision = sandbox.decide(path)
    if not decision.allowed:
        return ToolResult(output=decision.reason or "Access denied", is_error=True)

    absolute = sandbox.resolve(path)
    try:
        entries = sorted(os.listdir(absolute))
    except OSError as e:
        return ToolResult(output=f"Error listing directory: {e}", is_error=True)

    lines = []
    for entry in entries:
        full = os.path.join(absolute, entry)
        lines.append(f"{entry}/" if os.path.isdir(full) else entry)

    return ToolResult(output=f"Directory: {sandbox.relative(path)}\n\n" + "\n".join(lines))


def _search_files(ctx: ToolContext, pattern: str, path: str = ".") -> ToolResult:
    """Recursively find files whose name (or relative path) matches a glob."""
    sandbox = ctx.sandbox
    decision = sandbox.decide(path)
    if not decision.allowed:
        return ToolResult(output=decision.reason or "Access denied", is_error=True)

    root = sandbox.resolve(path)
    regex = glob_to_regex(pattern, case_insensitive=True)
    match_path = "/" in pattern
    matches: list[str] = []

    def walk(directory: str, depth: int) -> None:
        if depth > SEARCH_MAX_DEPTH or len(matches) >= SEARCH_MAX_RESULTS:
            return
        try:
            entries = sorted(os.listdir(directory))
        except OSError:
            return

        for entry in entries:
            if len(matches) >= SEARCH_MAX_RESULTS:
                return
            if entry in SEARCH_SKIP_DIRS:
                continue

            full = os.path.join(directory, entry)
            if not sandbox.decide(full).allowed:
                continue
            rel_to_cwd = os.path.relpath(full, sandbox.working_directory)
            if should_ignore(rel_to_cwd, ctx.ignore_patterns):
                continue

            if os.path.isdir(full):
                walk(full, depth + 1)
                continue

            subject = os.path.relpath(full, root).replace(os.sep, "/") if match_path else entry
            if regex.match(subject):
                matches.append(rel_to_cwd)

    walk(root, 0)

    if not matches:
        return ToolResult(output=f'No files matching "{pattern}" found.')
    return ToolResult(output=f"Found {len(matches)} file(s):\n\n" + "\n".join(matches))


def _write_file(ctx: ToolContext, path: str, content: str) -> ToolResult:
    """Create or overwrite a file, creating parent directories as needed."""
    sandbox = ctx.sandbox
    decision = sandbox.decide(path)
    if not decision.allowed:
        return ToolResult(output=decision.reason or "Access denied", is_error=True)

    if not sandbox.is_descendant(path):
        return ToolResult(output="Access denied: cannot write outside working directory", is_error=True)

    absolute = sandbox.resolve(path)
    try:
        os.makedirs(os.path.dirname(absolute), exist_ok=True)
        with open(absolute, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        return ToolResult(output=f"Error writing file: {e}", is_error=True)
    return ToolResult(output=f"Written: {sandbox.relative(path)} ({len(content)} chars)")


# ─── Definitions ───────────────────────────────────────────


READ_FILE_TOOL = RegisteredTool(
    definition=ToolDefinition(
        name="read_file",
        description=(
            "Read the contents of a file. Path is relative to the working directory. "
            "Cannot read sensitive files (.env, keys, credentials) or files outside "
            "the working directory."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Relative path to the file to read",
                },
            },
            "required": ["path"],
        },
    ),
    handler=_read_file,
)

LIST_DIR_TOOL = RegisteredTool(
    definition=ToolDefinition(
        name="list_dir",
        description=(
            "List files and directories at the given path. Path is relative to the "
            "working directory. Returns file names with type indicators (/ for directories)."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Relative path to the directory to list (default: current directory)",
                },
            },
            "required": [],
        },
    ),
    handler=_list_dir,
)

SEARCH_FILES_TOOL = RegisteredTool(
    definition=ToolDefinition(
        name="search_files",
        description=(
            "Search for files matching a pattern in the working directory. "
            "Returns relative file paths."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "File name pattern to search for (e.g. '*.py', 'pyproject.toml')",
                },
                "path": {
                    "type": "string",
                    "description": "Directory to search in, relative to working directory (default: current directory)",
                },
            },
            "required": ["pattern"],
        },
    ),
    handler=_search_files,
)

WRITE_FILE_TOOL = RegisteredTool(
    definition=ToolDefinition(
        name="write_file",
        description=(
            "Write content to a file. Path is relative to the working directory. "
            "Cannot write to sensitive files or outside the working directory. "
            "Use this to create new files or overwrite existing ones."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Relative path to the file to write",
                },
                "content": {
                    "type": "string",
                    "description": "Content to write to the file",
                },
            },
            "required": ["path", "content"],
        },
    ),
    handler=_write_file,
    read_only=False,
)
