"""
clai Project Context Files

Two optional files in the working directory shape a session:

- .claicontext: free-form project notes appended to the system prompt.
- .claiignore: glob patterns (one per line, # comments) hiding paths
  from search_files.

Also home to the glob-to-regex translation shared by search_files and
the ignore predicate.
"""

from __future__ import annotations

import os
import re

from clai.logging import get_logger

logger = get_logger("clai.context_files")

CONTEXT_FILE = ".claicontext"
IGNORE_FILE = ".claiignore"


def glob_to_regex(pattern: str, case_insensitive: bool = False) -> re.Pattern[str]:
    """Compile a glob into an anchored regex.

    ``**`` matches across directories, ``*`` matches within one path
    component, ``?`` matches a single character.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif char == "*":
            parts.append("[^/]*")
            i += 1
        elif char == "?":
            parts.append(".")
            i += 1
        else:
            parts.append(re.escape(char))
            i += 1
    flags = re.IGNORECASE if case_insensitive else 0
    return re.compile("^" + "".join(parts) + "$", flags)


def load_context_file(working_directory: str | None = None) -> str | None:
    """Return the .claicontext block to append to the system prompt, if any."""
    path = os.path.join(working_directory or os.getcwd(), CONTEXT_FILE)
    if not os.path.isfile(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read().strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", CONTEXT_FILE, e)
        return None
    if not content:
        return None
    return f"\n\n## Project Context (from {CONTEXT_FILE})\n\n{content}"


def load_ignore_patterns(working_directory: str | None = None) -> list[str]:
    """Read .claiignore, skipping blank lines and comments."""
    path = os.path.join(working_directory or os.getcwd(), IGNORE_FILE)
    if not os.path.isfile(path):
        return []
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", IGNORE_FILE, e)
        return []
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def should_ignore(path: str, patterns: list[str]) -> bool:
    """True if a working-directory-relative path matches any ignore pattern.

    A pattern naming a directory also hides everything below it. Patterns
    without a slash are matched against the file name as well.
    """
    if not patterns:
        return False

    normalized = path.replace(os.sep, "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    name = normalized.rsplit("/", 1)[-1]

    for pattern in patterns:
        stripped = pattern.rstrip("/")
        if stripped.startswith("./"):
            stripped = stripped[2:]
        if not stripped:
            continue
        regex = glob_to_regex(stripped)
        if regex.match(normalized):
            return True
        if normalized.startswith(stripped + "/"):
            return True
        if "/" not in stripped and regex.match(name):
            return True
    return False
