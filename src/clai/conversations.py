"""
clai Conversation Store

Saved conversations are JSON arrays of ChatMessage records, one file
per conversation under ``$XDG_CONFIG_HOME/clai/conversations``.
"""

from __future__ import annotations

import json
import os
import re
from datetime import datetime, timezone

from pydantic import TypeAdapter, ValidationError

from clai.config import config_dir
from clai.core.models import ChatMessage
from clai.logging import get_logger

logger = get_logger("clai.conversations")

_MESSAGES = TypeAdapter(list[ChatMessage])
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def default_conversations_dir() -> str:
    return os.path.join(config_dir(), "conversations")


def _slug(name: str) -> str:
    slug = _UNSAFE_NAME.sub("-", name.strip()).strip(".-")
    if not slug:
        raise ValueError(f"Invalid conversation name: {name!r}")
    return slug


class ConversationStore:
    """Save, load and list conversations on disk."""

    def __init__(self, directory: str | None = None):
        self.directory = directory or default_conversations_dir()

    def _path(self, slug: str) -> str:
        return os.path.join(self.directory, f"{slug}.json")

    def save(self, messages: list[ChatMessage], name: str | None = None) -> str:
        """Write the conversation and return its id."""
        slug = _slug(name) if name else datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        os.makedirs(self.directory, exist_ok=True)
        data = _MESSAGES.dump_python(messages, mode="json")
        with open(self._path(slug), "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2) + "\n")
        return slug

    def load(self, name: str) -> list[ChatMessage] | None:
        try:
            path = self._path(_slug(name))
        except ValueError:
            return None
        if not os.path.isfile(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return _MESSAGES.validate_json(f.read())
        except (OSError, ValidationError) as e:
            logger.warning("Could not load conversation %s: %s", name, e)
            return None

    def list(self) -> list[str]:
        """Conversation ids, newest name first."""
        try:
            names = os.listdir(self.directory)
        except OSError:
            return []
        return sorted((n[: -len(".json")] for n in names if n.endswith(".json")), reverse=True)
