"""
clai Audit Log

Append-only JSON-lines record of every security-relevant tool event:
each call the model makes, each approval, each denial and each access
to a sensitive file. One JSON object per line so the file can be
tailed, grepped or loaded by any JSON tool.

Properties:
- Append-only: entries are only ever added at the end of the file
- Private: the directory is created 0700 and the file 0600
- Non-fatal: a failed write is logged and otherwise ignored
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from clai.config import config_dir
from clai.logging import get_logger

logger = get_logger("clai.audit")

MAX_DETAILS_CHARS = 500
MAX_INPUT_VALUE_CHARS = 500


class AuditAction(str, Enum):
    TOOL_CALL = "tool_call"
    TOOL_APPROVED = "tool_approved"
    TOOL_DENIED = "tool_denied"
    SENSITIVE_FILE_ACCESS = "sensitive_file_access"


class AuditResult(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    DENIED = "denied"


class AuditEntry(BaseModel):
    """A single line of the audit log."""

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    action: AuditAction
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    result: AuditResult | None = None
    details: str | None = None


def default_audit_path() -> str:
    return os.path.join(config_dir(), "audit.log")


def _clip_input(tool_input: dict[str, Any]) -> dict[str, Any]:
    clipped: dict[str, Any] = {}
    for key, value in tool_input.items():
        if isinstance(value, str) and len(value) > MAX_INPUT_VALUE_CHARS:
            value = value[:MAX_INPUT_VALUE_CHARS] + f"... [{len(value)} chars]"
        clipped[key] = value
    return clipped


class AuditLog:
    """JSON-lines audit writer.

    Subscribers receive every entry after it is written. A failing
    subscriber is logged and never interrupts the caller.
    """

    def __init__(self, path: str | None = None):
        self.path = path or default_audit_path()
        self._subscribers: list[Callable[[AuditEntry], None]] = []

    def subscribe(self, callback: Callable[[AuditEntry], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[AuditEntry], None]) -> None:
        self._subscribers = [s for s in self._subscribers if s is not callback]

    def write(self, entry: AuditEntry) -> AuditEntry:
        """Stamp and append one entry. Never raises."""
        entry = entry.model_copy(
            update={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "input": _clip_input(entry.input),
                "details": entry.details[:MAX_DETAILS_CHARS] if entry.details else entry.details,
            }
        )
        line = json.dumps(entry.model_dump(mode="json", exclude_none=True), default=str)

        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, mode=0o700, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
            with os.fdopen(fd, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning(
                "Audit log write failed: %s",
                e,
                extra={"action": entry.action.value, "tool_name": entry.tool_name},
            )

        for callback in self._subscribers:
            try:
                callback(entry)
            except Exception:
                logger.warning("Audit subscriber failed", exc_info=True)
        return entry

    # ─── Convenience writers ───────────────────────────────

    def tool_call(self, tool_name: str, tool_input: dict[str, Any]) -> AuditEntry:
        return self.write(AuditEntry(action=AuditAction.TOOL_CALL, tool_name=tool_name, input=tool_input))

    def tool_approved(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        success: bool,
        details: str | None = None,
    ) -> AuditEntry:
        return self.write(
            AuditEntry(
                action=AuditAction.TOOL_APPROVED,
                tool_name=tool_name,
                input=tool_input,
                result=AuditResult.SUCCESS if success else AuditResult.ERROR,
                details=details,
            )
        )

    def tool_denied(self, tool_name: str, tool_input: dict[str, Any]) -> AuditEntry:
        return self.write(
            AuditEntry(
                action=AuditAction.TOOL_DENIED,
                tool_name=tool_name,
                input=tool_input,
                result=AuditResult.DENIED,
            )
        )

    def sensitive_file_access(self, tool_name: str, path: str, approved: bool) -> AuditEntry:
        return self.write(
            AuditEntry(
                action=AuditAction.SENSITIVE_FILE_ACCESS,
                tool_name=tool_name,
                input={"path": path},
                result=AuditResult.SUCCESS if approved else AuditResult.DENIED,
            )
        )

    def read_entries(self) -> list[AuditEntry]:
        """Load every parseable entry, oldest first."""
        try:
            with open(self.path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError:
            return []

        entries = []
        for line in lines:
            if not line.strip():
                continue
            try:
                entries.append(AuditEntry.model_validate_json(line))
            except ValueError:
                logger.debug("Skipping malformed audit line")
        return entries
