"""
clai Stream Events

The canonical event vocabulary every chat turn emits, whatever provider
is behind it. The UI collaborator consumes these and nothing else.

Approval requests carry an ApprovalChannel: a single-use command channel
the round-trip loop blocks on until the caller posts a decision.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Literal, Union

from clai.core.models import ToolCallInfo


class ApprovalChannel:
    """Single-use decision channel between the loop and the approver.

    The first posted decision wins; later posts are ignored.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def post(self, approved: bool) -> None:
        if not self._future.done():
            self._future.set_result(bool(approved))

    async def wait(self, cancel: asyncio.Event | None = None) -> bool | None:
        """Block until a decision is posted.

        Returns None if the cancel event fires first.
        """
        if cancel is None:
            return await self._future
        if cancel.is_set() and not self._future.done():
            return None

        cancel_waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait(
                {self._future, cancel_waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_waiter.cancel()

        if self._future.done():
            return self._future.result()
        return None


@dataclass(frozen=True)
class TextDeltaEvent:
    text: str
    type: Literal["text_delta"] = "text_delta"


@dataclass(frozen=True)
class ToolStartEvent:
    tool: ToolCallInfo
    type: Literal["tool_start"] = "tool_start"


@dataclass(frozen=True)
class ToolDoneEvent:
    tool: ToolCallInfo
    type: Literal["tool_done"] = "tool_done"


@dataclass(frozen=True)
class ToolApprovalEvent:
    """Suspension point: the turn waits until approve() or deny() is called."""

    tool: ToolCallInfo
    channel: ApprovalChannel = field(repr=False, compare=False)
    type: Literal["tool_approve"] = "tool_approve"

    def approve(self) -> None:
        self.channel.post(True)

    def deny(self) -> None:
        self.channel.post(False)


@dataclass(frozen=True)
class WarningEvent:
    message: str
    type: Literal["warning"] = "warning"


StreamEvent = Union[TextDeltaEvent, ToolStartEvent, ToolDoneEvent, ToolApprovalEvent, WarningEvent]
