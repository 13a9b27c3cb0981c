"""
clai Tool Round-Trip Loop

The single state machine that drives a chat turn for every provider:

    STREAMING → AWAITING_APPROVAL → EXECUTING_TOOLS → STREAMING | DONE

Each round streams one model response through the provider adapter,
then walks the tool calls it produced in provider order: audit, vet,
ask the user where required, execute, and feed the results back. The
turn ends when the model stops asking for tools, when the round limit
runs out (with a warning), on cancellation, or on a fatal error.

A ChatTurn is an async iterator of stream events. Its ``result`` is
available once iteration finishes.

Usage:
    turn = loop.start(messages, model="claude-haiku-4-5-20251001")
    async for event in turn:
        if isinstance(event, ToolApprovalEvent):
            event.approve()
    print(turn.result.text)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

from clai.audit.audit_log import AuditLog
from clai.core.events import (
    ApprovalChannel,
    StreamEvent,
    TextDeltaEvent,
    ToolApprovalEvent,
    ToolDoneEvent,
    ToolStartEvent,
    WarningEvent,
)
from clai.core.models import (
    ChatMessage,
    Segment,
    StreamResult,
    TextSegment,
    TokenUsage,
    ToolCallInfo,
    ToolPermission,
    ToolSegment,
)
from clai.engine.pricing import calculate_cost, lookup_pricing
from clai.exceptions import RateLimitError, TurnFailedError
from clai.logging import get_logger
from clai.providers.base import ProviderAdapter, RoundState, ToolCall, ToolOutcome
from clai.providers.retry import RetryOptions, check_rate_limit, retry_with_backoff
from clai.tools.executor import ToolExecutor

logger = get_logger("clai.engine.loop")

MAX_TOOL_ROUNDS = 10

PermissionLookup = Callable[[str], ToolPermission]
ApprovalDecider = Callable[[ToolCallInfo], "bool | Awaitable[bool]"]

_CANCELLED = object()
_END = object()


class TurnState(str, Enum):
    STREAMING = "streaming"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


async def _until_cancelled(awaitable: Awaitable[Any], cancel: asyncio.Event) -> Any:
    """Await ``awaitable``, abandoning it as soon as the cancel event fires.

    Returns _CANCELLED when abandoned; otherwise the result, or the
    awaitable's own exception.
    """
    task = asyncio.ensure_future(awaitable)
    if cancel.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return _CANCELLED

    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_task.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled():
        return _CANCELLED
    return task.result()


async def _next_chunk(iterator: AsyncIterator[Any], cancel: asyncio.Event) -> Any:
    """Await the next chunk, giving up as soon as the cancel event fires."""
    try:
        return await _until_cancelled(iterator.__anext__(), cancel)
    except StopAsyncIteration:
        return _END


class ChatTurn:
    """One user turn: an async iterator of StreamEvents plus the final result."""

    def __init__(self, loop: ToolRoundTripLoop, messages: list[ChatMessage], **options: Any):
        self.state = TurnState.STREAMING
        self.text = ""
        self.segments: list[Segment] = []
        self.usage = TokenUsage()
        self.rounds = 0
        self.result: StreamResult | None = None
        self.cancel: asyncio.Event = options.pop("cancel", None) or asyncio.Event()
        self._events = loop._run(self, list(messages), **options)

    def __aiter__(self) -> ChatTurn:
        return self

    async def __anext__(self) -> StreamEvent:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        await self._events.aclose()

    def cancel_turn(self) -> None:
        self.cancel.set()

    @property
    def finished(self) -> bool:
        return self.state in (TurnState.DONE, TurnState.CANCELLED, TurnState.FAILED)

    def to_message(self) -> ChatMessage | None:
        """The assistant message to append to history, if the turn produced one."""
        return self.result.to_message() if self.result is not None else None

    async def collect(self, decide: ApprovalDecider | None = None) -> StreamResult | None:
        """Drive the turn to completion, answering approvals with ``decide``.

        Without a decider every approval request is denied.
        """
        async for event in self:
            if isinstance(event, ToolApprovalEvent):
                approved = decide(event.tool) if decide is not None else False
                if inspect.isawaitable(approved):
                    approved = await approved
                if approved:
                    event.approve()
                else:
                    event.deny()
        return self.result

    # ─── Accumulation ──────────────────────────────────────

    def _append_text(self, delta: str) -> None:
        self.text += delta
        if self.segments and isinstance(self.segments[-1], TextSegment):
            self.segments[-1].content += delta
        else:
            self.segments.append(TextSegment(content=delta))

    def _snapshot(self) -> StreamResult:
        return StreamResult(
            text=self.text,
            usage=self.usage,
            segments=[s.model_copy() for s in self.segments],
            rounds=self.rounds,
        )

    def _finish_cancelled(self) -> None:
        self.state = TurnState.CANCELLED
        self.segments = [s for s in self.segments if not (isinstance(s, ToolSegment) and s.is_open)]
        if self.text or self.segments:
            self.result = self._snapshot()


class ToolRoundTripLoop:
    """Shared streaming tool loop, parameterized by a provider adapter."""

    def __init__(
        self,
        adapter: ProviderAdapter,
        executor: ToolExecutor,
        audit: AuditLog | None = None,
        permissions: PermissionLookup | None = None,
        max_rounds: int = MAX_TOOL_ROUNDS,
        retry_options: RetryOptions | None = None,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.adapter = adapter
        self.executor = executor
        self.audit = audit or AuditLog()
        self.permissions = permissions or (lambda _name: ToolPermission.ASK)
        self.max_rounds = max_rounds
        self.retry_options = retry_options or RetryOptions(
            max_retries=adapter.config.max_retries,
            initial_delay=adapter.config.retry_initial_delay,
        )

    def start(
        self,
        messages: list[ChatMessage],
        model: str,
        *,
        max_tokens: int = 8192,
        system_prompt: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatTurn:
        """Begin a turn. Nothing is sent until the turn is iterated."""
        return ChatTurn(
            self,
            messages,
            model=model,
            max_tokens=max_tokens,
            system_prompt=system_prompt,
            cancel=cancel,
        )

    def _needs_approval(self, name: str, tool_input: dict[str, Any], permission: ToolPermission) -> tuple[bool, bool]:
        """Return (needs_approval, is_sensitive_read)."""
        if permission == ToolPermission.ALWAYS:
            return False, False
        sensitive = self.executor.requires_approval(name, tool_input)
        tool = self.executor.get(name)
        mutating = tool is not None and not tool.read_only
        return sensitive or mutating, sensitive

    # ─── Turn driver ───────────────────────────────────────

    async def _run(
        self,
        turn: ChatTurn,
        messages: list[ChatMessage],
        *,
        model: str,
        max_tokens: int,
        system_prompt: str | None,
    ) -> AsyncIterator[StreamEvent]:
        adapter = self.adapter
        cancel = turn.cancel
        log_extra = {"provider": adapter.name, "model": model}

        if lookup_pricing(model) is None:
            logger.warning("No pricing data for model; cost reported as zero", extra=log_extra)
            yield WarningEvent(f"No pricing data for model {model}; cost will be reported as $0.00.")

        history = adapter.translate_messages(messages)
        tools = self.executor.get_schemas()

        try:
            for round_index in range(self.max_rounds):
                if cancel.is_set():
                    turn._finish_cancelled()
                    return

                turn.rounds = round_index + 1
                turn.state = TurnState.STREAMING
                logger.debug("Round started", extra={**log_extra, "round": turn.rounds})

                state = RoundState()
                round_history = history
                stream = await _until_cancelled(
                    retry_with_backoff(
                        lambda: adapter.open_stream(
                            round_history,
                            model=model,
                            max_tokens=max_tokens,
                            system_prompt=system_prompt,
                            tools=tools,
                        ),
                        self.retry_options,
                        cancel=cancel,
                    ),
                    cancel,
                )
                if stream is _CANCELLED:
                    turn._finish_cancelled()
                    return

                cancelled = False
                try:
                    iterator = stream.__aiter__()
                    while True:
                        chunk = await _next_chunk(iterator, cancel)
                        if chunk is _END:
                            break
                        if chunk is _CANCELLED:
                            cancelled = True
                            break
                        delta = adapter.parse_stream_chunk(chunk, state)
                        if delta:
                            turn._append_text(delta)
                            yield TextDeltaEvent(delta)
                finally:
                    await adapter.close_stream(stream)
                    turn.usage = turn.usage + TokenUsage(
                        input_tokens=state.input_tokens,
                        output_tokens=state.output_tokens,
                        total_cost=calculate_cost(model, state.input_tokens, state.output_tokens),
                    )

                if cancelled or cancel.is_set():
                    turn._finish_cancelled()
                    return

                calls = state.ordered_tool_calls()
                logger.debug(
                    "Round finished with %d tool call(s), stop reason %s",
                    len(calls),
                    state.stop_reason,
                    extra={**log_extra, "round": turn.rounds},
                )
                if not calls or not adapter.is_tool_use_stop(state):
                    break

                outcomes: list[ToolOutcome] = []
                for call in calls:
                    async for event in self._handle_tool_call(turn, call, outcomes):
                        yield event
                    if turn.state == TurnState.CANCELLED:
                        return

                history = [
                    *history,
                    adapter.format_assistant_message(state),
                    *adapter.format_tool_results(outcomes),
                ]

                if round_index == self.max_rounds - 1:
                    logger.warning("Tool round limit reached", extra={**log_extra, "round": turn.rounds})
                    yield WarningEvent(
                        f"Reached maximum tool call rounds ({self.max_rounds}). "
                        "Response may be incomplete."
                    )

        except Exception as e:
            if cancel.is_set():
                logger.debug("Turn cancelled while the request failed: %s", e, extra=log_extra)
                turn._finish_cancelled()
                return

            turn.state = TurnState.FAILED
            rate_limit = check_rate_limit(e)
            if rate_limit.is_rate_limited:
                wait = f"Wait {rate_limit.retry_after:g} seconds" if rate_limit.retry_after else "Try again later"
                logger.warning("Rate limited by provider", extra=log_extra)
                yield WarningEvent(f"Rate limit exceeded. {wait}. {rate_limit.message}")
                raise RateLimitError(
                    adapter.name,
                    rate_limit.message or "Rate limit exceeded",
                    retry_after=rate_limit.retry_after,
                    partial_text=turn.text,
                    usage=turn.usage,
                    segments=[s.model_copy() for s in turn.segments],
                    rounds=turn.rounds,
                ) from e

            logger.error("Turn failed: %s", e, extra=log_extra)
            raise TurnFailedError(
                f"Chat turn failed: {e}",
                partial_text=turn.text,
                usage=turn.usage,
                segments=[s.model_copy() for s in turn.segments],
                rounds=turn.rounds,
            ) from e

        turn.state = TurnState.DONE
        turn.result = turn._snapshot()

    async def _handle_tool_call(
        self,
        turn: ChatTurn,
        call: ToolCall,
        outcomes: list[ToolOutcome],
    ) -> AsyncIterator[StreamEvent]:
        """Vet, approve and execute one tool call, appending its outcome."""
        tool_input, parse_error = call.parse_arguments()
        shown_input = tool_input if tool_input is not None else {}
        segment = ToolSegment(name=call.name, input=shown_input)
        turn.segments.append(segment)
        self.audit.tool_call(call.name, shown_input)

        def finish(model_output: str, is_error: bool, display: str | None = None) -> ToolDoneEvent:
            segment.output = display if display is not None else model_output
            segment.is_error = is_error
            outcomes.append(ToolOutcome(call=call, output=model_output, is_error=is_error))
            return ToolDoneEvent(
                ToolCallInfo(name=call.name, input=shown_input, output=segment.output, is_error=is_error)
            )

        if parse_error is not None:
            logger.warning("Malformed tool arguments", extra={"tool_name": call.name})
            yield finish(f"Invalid input for tool \"{call.name}\": {parse_error}", True)
            return

        permission = self.permissions(call.name)
        if permission == ToolPermission.NEVER:
            self.audit.tool_denied(call.name, tool_input)
            yield finish(
                f"Tool \"{call.name}\" is disabled by user configuration.",
                True,
                display="Disabled by configuration",
            )
            return

        needs_approval, sensitive = self._needs_approval(call.name, tool_input, permission)
        if needs_approval:
            turn.state = TurnState.AWAITING_APPROVAL
            channel = ApprovalChannel()
            yield ToolApprovalEvent(ToolCallInfo(name=call.name, input=tool_input), channel)

            approved = await channel.wait(turn.cancel)
            if approved is None:
                turn._finish_cancelled()
                return

            path = tool_input.get("path")
            if not approved:
                logger.warning("Tool call denied by user", extra={"tool_name": call.name, "action": "deny"})
                self.audit.tool_denied(call.name, tool_input)
                if sensitive and isinstance(path, str):
                    self.audit.sensitive_file_access(call.name, path, approved=False)
                action = "read" if call.name == "read_file" else "write"
                yield finish(f"User denied this file {action}.", True, display="Denied by user")
                return

            if sensitive and isinstance(path, str):
                self.audit.sensitive_file_access(call.name, path, approved=True)

        turn.state = TurnState.EXECUTING_TOOLS
        yield ToolStartEvent(ToolCallInfo(name=call.name, input=tool_input))

        result = await asyncio.to_thread(self.executor.execute, call.name, tool_input, True)
        self.audit.tool_approved(call.name, tool_input, success=not result.is_error, details=result.output)
        yield finish(result.output, result.is_error)
