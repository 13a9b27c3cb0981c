"""Shared test fixtures for the clai test suite."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from clai.audit.audit_log import AuditLog
from clai.core.models import ChatMessage
from clai.providers.base import ProviderAdapter, ProviderConfig, RoundState, ToolCall, ToolOutcome
from clai.tools.builtin.web_fetch import WebFetcher
from clai.tools.executor import create_default_executor
from clai.tools.sandbox import PathSandbox


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Point every config, audit and conversation path at a throwaway directory."""
    config_home = tmp_path_factory.mktemp("xdg")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    for var in ("ANTHROPIC_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    return config_home


@pytest.fixture
def workdir(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def sandbox(workdir, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return PathSandbox(str(workdir), home=str(home))


def _offline_transport(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected network request to {request.url}")


@pytest.fixture
def offline_fetcher():
    fetcher = WebFetcher(
        transport=httpx.MockTransport(_offline_transport),
        resolver=lambda host: ["93.184.216.34"],
    )
    yield fetcher
    fetcher.close()


@pytest.fixture
def executor(sandbox, offline_fetcher):
    return create_default_executor(sandbox=sandbox, fetcher=offline_fetcher)


@pytest.fixture
def audit(tmp_path):
    return AuditLog(str(tmp_path / "audit" / "audit.log"))


# ─── Scripted provider ─────────────────────────────────────


def text(value: str) -> tuple:
    return ("text", value)


def tool(call_id: str, name: str, arguments: Any) -> tuple:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ("tool", call_id, name, raw)


def stop(reason: str) -> tuple:
    return ("stop", reason)


def usage(input_tokens: int, output_tokens: int) -> tuple:
    return ("usage", input_tokens, output_tokens)


class ScriptedAdapter(ProviderAdapter):
    """Provider adapter that replays canned rounds instead of calling an API.

    Each round is a list of chunk tuples built with text(), tool(), stop()
    and usage(), or an exception to raise when the stream is opened. When
    the script runs out the last round repeats.
    """

    name = "scripted"
    tool_use_stop_reason = "tool_use"

    def __init__(self, rounds: list[Any], chunk_delay: float = 0.0, open_delay: float = 0.0):
        super().__init__(ProviderConfig(max_retries=0, retry_initial_delay=0.0))
        self.rounds = rounds
        self.chunk_delay = chunk_delay
        self.open_delay = open_delay
        self.requests: list[list[dict]] = []
        self.tools_seen: list[list[dict] | None] = []
        self.system_prompts: list[str | None] = []
        self.closed = 0

    def translate_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    async def open_stream(self, messages, *, model, max_tokens, system_prompt=None, tools=None):
        index = min(len(self.requests), len(self.rounds) - 1)
        self.requests.append(list(messages))
        self.tools_seen.append(tools)
        self.system_prompts.append(system_prompt)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        script = self.rounds[index]
        if isinstance(script, BaseException):
            raise script
        return self._stream(script)

    async def _stream(self, script):
        for chunk in script:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk

    def parse_stream_chunk(self, chunk, state: RoundState):
        kind = chunk[0]
        if kind == "text":
            state.text += chunk[1]
            state.text_blocks[0] = state.text_blocks.get(0, "") + chunk[1]
            return chunk[1]
        if kind == "tool":
            state.tool_calls[len(state.tool_calls) + 1] = ToolCall(id=chunk[1], name=chunk[2], arguments=chunk[3])
        elif kind == "stop":
            state.stop_reason = chunk[1]
        elif kind == "usage":
            state.input_tokens += chunk[1]
            state.output_tokens += chunk[2]
        return None

    def format_assistant_message(self, state: RoundState) -> dict[str, Any]:
        return {
            "role": "assistant",
            "content": state.text,
            "tool_calls": [c.id for c in state.ordered_tool_calls()],
        }

    def format_tool_results(self, outcomes: list[ToolOutcome]) -> list[dict[str, Any]]:
        return [
            {"role": "tool", "id": o.call.id, "content": o.output, "is_error": o.is_error}
            for o in outcomes
        ]

    async def close_stream(self, stream) -> None:
        self.closed += 1
        await super().close_stream(stream)


@pytest.fixture
def script():
    """ScriptedAdapter plus the chunk builders, for tests that script a provider."""
    return SimpleNamespace(adapter=ScriptedAdapter, text=text, tool=tool, stop=stop, usage=usage)
