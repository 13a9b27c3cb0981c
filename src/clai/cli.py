"""
clai CLI

Command-line interface for clai.

Commands:
    clai                      Interactive chat (REPL)
    clai ask "question"       One-shot question; stdin is appended when piped
    clai models               List known models
    clai audit [-n N]         Show the most recent audit log entries
    clai conversations        List saved conversations
    clai permissions          Show or set per-tool approval policy
    clai key PROVIDER         Store an API key in the private .env file

REPL commands: see HELP_TEXT.
"""

from __future__ import annotations

import asyncio
import base64
import os
import signal
import sys
import threading
from collections.abc import Callable
from typing import Any

import click

from clai import __version__
from clai.audit.audit_log import AuditLog
from clai.config import (
    API_KEY_ENV_VARS,
    add_lifetime_spend,
    load_config,
    save_config,
    save_key,
    set_tool_permission,
)
from clai.conversations import ConversationStore
from clai.core.events import (
    TextDeltaEvent,
    ToolApprovalEvent,
    ToolDoneEvent,
    ToolStartEvent,
    WarningEvent,
)
from clai.core.models import ChatMessage, ImageAttachment, TokenUsage, ToolCallInfo, ToolPermission
from clai.engine.pricing import MODELS, check_context_limit
from clai.exceptions import ClaiError, RateLimitError, TurnFailedError
from clai.logging import configure_logging
from clai.sanitize import sanitize_input, sanitize_output
from clai.session import StreamingSession
from clai.tools import TOOL_DEFINITIONS
from clai.tools.sandbox import PathSandbox

MAX_SYSTEM_PROMPT_CHARS = 10_000

IMAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

HELP_TEXT = """\
Available commands:
  /clear                  Clear conversation history
  /exit, /quit            Quit clai
  /help                   Show this help message
  /image <path> [text]    Send an image with an optional question
  /load <name>            Load a saved conversation
  /model [name]           Show or switch model
  /preset [name]          List presets or activate one
  /preset save <name>     Save the current system prompt as a preset
  /preset delete <name>   Remove a preset
  /save [name]            Save the conversation
  /system [prompt]        Show or set the system prompt
  /tokens                 Show token usage and cost

clai can also read, search, list and write files in the working directory."""


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="clai")
@click.option("--model", "-m", default=None, help="Model short name or id")
@click.option("--log-level", default="WARNING", help="Diagnostic log level (stderr)")
@click.option("--log-json", is_flag=True, help="Emit diagnostics as JSON lines")
@click.pass_context
def cli(ctx: click.Context, model: str | None, log_level: str, log_json: bool) -> None:
    """clai: a terminal AI assistant with sandboxed tools."""
    configure_logging(level=log_level, json_output=log_json)
    ctx.ensure_object(dict)
    ctx.obj["model"] = model
    if ctx.invoked_subcommand is None:
        _repl(model)


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--system", "system_prompt", default=None, help="System prompt for this question")
@click.pass_context
def ask(ctx: click.Context, prompt: tuple[str, ...], system_prompt: str | None) -> None:
    """Ask a single question and exit."""
    text = " ".join(prompt)
    if not sys.stdin.isatty():
        piped = sys.stdin.read()
        if piped.strip():
            text = f"{text}\n\n{piped}"
    session = _open_session()
    messages = [ChatMessage.user(sanitize_input(text))]
    try:
        asyncio.run(
            _run_turn(
                session,
                messages,
                ctx.obj.get("model"),
                interactive=sys.stdin.isatty(),
                system_prompt=system_prompt,
            )
        )
    finally:
        session.close()


@cli.command()
def models() -> None:
    """List the models clai knows by short name."""
    for short_name, info in MODELS.items():
        price = (
            "free tier"
            if info.input_price == 0 and info.output_price == 0
            else f"${info.input_price:.2f}/${info.output_price:.2f} per 1M tokens"
        )
        click.echo(f"{short_name:<10} {info.display_name:<24} {info.context_window:>8,} ctx  {price}")


@cli.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of entries")
def audit(count: int) -> None:
    """Show the most recent audit log entries."""
    log = AuditLog()
    entries = log.read_entries()[-count:]
    if not entries:
        click.echo(f"No audit entries in {log.path}")
        return
    for entry in entries:
        result = f" [{entry.result.value}]" if entry.result else ""
        click.echo(f"{entry.timestamp}  {entry.action.value:<22} {entry.tool_name}{result}")


@cli.command()
def conversations() -> None:
    """List saved conversations."""
    names = ConversationStore().list()
    if not names:
        click.echo("No saved conversations.")
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("tool", required=False, type=click.Choice([t["name"] for t in TOOL_DEFINITIONS]))
@click.argument("permission", required=False, type=click.Choice([p.value for p in ToolPermission]))
def permissions(tool: str | None, permission: str | None) -> None:
    """Show tool permissions, or set TOOL to always, ask or never."""
    if tool is not None and permission is not None:
        if not set_tool_permission(tool, ToolPermission(permission)):
            raise click.ClickException("Could not save config")
        click.echo(f"{tool}: {permission}")
        return
    if tool is not None:
        raise click.UsageError("Give both TOOL and PERMISSION to change a setting")

    config = load_config()
    for definition in TOOL_DEFINITIONS:
        click.echo(f"{definition['name']:<14} {config.tool_permission(definition['name']).value}")


@cli.command()
@click.argument("provider", type=click.Choice(sorted(API_KEY_ENV_VARS)))
def key(provider: str) -> None:
    """Store an API key for PROVIDER in clai's private .env file."""
    value = click.prompt(f"{API_KEY_ENV_VARS[provider]}", hide_input=True)
    if not value.strip():
        raise click.ClickException("Empty key, nothing saved")
    save_key(API_KEY_ENV_VARS[provider], value)
    click.echo(f"Saved {API_KEY_ENV_VARS[provider]}.")


# ─── Turn rendering ────────────────────────────────────────


def _open_session() -> StreamingSession:
    try:
        return StreamingSession()
    except ClaiError as e:
        raise click.ClickException(str(e)) from e


def _describe(tool: ToolCallInfo) -> str:
    target = tool.input.get("path") or tool.input.get("url") or tool.input.get("pattern") or ""
    return f"{tool.name}({target})" if target else tool.name


def _in_daemon_thread(func: Callable[..., Any], *args: Any, **kwargs: Any) -> asyncio.Future:
    """Run a blocking prompt on a daemon thread.

    Unlike asyncio.to_thread, an abandoned prompt does not keep the
    event loop from shutting down.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def settle(result: Any, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def target() -> None:
        try:
            outcome: tuple[Any, BaseException | None] = (func(*args, **kwargs), None)
        except Exception as e:
            outcome = (None, e)
        try:
            loop.call_soon_threadsafe(settle, *outcome)
        except RuntimeError:
            pass  # loop closed, nobody is waiting

    threading.Thread(target=target, daemon=True).start()
    return future


async def _confirm(tool: ToolCallInfo, interactive: bool, cancel: asyncio.Event) -> bool | None:
    """Ask the user about one tool call. Returns None if the turn was cancelled meanwhile."""
    if not interactive:
        click.secho(f"  Denied {_describe(tool)}: approval needs an interactive terminal", fg="yellow", err=True)
        return False

    answer = _in_daemon_thread(click.confirm, f"  Allow {_describe(tool)}?", default=False, err=True)
    cancel_waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({answer, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_waiter.cancel()

    if not answer.done():
        answer.cancel()
        return None
    try:
        return bool(answer.result())
    except (click.Abort, EOFError):
        return False


async def _run_turn(
    session: StreamingSession,
    messages: list[ChatMessage],
    model: str | None,
    interactive: bool = True,
    system_prompt: str | None = None,
    cancel: asyncio.Event | None = None,
) -> tuple[ChatMessage | None, TokenUsage]:
    """Stream one turn to the terminal. Returns the reply to keep and its usage."""
    cancel = cancel or asyncio.Event()
    try:
        turn = session.stream_chat(messages, model, system_prompt=system_prompt, cancel=cancel)
    except ClaiError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        return None, TokenUsage()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False

    try:
        async for event in turn:
            if isinstance(event, TextDeltaEvent):
                click.echo(sanitize_output(event.text), nl=False)
            elif isinstance(event, ToolStartEvent):
                click.secho(f"\n  > {_describe(event.tool)}", dim=True, err=True)
            elif isinstance(event, ToolDoneEvent):
                status = "error" if event.tool.is_error else "ok"
                click.secho(f"  < {_describe(event.tool)} [{status}]", dim=True, err=True)
            elif isinstance(event, ToolApprovalEvent):
                approved = await _confirm(event.tool, interactive, cancel)
                if approved is True:
                    event.approve()
                elif approved is False:
                    event.deny()
            elif isinstance(event, WarningEvent):
                click.secho(f"\n  ! {event.message}", fg="yellow", err=True)
    except (TurnFailedError, RateLimitError) as e:
        click.secho(f"\nError: {e}", fg="red", err=True)
        usage = e.usage or TokenUsage()
        add_lifetime_spend(usage.total_cost)
        reply = ChatMessage.assistant(e.partial_text, segments=e.segments) if e.partial_text else None
        return reply, usage
    except ClaiError as e:
        click.secho(f"\nError: {e}", fg="red", err=True)
        add_lifetime_spend(turn.usage.total_cost)
        return None, turn.usage
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    click.echo()
    if turn.cancel.is_set():
        click.secho("  (cancelled)", dim=True, err=True)
    add_lifetime_spend(turn.usage.total_cost)
    return turn.to_message(), turn.usage


def load_image(sandbox: PathSandbox, path: str) -> ImageAttachment:
    """Read an image from the working directory as a base64 attachment.

    Raises ValueError with a user-facing message.
    """
    decision = sandbox.decide(path)
    if not decision.allowed:
        raise ValueError(decision.reason or "Access denied")
    full_path = sandbox.resolve(path)
    if not os.path.isfile(full_path):
        raise ValueError(f"File not found: {path}")
    ext = os.path.splitext(full_path)[1].lower()
    media_type = IMAGE_MEDIA_TYPES.get(ext)
    if media_type is None:
        raise ValueError(f"Unsupported image format: {ext or path}. Use .jpg, .png, .gif or .webp")
    try:
        with open(full_path, "rb") as f:
            data = base64.b64encode(f.read()).decode("ascii")
    except OSError as e:
        raise ValueError(f"Failed to read image file: {e}") from e
    return ImageAttachment(data=data, media_type=media_type)


# ─── REPL ──────────────────────────────────────────────────


class _Repl:
    """Interactive chat state: history, model, system prompt and running token totals."""

    def __init__(self, session: StreamingSession, model: str):
        self.session = session
        self.store = ConversationStore()
        self.model = model
        self.system_prompt: str | None = session.config.system_prompt
        self.history: list[ChatMessage] = []
        self.usage = TokenUsage()

    def _error(self, message: str) -> None:
        click.secho(message, fg="red", err=True)

    def command(self, line: str) -> bool | ChatMessage:
        """Handle a slash command.

        Returns False when the REPL should exit, or a user message to send.
        """
        command, _, arg = line.partition(" ")
        arg = arg.strip()

        if command in ("/exit", "/quit"):
            return False
        if command == "/help":
            click.echo(HELP_TEXT)
        elif command == "/clear":
            self.history, self.usage = [], TokenUsage()
            click.echo("Conversation cleared.")
        elif command == "/save":
            try:
                click.echo(f"Saved as {self.store.save(self.history, arg or None)}")
            except (OSError, ValueError) as e:
                self._error(f"Could not save: {e}")
        elif command == "/load":
            loaded = self.store.load(arg) if arg else None
            if loaded is None:
                self._error(f"No conversation named {arg!r}")
            else:
                self.history = loaded
                click.echo(f"Loaded {len(loaded)} messages.")
        elif command == "/model":
            if arg:
                try:
                    self.session.resolve_model(arg)
                except ClaiError as e:
                    self._error(str(e))
                    return True
                self.model = arg
            click.echo(f"Model: {self.model}")
        elif command == "/tokens":
            click.echo(
                f"Tokens: {self.usage.input_tokens:,} in / {self.usage.output_tokens:,} out, "
                f"cost ${self.usage.total_cost:.4f}"
            )
        elif command == "/system":
            self._system(arg)
        elif command == "/preset":
            self._preset(arg)
        elif command == "/image":
            path, _, question = arg.partition(" ")
            if not path:
                self._error("Usage: /image <path> [question]")
                return True
            try:
                image = load_image(self.session.executor.sandbox, path)
            except ValueError as e:
                self._error(str(e))
                return True
            return ChatMessage.user(question.strip() or "What's in this image?", images=[image])
        else:
            self._error(f"Unknown command: {command}. Type /help for a list.")
        return True

    def _system(self, prompt: str) -> None:
        if not prompt:
            if self.system_prompt:
                click.echo(f'System prompt: "{self.system_prompt}"')
            else:
                click.echo("No system prompt set. Usage: /system <prompt>")
            return
        if len(prompt) > MAX_SYSTEM_PROMPT_CHARS:
            self._error(f"System prompt too long (max {MAX_SYSTEM_PROMPT_CHARS:,} characters).")
            return
        self.system_prompt = prompt
        click.echo(f'System prompt set: "{prompt}"')

    def _preset(self, arg: str) -> None:
        action, _, name = arg.partition(" ")
        name = name.strip()
        config = load_config()

        if not arg:
            if not config.presets:
                click.echo("No presets saved. Use /preset save <name> to save the current system prompt.")
            for preset_name, prompt in sorted(config.presets.items()):
                click.echo(f'  {preset_name}: "{prompt}"')
            return

        if action in ("save", "delete"):
            if not name:
                self._error(f"Usage: /preset {action} <name>")
                return
            presets = dict(config.presets)
            if action == "save":
                if not self.system_prompt:
                    self._error("No system prompt set. Use /system first.")
                    return
                presets[name] = self.system_prompt
            elif presets.pop(name, None) is None:
                self._error(f'Preset "{name}" not found.')
                return
            if save_config(config.model_copy(update={"presets": presets})):
                self.session.config.presets = presets
                click.echo(f'Preset "{name}" {"saved" if action == "save" else "deleted"}.')
            else:
                self._error("Could not save config")
            return

        prompt = config.presets.get(arg)
        if prompt is None:
            self._error(f'Preset "{arg}" not found. Use /preset to list.')
            return
        self.system_prompt = prompt
        click.echo(f'Activated preset "{arg}": "{prompt}"')

    async def chat(self, message: ChatMessage) -> None:
        messages = [*self.history, message]
        reply, usage = await _run_turn(self.session, messages, self.model, system_prompt=self.system_prompt)
        self.history = [*messages, reply] if reply is not None else messages
        self.usage = self.usage + usage

        warning = check_context_limit(self.model, usage.input_tokens + usage.output_tokens)
        if warning:
            click.secho(f"  ! {warning}", fg="yellow", err=True)

    async def run(self) -> None:
        click.secho(f"clai {__version__}  model: {self.model}  (type /help for commands)", bold=True)
        while True:
            try:
                line = await asyncio.to_thread(click.prompt, "", prompt_suffix="> ", default="", show_default=False)
            except (EOFError, click.Abort):
                break
            line = sanitize_input(line).strip()
            if not line:
                continue
            if line.startswith("/"):
                outcome = self.command(line)
                if outcome is False:
                    break
                if isinstance(outcome, ChatMessage):
                    await self.chat(outcome)
                continue
            await self.chat(ChatMessage.user(line))


def _repl(model: str | None) -> None:
    session = _open_session()
    repl = _Repl(session, model or session.config.default_model)
    try:
        asyncio.run(repl.run())
    except KeyboardInterrupt:
        click.echo()
    finally:
        session.close()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
