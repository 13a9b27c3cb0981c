"""
clai Streaming Session

The facade the UI talks to. A session owns one tool executor, one audit
log and one ClientFactory; ``stream_chat`` resolves the requested model
to a provider and returns a ChatTurn from the shared round-trip loop.

Credentials are checked when the factory is built (which providers are
usable) and again when a turn is requested (a clear error before any
network traffic), never in the middle of a stream.
"""

from __future__ import annotations

import asyncio

from clai.audit.audit_log import AuditLog
from clai.config import API_KEY_ENV_VARS, ClaiConfig, load_config, resolve_api_keys
from clai.context_files import load_context_file, load_ignore_patterns
from clai.core.models import ChatMessage
from clai.engine.loop import MAX_TOOL_ROUNDS, ChatTurn, ToolRoundTripLoop
from clai.engine.pricing import DEFAULT_MAX_TOKENS, detect_provider, get_model
from clai.exceptions import MissingAPIKeyError, UnknownModelError
from clai.logging import get_logger
from clai.providers.anthropic import AnthropicAdapter
from clai.providers.base import ProviderAdapter, ProviderConfig
from clai.providers.openai import GROQ_BASE_URL, OpenAIAdapter
from clai.tools.executor import ToolExecutor, create_default_executor
from clai.tools.sandbox import PathSandbox

logger = get_logger("clai.session")

DEFAULT_SYSTEM_PROMPT = (
    "You are clai, a helpful assistant running in the user's terminal. "
    "You can read, list, search and write files in the current working directory "
    "and fetch web pages using the provided tools. Be concise."
)

_DEFAULT_BASE_URLS: dict[str, str | None] = {
    "anthropic": None,
    "groq": GROQ_BASE_URL,
    "openai": None,
}


class ClientFactory:
    """Builds one adapter per provider that has credentials, exactly once."""

    def __init__(
        self,
        api_keys: dict[str, str] | None = None,
        configs: dict[str, ProviderConfig] | None = None,
        adapters: dict[str, ProviderAdapter] | None = None,
    ):
        self._adapters: dict[str, ProviderAdapter] = dict(adapters or {})
        keys = resolve_api_keys() if api_keys is None else api_keys
        configs = configs or {}

        for provider, key in keys.items():
            if provider in self._adapters or not key:
                continue
            if provider not in _DEFAULT_BASE_URLS:
                logger.warning("Ignoring key for unknown provider %s", provider)
                continue
            config = configs.get(provider) or ProviderConfig(base_url=_DEFAULT_BASE_URLS[provider])
            config = config.model_copy(update={"api_key": key})
            self._adapters[provider] = self._build(provider, config)

    @staticmethod
    def _build(provider: str, config: ProviderConfig) -> ProviderAdapter:
        if provider == "anthropic":
            return AnthropicAdapter(config)
        return OpenAIAdapter(config, name=provider)

    @property
    def providers(self) -> list[str]:
        return sorted(self._adapters)

    def has_provider(self, provider: str) -> bool:
        return provider in self._adapters

    def adapter_for(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            env_var = API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
            raise MissingAPIKeyError(provider, env_var)
        return adapter


class StreamingSession:
    """Entry point for chat turns.

    Args:
        factory: Client factory; built from the environment when omitted.
        config: User configuration; loaded from disk when omitted.
        working_directory: Sandbox root; the process cwd when omitted.
        audit: Audit log; the default path when omitted.
        executor: Tool executor; the five built-in tools when omitted.
    """

    def __init__(
        self,
        factory: ClientFactory | None = None,
        config: ClaiConfig | None = None,
        working_directory: str | None = None,
        audit: AuditLog | None = None,
        executor: ToolExecutor | None = None,
        max_rounds: int = MAX_TOOL_ROUNDS,
    ):
        self.config = config or load_config()
        self.factory = factory or ClientFactory()
        self.audit = audit or AuditLog()
        sandbox = PathSandbox(working_directory)
        self.executor = executor or create_default_executor(
            sandbox=sandbox,
            ignore_patterns=load_ignore_patterns(sandbox.working_directory),
        )
        self.working_directory = self.executor.sandbox.working_directory
        self.max_rounds = max_rounds
        self._loops: dict[str, ToolRoundTripLoop] = {}

    def resolve_model(self, model: str | None = None) -> tuple[str, str]:
        """Map a short name or model id to (model_id, provider)."""
        name = model or self.config.default_model
        info = get_model(name)
        if info is not None:
            return info.id, info.provider
        provider = detect_provider(name)
        if provider == "unknown":
            raise UnknownModelError(name)
        return name, provider

    def system_prompt(self, override: str | None = None) -> str:
        prompt = override or self.config.system_prompt or DEFAULT_SYSTEM_PROMPT
        context = load_context_file(self.working_directory)
        return prompt + context if context else prompt

    def _loop_for(self, provider: str) -> ToolRoundTripLoop:
        loop = self._loops.get(provider)
        if loop is None:
            loop = ToolRoundTripLoop(
                self.factory.adapter_for(provider),
                self.executor,
                audit=self.audit,
                permissions=self.config.tool_permission,
                max_rounds=self.max_rounds,
            )
            self._loops[provider] = loop
        return loop

    def stream_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatTurn:
        """Start a turn over ``messages`` (which is never modified).

        Raises UnknownModelError or MissingAPIKeyError before anything is sent.
        """
        model_id, provider = self.resolve_model(model)
        loop = self._loop_for(provider)
        logger.debug("Starting turn", extra={"provider": provider, "model": model_id})
        return loop.start(
            messages,
            model_id,
            max_tokens=max_tokens or self.config.max_tokens or DEFAULT_MAX_TOKENS,
            system_prompt=self.system_prompt(system_prompt),
            cancel=cancel,
        )

    def close(self) -> None:
        self.executor.close()
