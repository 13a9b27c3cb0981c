"""
clai Custom Exceptions

Structured exception hierarchy for clai. Tool failures and policy
denials are never raised; they travel back to the model as error
tool results. Only the failures below escape the public API.

Exception hierarchy:
    ClaiError
    +-- ConfigurationError       (bad or missing local setup)
    |   +-- UnknownModelError    (model name maps to no provider)
    |   +-- MissingAPIKeyError   (provider credentials absent)
    +-- ProviderError            (LLM provider failure)
    |   +-- RateLimitError       (HTTP 429, carries retry-after)
    +-- TurnFailedError          (fatal failure mid-turn, carries partial output)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clai.core.models import Segment, TokenUsage


class ClaiError(Exception):
    """Base exception for all clai errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ClaiError):
    """Raised when local configuration prevents a turn from starting."""


class UnknownModelError(ConfigurationError):
    """Raised when a model name cannot be mapped to any provider."""

    def __init__(self, model: str, details: dict | None = None):
        super().__init__(
            f"Unknown model: {model}",
            details={"model": model, **(details or {})},
        )
        self.model = model


class MissingAPIKeyError(ConfigurationError):
    """Raised when the provider for a model has no credentials configured."""

    def __init__(self, provider: str, env_var: str, details: dict | None = None):
        super().__init__(
            f"{env_var} is not set. Export it or run `clai key {provider}` to store it.",
            details={"provider": provider, "env_var": env_var, **(details or {})},
        )
        self.provider = provider
        self.env_var = env_var


class ProviderError(ClaiError):
    """Base exception for LLM provider errors."""

    def __init__(self, provider_name: str, message: str, details: dict | None = None):
        super().__init__(
            f"Provider '{provider_name}' error: {message}",
            details={"provider_name": provider_name, **(details or {})},
        )
        self.provider_name = provider_name


class RateLimitError(ProviderError):
    """Raised when a provider rejects a request with HTTP 429.

    Raised out of a chat turn, it also carries whatever the earlier
    rounds produced, like TurnFailedError.
    """

    def __init__(
        self,
        provider_name: str,
        message: str = "Rate limit exceeded",
        retry_after: float | None = None,
        details: dict | None = None,
        *,
        partial_text: str = "",
        usage: TokenUsage | None = None,
        segments: list[Segment] | None = None,
        rounds: int = 0,
    ):
        super().__init__(
            provider_name,
            message,
            details={"retry_after": retry_after, "rounds": rounds, **(details or {})},
        )
        self.retry_after = retry_after
        self.partial_text = partial_text
        self.usage = usage
        self.segments = list(segments or [])
        self.rounds = rounds


class TurnFailedError(ClaiError):
    """Raised out of a chat turn when the provider call fails for good.

    Whatever the turn produced before failing is preserved so callers
    can still show and persist it.
    """

    def __init__(
        self,
        message: str,
        *,
        partial_text: str = "",
        usage: TokenUsage | None = None,
        segments: list[Segment] | None = None,
        rounds: int = 0,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            details={"rounds": rounds, "partial_chars": len(partial_text), **(details or {})},
        )
        self.partial_text = partial_text
        self.usage = usage
        self.segments = list(segments or [])
        self.rounds = rounds
