"""
clai Provider Adapters

Provider-agnostic streaming interface for the round-trip loop.

Supported providers:
- Anthropic (Claude): AnthropicAdapter
- OpenAI and OpenAI-compatible APIs (Groq): OpenAIAdapter
"""

from clai.providers.anthropic import AnthropicAdapter
from clai.providers.base import ProviderAdapter, ProviderConfig, RoundState, ToolCall, ToolOutcome
from clai.providers.openai import GROQ_BASE_URL, OpenAIAdapter
from clai.providers.retry import RateLimitInfo, RetryOptions, check_rate_limit, retry_with_backoff

__all__ = [
    "AnthropicAdapter",
    "GROQ_BASE_URL",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderConfig",
    "RateLimitInfo",
    "RetryOptions",
    "RoundState",
    "ToolCall",
    "ToolOutcome",
    "check_rate_limit",
    "retry_with_backoff",
]
