"""
clai Model Registry and Pricing

Short model names, their provider and context window, and
token-to-USD cost calculation. Prices are per million tokens.

A model with no known price costs nothing rather than a guessed
amount; callers are expected to warn the user about it.
"""

from __future__ import annotations

from pydantic import BaseModel


class ModelInfo(BaseModel):
    """A model the client knows by short name."""
    id: str
    provider: str
    display_name: str
    context_window: int
    input_price: float
    output_price: float


MODELS: dict[str, ModelInfo] = {
    # Anthropic
    "haiku": ModelInfo(
        id="claude-haiku-4-5-20251001",
        provider="anthropic",
        display_name="Claude Haiku 4.5",
        context_window=200_000,
        input_price=0.80,
        output_price=4.00,
    ),
    "sonnet": ModelInfo(
        id="claude-sonnet-4-5-20250929",
        provider="anthropic",
        display_name="Claude Sonnet 4.5",
        context_window=200_000,
        input_price=3.00,
        output_price=15.00,
    ),
    # Groq (free tier)
    "llama-3.3": ModelInfo(
        id="llama-3.3-70b-versatile",
        provider="groq",
        display_name="Llama 3.3 70B (Groq)",
        context_window=131_072,
        input_price=0.0,
        output_price=0.0,
    ),
    "gpt-oss": ModelInfo(
        id="openai/gpt-oss-120b",
        provider="groq",
        display_name="GPT-OSS 120B (Groq)",
        context_window=8192,
        input_price=0.0,
        output_price=0.0,
    ),
    "llama-3.1": ModelInfo(
        id="llama-3.1-70b-versatile",
        provider="groq",
        display_name="Llama 3.1 70B (Groq)",
        context_window=131_072,
        input_price=0.0,
        output_price=0.0,
    ),
    "mixtral": ModelInfo(
        id="mixtral-8x7b-32768",
        provider="groq",
        display_name="Mixtral 8x7B (Groq)",
        context_window=32_768,
        input_price=0.0,
        output_price=0.0,
    ),
}

DEFAULT_MODEL = "haiku"
DEFAULT_MAX_TOKENS = 8192

# Pricing per 1M tokens (USD) for models reachable by full id only
MODEL_PRICING: dict[str, dict[str, float]] = {
    "claude-opus-4-1": {"input": 15.00, "output": 75.00},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "o1": {"input": 15.00, "output": 60.00},
    "o1-mini": {"input": 3.00, "output": 12.00},
}


def get_model(name_or_id: str) -> ModelInfo | None:
    """Look a model up by short name, then by full id."""
    if name_or_id in MODELS:
        return MODELS[name_or_id]
    for info in MODELS.values():
        if info.id == name_or_id:
            return info
    return None


def lookup_pricing(model: str) -> dict[str, float] | None:
    info = get_model(model)
    if info is not None:
        return {"input": info.input_price, "output": info.output_price}
    return MODEL_PRICING.get(model)


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> float:
    """Calculate cost in USD for a single LLM call.

    Args:
        model: Short name or model ID.
        input_tokens: Number of input tokens.
        output_tokens: Number of output tokens.

    Returns:
        Cost in USD, 0.0 when the model has no known price.
    """
    pricing = lookup_pricing(model)
    if pricing is None:
        return 0.0
    cost = (
        input_tokens * pricing["input"] / 1_000_000
        + output_tokens * pricing["output"] / 1_000_000
    )
    return round(cost, 8)


def detect_provider(model: str) -> str:
    """Detect provider name from a short name or model ID."""
    info = get_model(model)
    if info is not None:
        return info.provider
    if model.startswith("claude"):
        return "anthropic"
    if model.startswith(("gpt", "o1")):
        return "openai"
    return "unknown"


def check_context_limit(model: str, total_tokens: int, threshold: float = 0.75) -> str | None:
    """Warn when a conversation has used most of the model's context window."""
    info = get_model(model)
    if info is None:
        return None

    ratio = total_tokens / info.context_window
    if ratio < threshold:
        return None
    remaining = info.context_window - total_tokens
    return (
        f"Context usage: {round(ratio * 100)}% "
        f"({total_tokens:,}/{info.context_window:,} tokens). "
        f"{remaining:,} tokens remaining. Consider using /clear to free up context."
    )
