"""Tests for clai custom exceptions.

Covers the exception hierarchy and structured error information.
"""

from clai.core.models import TextSegment, TokenUsage
from clai.exceptions import (
    ClaiError,
    ConfigurationError,
    MissingAPIKeyError,
    ProviderError,
    RateLimitError,
    TurnFailedError,
    UnknownModelError,
)


class TestClaiError:
    def test_base_error(self):
        err = ClaiError("something went wrong")
        assert str(err) == "something went wrong"
        assert err.details == {}

    def test_base_error_with_details(self):
        err = ClaiError("failed", details={"key": "value"})
        assert err.details == {"key": "value"}

    def test_is_exception(self):
        assert issubclass(ClaiError, Exception)


class TestConfigurationErrors:
    def test_unknown_model(self):
        err = UnknownModelError("gpt-99")
        assert str(err) == "Unknown model: gpt-99"
        assert err.model == "gpt-99"
        assert err.details["model"] == "gpt-99"
        assert isinstance(err, ConfigurationError)

    def test_missing_api_key(self):
        err = MissingAPIKeyError("groq", "GROQ_API_KEY")
        assert str(err).startswith("GROQ_API_KEY is not set.")
        assert "groq" in str(err)
        assert err.details == {"provider": "groq", "env_var": "GROQ_API_KEY"}
        assert isinstance(err, ConfigurationError)


class TestProviderErrors:
    def test_provider_error(self):
        err = ProviderError("anthropic", "overloaded")
        assert str(err) == "Provider 'anthropic' error: overloaded"
        assert err.provider_name == "anthropic"
        assert isinstance(err, ClaiError)

    def test_rate_limit(self):
        err = RateLimitError("groq", retry_after=12.0)
        assert "Rate limit exceeded" in str(err)
        assert err.retry_after == 12.0
        assert err.details["retry_after"] == 12.0
        assert isinstance(err, ProviderError)


class TestTurnFailedError:
    def test_carries_partial_output(self):
        usage = TokenUsage(input_tokens=10, output_tokens=3)
        segments = [TextSegment(content="Hal")]
        err = TurnFailedError("Chat turn failed: boom", partial_text="Hal", usage=usage, segments=segments, rounds=2)

        assert str(err) == "Chat turn failed: boom"
        assert err.partial_text == "Hal"
        assert err.usage is usage
        assert err.segments == segments
        assert err.segments is not segments
        assert err.rounds == 2
        assert err.details == {"rounds": 2, "partial_chars": 3}

    def test_defaults(self):
        err = TurnFailedError("failed")
        assert err.partial_text == ""
        assert err.usage is None
        assert err.segments == []
        assert isinstance(err, ClaiError)
