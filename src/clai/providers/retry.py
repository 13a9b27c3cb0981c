"""
clai Retry and Backoff

Bounded exponential backoff for transient provider failures. Only
network-level errors and 5xx responses are retried; a 429 is surfaced
immediately so the user can be told how long to wait.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import anthropic
import openai

from clai.logging import get_logger

logger = get_logger("clai.providers.retry")

T = TypeVar("T")

_NETWORK_ERROR_CODES = ("ECONNRESET", "ENOTFOUND", "ETIMEDOUT", "ECONNREFUSED")
_CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    anthropic.APIConnectionError,
    openai.APIConnectionError,
)


@dataclass
class RetryOptions:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    on_retry: Callable[[int, float, BaseException], None] | None = None


@dataclass(frozen=True)
class RateLimitInfo:
    is_rate_limited: bool
    retry_after: float | None = None
    message: str | None = None


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def _header(error: BaseException, name: str) -> str | None:
    headers = getattr(error, "headers", None)
    if headers is None:
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
    if headers is None:
        return None
    try:
        value = headers.get(name)
    except AttributeError:
        return None
    return value if isinstance(value, str) else None


def _error_message(error: BaseException) -> str | None:
    body: Any = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and isinstance(inner.get("message"), str):
            return inner["message"]
    return None


def check_rate_limit(error: BaseException) -> RateLimitInfo:
    """Classify an error as a rate limit and extract the retry-after hint."""
    if _status_code(error) == 429:
        retry_after: float | None = None
        raw = _header(error, "retry-after")
        if raw is not None:
            try:
                retry_after = float(raw)
            except ValueError:
                retry_after = None
        return RateLimitInfo(
            is_rate_limited=True,
            retry_after=retry_after,
            message=_error_message(error) or "Rate limit exceeded",
        )

    if getattr(error, "code", None) == "rate_limit_exceeded":
        return RateLimitInfo(is_rate_limited=True, message="Rate limit exceeded")

    return RateLimitInfo(is_rate_limited=False)


def is_retryable_error(error: BaseException) -> bool:
    """Network failures and 5xx responses are transient; nothing else is."""
    if isinstance(error, _CONNECTION_ERRORS):
        return True
    if any(code in str(error) for code in _NETWORK_ERROR_CODES):
        return True
    status = _status_code(error)
    return status is not None and 500 <= status < 600


def backoff_delay(attempt: int, options: RetryOptions) -> float:
    return min(options.initial_delay * options.backoff_multiplier ** attempt, options.max_delay)


async def _backoff_sleep(delay: float, cancel: asyncio.Event | None) -> bool:
    """Sleep for ``delay`` seconds. Returns True if the cancel event cut it short."""
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    *,
    cancel: asyncio.Event | None = None,
) -> T:
    """Await ``operation()`` and retry transient failures with exponential backoff.

    The error from the final attempt, or the first non-retryable error,
    is re-raised unchanged. When ``cancel`` fires during a backoff wait
    the pending error is re-raised at once instead of retrying.
    """
    options = options or RetryOptions()

    for attempt in range(options.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable_error(e) or attempt == options.max_retries:
                raise
            if cancel is not None and cancel.is_set():
                raise

            delay = backoff_delay(attempt, options)
            logger.info(
                "Retrying after transient error: %s",
                e,
                extra={"action": "retry", "duration_ms": int(delay * 1000)},
            )
            if options.on_retry is not None:
                options.on_retry(attempt + 1, delay, e)
            if await _backoff_sleep(delay, cancel):
                logger.debug("Retry abandoned, turn cancelled")
                raise

    raise AssertionError("unreachable")
