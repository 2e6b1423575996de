"""Retry policy for outbound third-party calls (embeddings, summarization)."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .config import CONFIG, Config
from .errors import ErrorCategory

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff settings; delays are in seconds."""

    max_retries: int = CONFIG.max_retries
    base_delay: float = CONFIG.retry_base_delay
    max_delay: float = CONFIG.retry_max_delay
    backoff_factor: float = CONFIG.retry_backoff_factor

    @classmethod
    def from_config(cls, config: Config) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            backoff_factor=config.retry_backoff_factor,
        )

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * self.backoff_factor**attempt, self.max_delay)


DEFAULT_POLICY = RetryPolicy()

# Ordered: the first family that matches wins. "limit" sits in the quota family,
# so "rate limit exceeded" is a quota error and only "too many requests" style
# messages reach RATE_LIMIT.
_KEYWORD_FAMILIES: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.AUTHENTICATION_ERROR, ("api key", "authentication", "unauthorized")),
    (ErrorCategory.QUOTA_ERROR, ("quota", "limit", "exceeded")),
    (ErrorCategory.NETWORK_ERROR, ("timeout", "network", "fetch")),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests")),
)

NON_RETRYABLE = frozenset({ErrorCategory.AUTHENTICATION_ERROR, ErrorCategory.QUOTA_ERROR})


def categorize_error(error: BaseException) -> ErrorCategory:
    """Classify a failure: an explicit category wins, else keyword family in its message."""
    explicit = getattr(error, "category", None)
    if isinstance(explicit, ErrorCategory):
        return explicit
    message = str(error).lower()
    for category, keywords in _KEYWORD_FAMILIES:
        if any(keyword in message for keyword in keywords):
            return category
    return ErrorCategory.UNKNOWN_ERROR


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_POLICY,
    *,
    label: str = "third-party call",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Await `operation()` until it succeeds or the retry budget is spent.

    Authentication and quota failures are raised on the first attempt, since
    waiting does not change a permission or billing state. Everything else is
    retried up to `policy.max_retries` times; the last error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            category = categorize_error(e)
            if category in NON_RETRYABLE or attempt >= policy.max_retries:
                raise
            delay = policy.delay(attempt)
            print(
                f"[memory-bank] {label} attempt {attempt + 1} failed ({category.value}), "
                f"retrying in {delay:.2f}s: {e}",
                file=sys.stderr,
            )
            await sleep(delay)
            attempt += 1
