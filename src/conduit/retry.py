"""Bounded async retry with exponential backoff and jitter.

Eligibility comes from explicit signals first (``APIError.retryable``,
status codes), then from transport exception types, and finally from a small
set of connection/timeout/rate-limit signatures in exception names or messages.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

import httpx

from conduit._http import RETRYABLE_STATUS_CODES
from conduit.errors import APIError, ValidationError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)

_TRANSIENT_SIGNATURES: tuple[str, ...] = (
    "connection",
    "timeout",
    "timed out",
    "ratelimit",
    "rate limit",
    "retry",
    "toomanyrequests",
    "too many requests",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter."""

    max_attempts: int = 3
    initial_delay_s: float = 0.2
    backoff_multiplier: float = 2.0
    max_delay_s: float = 2.0
    jitter: bool = True  # adds up to 25% of each delay
    max_elapsed_s: float | None = 30.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("RetryPolicy.max_elapsed_s must be >= 0 or None")


def _retry_after_from_error(exc: BaseException) -> float | None:
    if isinstance(exc, APIError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


def _matches_transient_signature(exc: BaseException) -> bool:
    haystack = f"{type(exc).__name__} {exc}".lower()
    return any(sig in haystack for sig in _TRANSIENT_SIGNATURES)


def _is_transient_error(exc: BaseException) -> bool:
    for e in _walk_exception_chain(exc):
        if isinstance(e, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
            return True
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
            return True
        if _matches_transient_signature(e):
            return True
    return False


def should_retry(exc: BaseException) -> bool:
    """Return True when a provider-call exception should be retried.

    Contract:
    - Cancellation and validation errors are never retried.
    - APIError is retried when marked retryable or when its status code is one
      of 408, 425, 429, 500, 502, 503, 504.
    - Other exceptions are retried when their chain looks like a connection,
      timeout, or rate-limit failure.
    """
    if isinstance(exc, (asyncio.CancelledError, ValidationError)):
        return False

    if isinstance(exc, APIError):
        if exc.retryable is not None or exc.status_code is not None:
            return (exc.retryable is True) or (
                isinstance(exc.status_code, int)
                and exc.status_code in RETRYABLE_STATUS_CODES
            )

    return _is_transient_error(exc)


def compute_backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    """Return the sleep before retry number *retry_index* (1-based)."""
    base = policy.initial_delay_s * (
        policy.backoff_multiplier ** max(0, retry_index - 1)
    )
    base = min(policy.max_delay_s, base)
    if base <= 0:
        return 0.0
    if not policy.jitter:
        return base
    return base + random.uniform(0, base * 0.25)  # noqa: S311


def backoff_delays(policy: RetryPolicy) -> list[float]:
    """Return the full sleep schedule for *policy* (one entry per retry)."""
    return [
        compute_backoff_delay(policy, retry_index=i)
        for i in range(1, policy.max_attempts)
    ]


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = should_retry,
) -> T:
    """Run an async factory with bounded retries."""
    start = time.monotonic()
    last_exc: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await factory()
        except Exception as exc:
            last_exc = exc
            if not should_retry(exc) or attempt >= policy.max_attempts:
                raise

            retry_after = _retry_after_from_error(exc)
            delay = compute_backoff_delay(policy, retry_index=attempt)
            if retry_after is not None:
                delay = max(delay, retry_after)

            if policy.max_elapsed_s is not None:
                remaining = policy.max_elapsed_s - (time.monotonic() - start)
                if remaining <= 0:
                    raise
                delay = min(delay, remaining)

            logger.debug(
                "Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                type(exc).__name__,
                attempt,
                policy.max_attempts,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)

    if last_exc is None:  # pragma: no cover
        raise RuntimeError("retry_async exhausted without an exception")
    raise last_exc
