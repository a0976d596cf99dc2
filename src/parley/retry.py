"""Caller-side bounded retry for generation programs.

The interpreter chain never retries. Callers who want retries wrap the whole
exchange, typically ``lambda: runtime.run(generate_next_message(chat))``.
Because programs and their continuations are one-shot, the factory must
build a fresh program on every attempt.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, Any, TypeVar

from parley.errors import APIError
from parley.providers._errors import RETRYABLE_STATUS_CODES
from parley.result import Failure

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter."""

    # Conservative defaults: retries should help without surprising tail-latency.
    max_attempts: int = 3
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True  # "full jitter" when enabled
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


def should_retry(exc: BaseException) -> bool:
    """Return True when ``exc`` is a transient provider failure.

    Contract:
    - Cancellation is never retried.
    - APIError is retried only when marked retryable or carrying a known
      retryable HTTP status code.
    - Everything else is not retried.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, APIError):
        return (exc.retryable is True) or (
            isinstance(exc.status_code, int) and exc.status_code in RETRYABLE_STATUS_CODES
        )
    return False


def _retry_after_from_error(exc: BaseException) -> float | None:
    if isinstance(exc, APIError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


def _compute_backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    # retry_index starts at 1 for the first retry sleep.
    base = policy.initial_delay_s * (policy.backoff_multiplier ** max(0, retry_index - 1))
    base = min(policy.max_delay_s, base)
    if base <= 0:
        return 0.0
    if not policy.jitter:
        return base
    # Full jitter: random in [0, base] to avoid thundering herd.
    return random.random() * base  # noqa: S311


def _failure_of(outcome: Any) -> BaseException | None:
    if isinstance(outcome, Failure) and isinstance(outcome.error, BaseException):
        return outcome.error
    return None


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    should_retry: Callable[[BaseException], bool] = should_retry,
) -> T:
    """Run an async factory with bounded retries.

    A returned ``Failure`` whose error is retryable triggers another attempt,
    as does a raised retryable exception. When attempts are exhausted the
    last ``Failure`` is returned, or the last exception re-raised.
    """
    policy = policy or RetryPolicy()
    start = time.monotonic()

    for attempt in range(1, policy.max_attempts + 1):
        outcome: Any = None
        try:
            outcome = await factory()
        except Exception as exc:
            err: BaseException = exc
            if not should_retry(err) or attempt >= policy.max_attempts:
                raise
        else:
            failed = _failure_of(outcome)
            if failed is None or not should_retry(failed) or attempt >= policy.max_attempts:
                return outcome
            err = failed

        retry_after = _retry_after_from_error(err)
        delay = _compute_backoff_delay(policy, retry_index=attempt)
        if retry_after is not None:
            delay = max(delay, retry_after)

        if policy.max_elapsed_s is not None:
            remaining = policy.max_elapsed_s - (time.monotonic() - start)
            if remaining <= 0:
                if isinstance(outcome, Failure):
                    return outcome
                raise err
            delay = min(delay, remaining)

        log.debug("Retrying after %s (attempt %d, sleeping %.2fs)", type(err).__name__, attempt, delay)
        if delay > 0:
            await asyncio.sleep(delay)

    # Loop always returns or raises.
    raise AssertionError("retry_async exhausted without an outcome")  # pragma: no cover
