"""Transient-error classification and the nested fetch retry budget.

Status fetches that fail with a transient error (network blips, throttling,
5xx responses) are retried a bounded number of times before the poller
escalates them. The budget is independent of the poll timeout but never
outlives it.

Example:
    from settle.retry import RetryPolicy, any_of, on_status_code

    policy = RetryPolicy(
        max_attempts=4,
        on=any_of(on_status_code(429, 503), on_exception_message("throttl")),
    )
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_any,
    wait_exponential_jitter,
)

from settle.types import Clock, Sleep

log = logger.bind(component="retry")

# Type for the retry predicate
type RetryPredicate = Callable[[BaseException], bool]


# =============================================================================
# Common Predicates
# =============================================================================


def on_exception_type(*types: type[BaseException]) -> RetryPredicate:
    """Create a predicate that retries on the given exception classes.

    Example:
        policy = RetryPolicy(on=on_exception_type(ConnectionResetError))
    """

    def predicate(e: BaseException) -> bool:
        return isinstance(e, types)

    return predicate


def on_status_code(*codes: int) -> RetryPredicate:
    """Create a predicate that retries on specific HTTP status codes.

    Works with any exception exposing a ``status`` or ``status_code``
    attribute (aiohttp, httpx, botocore-style wrappers).
    """

    def predicate(e: BaseException) -> bool:
        status = getattr(e, "status", None)
        if status is None:
            status = getattr(e, "status_code", None)
        return status in codes

    return predicate


def on_exception_message(*patterns: str, case_sensitive: bool = False) -> RetryPredicate:
    """Create a predicate that retries when exception message matches patterns."""

    def predicate(e: BaseException) -> bool:
        msg = str(e)
        if not case_sensitive:
            msg = msg.lower()
            return any(p.lower() in msg for p in patterns)
        return any(p in msg for p in patterns)

    return predicate


# =============================================================================
# Combining Predicates
# =============================================================================


def any_of(*predicates: RetryPredicate) -> RetryPredicate:
    """Combine predicates with OR logic (retry if ANY predicate matches)."""

    def combined(e: BaseException) -> bool:
        return any(p(e) for p in predicates)

    return combined


def all_of(*predicates: RetryPredicate) -> RetryPredicate:
    """Combine predicates with AND logic (retry only if ALL predicates match)."""

    def combined(e: BaseException) -> bool:
        return all(p(e) for p in predicates)

    return combined


is_transient: RetryPredicate = any_of(
    on_exception_type(ConnectionError, TimeoutError),
    on_status_code(429, 500, 502, 503, 504),
    on_exception_message("throttl", "rate exceeded", "too many requests", "connection reset"),
)
"""Default classification of transient status-fetch failures."""


# =============================================================================
# Retry budget
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry budget for raw transport errors from a status fetch.

    Args:
        max_attempts: Attempts per fetch, including the first one.
        base_delay: Initial delay in seconds before the first retry.
        max_delay: Cap on the delay between retries.
        jitter: Maximum random seconds added to every delay.
        on: Predicate deciding which errors are transient.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.5
    on: RetryPredicate = field(default=is_transient)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


async def call_with_retry[T](
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    clock: Clock | None = None,
    deadline: float | None = None,
    description: str = "operation",
) -> T:
    """Await ``fn`` retrying transient errors according to ``policy``.

    Non-transient errors, and the last transient error once the budget (or
    the optional ``deadline`` on ``clock``) is exhausted, propagate unchanged.
    """

    def _deadline_reached(_: RetryCallState) -> bool:
        return deadline is not None and clock is not None and clock() >= deadline

    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        log.warning(
            "Retry {attempt}/{total} for {what} after {kind}: {error}. Waiting {delay:.1f}s...",
            attempt=state.attempt_number,
            total=policy.max_attempts,
            what=description,
            kind=type(exc).__name__,
            error=exc,
            delay=state.next_action.sleep if state.next_action else 0.0,
        )

    retrying = AsyncRetrying(
        stop=stop_any(stop_after_attempt(policy.max_attempts), _deadline_reached),
        wait=wait_exponential_jitter(
            initial=policy.base_delay, max=policy.max_delay, jitter=policy.jitter
        ),
        retry=retry_if_exception(lambda e: isinstance(e, Exception) and policy.on(e)),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(fn)
