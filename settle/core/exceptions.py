"""Custom exception hierarchy for settle.

All settle-specific exceptions inherit from SettleError, enabling
callers to catch every terminal wait or tagging failure with a single
except clause.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any, Literal

type TagPhase = Literal["list", "remove", "upsert"]


class PollOutcome(Enum):
    """Failure outcomes of the convergence state machine. Success is a return value."""

    TIMED_OUT = "timed_out"
    UNEXPECTED_STATE = "unexpected_state"
    FETCH_FAILED = "fetch_failed"
    CANCELLED = "cancelled"


class SettleError(Exception):
    """Base exception for all settle errors."""


class ConfigurationError(SettleError):
    """Raised for invalid configuration or missing required settings."""


class WaitError(SettleError):
    """Raised when a wait ends in any state other than success.

    ``last_payload`` holds the payload of the last observation, if any.
    """

    outcome: PollOutcome

    def __init__(
        self,
        message: str,
        *,
        description: str = "resource",
        last_state: str | None = None,
        elapsed: float = 0.0,
        last_payload: Any = None,
    ) -> None:
        self.description = description
        self.last_state = last_state
        self.elapsed = elapsed
        self.last_payload = last_payload
        super().__init__(message)


class WaitTimeoutError(WaitError):
    """Raised when the time budget is spent while the resource is still pending."""

    outcome = PollOutcome.TIMED_OUT

    def __init__(
        self,
        *,
        description: str,
        last_state: str | None,
        elapsed: float,
        timeout: float,
        last_payload: Any = None,
    ) -> None:
        self.timeout = timeout
        super().__init__(
            f"Timeout waiting for {description} after {elapsed:.1f}s "
            f"(limit {timeout:.1f}s, last state: {last_state or 'none'})",
            description=description,
            last_state=last_state,
            elapsed=elapsed,
            last_payload=last_payload,
        )


class UnexpectedStateError(WaitError):
    """Raised when the resource reports a state outside pending and target."""

    outcome = PollOutcome.UNEXPECTED_STATE

    def __init__(
        self,
        *,
        description: str,
        last_state: str | None,
        elapsed: float,
        expected: Iterable[str] = (),
        message: str | None = None,
        last_payload: Any = None,
    ) -> None:
        self.expected = tuple(sorted(expected))
        super().__init__(
            message
            or f"{description} reached unexpected state {last_state!r} "
            f"after {elapsed:.1f}s (expected one of: {', '.join(self.expected)})",
            description=description,
            last_state=last_state,
            elapsed=elapsed,
            last_payload=last_payload,
        )


class ResourceNotFoundError(UnexpectedStateError):
    """Raised when a resource keeps disappearing while it was expected to exist."""

    def __init__(
        self,
        *,
        description: str,
        elapsed: float,
        checks: int,
        expected: Iterable[str] = (),
    ) -> None:
        self.checks = checks
        super().__init__(
            description=description,
            last_state="NOT_FOUND",
            elapsed=elapsed,
            expected=expected,
            message=(
                f"{description} not found after {checks} consecutive checks "
                f"({elapsed:.1f}s elapsed)"
            ),
        )


class FetchFailedError(WaitError):
    """Raised when the status capability fails with a non-transient error."""

    outcome = PollOutcome.FETCH_FAILED

    def __init__(
        self,
        *,
        description: str,
        last_state: str | None,
        elapsed: float,
        cause: BaseException,
        last_payload: Any = None,
    ) -> None:
        self.cause = cause
        super().__init__(
            f"Fetching status of {description} failed after {elapsed:.1f}s: "
            f"{type(cause).__name__}: {cause}",
            description=description,
            last_state=last_state,
            elapsed=elapsed,
            last_payload=last_payload,
        )


class PollCancelledError(WaitError):
    """Raised when the caller cancels a wait in progress."""

    outcome = PollOutcome.CANCELLED

    def __init__(
        self,
        *,
        description: str,
        last_state: str | None,
        elapsed: float,
        last_payload: Any = None,
    ) -> None:
        super().__init__(
            f"Wait for {description} cancelled after {elapsed:.1f}s "
            f"(last state: {last_state or 'none'})",
            description=description,
            last_state=last_state,
            elapsed=elapsed,
            last_payload=last_payload,
        )


class TagOperationError(SettleError):
    """Raised when listing, removing or upserting tags on a resource fails.

    The other phase is never rolled back; a retried reconciliation
    computes an empty diff for whatever already landed.
    """

    def __init__(self, identifier: str, phase: TagPhase, cause: BaseException) -> None:
        self.identifier = identifier
        self.phase = phase
        self.cause = cause
        verb = {"list": "listing tags of", "remove": "untagging", "upsert": "tagging"}[phase]
        super().__init__(f"{verb} resource ({identifier}): {cause}")
