"""Core value types: resource states, observations and poll specifications.

These are immutable values constructed per call. Nothing here is persisted;
the remote system is the only source of truth.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

type ResourceState = str

NOT_FOUND: ResourceState = "NOT_FOUND"
"""Synthetic state reported when the remote resource does not exist."""


@dataclass(frozen=True, slots=True)
class Observation:
    """A single status reading: the state plus the full resource payload."""

    state: ResourceState
    payload: Any = None

    @classmethod
    def not_found(cls) -> Observation:
        return cls(NOT_FOUND, None)

    @classmethod
    def of(cls, value: Observation | tuple[ResourceState, Any]) -> Observation:
        match value:
            case Observation():
                return value
            case (str() as state, payload):
                return cls(state, payload)
            case _:
                raise TypeError(
                    f"Refresh function must return Observation or (state, payload), got {value!r}"
                )


type Fetch = Callable[[], Awaitable[Observation | tuple[ResourceState, Any]]]
type Sleep = Callable[[float], Awaitable[None]]
type Clock = Callable[[], float]


def _states(values: Iterable[ResourceState]) -> frozenset[ResourceState]:
    if isinstance(values, str):
        return frozenset((values,))
    return frozenset(values)


@dataclass(frozen=True, slots=True)
class PollSpec:
    """Declarative description of a single wait.

    Args:
        pending: States that are safe to keep waiting on.
        target: States that end the wait successfully.
        timeout: Total wall-clock budget in seconds.
        poll_interval: Fixed seconds between polls. None selects exponential
            backoff with jitter, bounded by min_interval and max_interval.
        delay: Seconds to wait before the first fetch.
        min_interval: Lower bound on every sleep between polls.
        max_interval: Upper bound on backoff growth.
        not_found_checks: Consecutive NOT_FOUND observations tolerated when
            NOT_FOUND is neither pending nor target.
        continuous_target_occurrence: Consecutive target observations
            required before the wait succeeds.
        refresh_grace: Extra seconds an in-flight fetch may run past the
            timeout before it is abandoned.
        description: Human-readable name used in logs and errors.

    Example:
        spec = PollSpec(
            pending={"DELETING"},
            target={NOT_FOUND},
            timeout=180,
            description="standards subscription",
        )
    """

    pending: frozenset[ResourceState] = field(default_factory=frozenset)
    target: frozenset[ResourceState] = field(default_factory=frozenset)
    timeout: float = 300.0
    poll_interval: float | None = None
    delay: float = 0.0
    min_interval: float = 0.0
    max_interval: float = 10.0
    not_found_checks: int = 0
    continuous_target_occurrence: int = 1
    refresh_grace: float = 30.0
    description: str = "resource"

    def __post_init__(self) -> None:
        object.__setattr__(self, "pending", _states(self.pending))
        object.__setattr__(self, "target", _states(self.target))

        if not self.target:
            raise ValueError("PollSpec requires at least one target state")
        if overlap := self.pending & self.target:
            raise ValueError(
                f"States cannot be both pending and target: {', '.join(sorted(overlap))}"
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.poll_interval is not None and self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.delay < 0 or self.min_interval < 0:
            raise ValueError("delay and min_interval cannot be negative")
        if self.max_interval < self.min_interval:
            raise ValueError("max_interval must be >= min_interval")
        if self.not_found_checks < 0:
            raise ValueError("not_found_checks cannot be negative")
        if self.continuous_target_occurrence < 1:
            raise ValueError("continuous_target_occurrence must be >= 1")
        if self.refresh_grace < 0:
            raise ValueError("refresh_grace cannot be negative")

    @property
    def expected(self) -> frozenset[ResourceState]:
        """Every state the caller anticipates."""
        return self.pending | self.target

