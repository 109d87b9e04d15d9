"""Interval schedule between status polls."""

from __future__ import annotations

import random
from dataclasses import dataclass

from settle.types import PollSpec


@dataclass(frozen=True, slots=True)
class Backoff:
    """Exponential backoff with jitter, clamped to [min_delay, max_delay].

    Delay formula: min(base * (factor ** attempt), max_delay), plus up to
    ``jitter`` (as a fraction of the delay) of random noise, then clamped.
    A factor of 1 yields a fixed interval.
    """

    base: float = 0.1
    factor: float = 2.0
    min_delay: float = 0.0
    max_delay: float = 10.0
    jitter: float = 0.1

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        try:
            delay = min(self.base * (self.factor**attempt), self.max_delay)
        except OverflowError:
            delay = self.max_delay
        if self.jitter:
            delay += (rng or random).uniform(0, delay * self.jitter)
        return max(self.min_delay, min(delay, self.max_delay))

    @classmethod
    def for_spec(cls, spec: PollSpec, *, jitter: float = 0.1) -> Backoff:
        if spec.poll_interval is not None:
            interval = max(spec.poll_interval, spec.min_interval)
            return cls(
                base=interval,
                factor=1.0,
                min_delay=interval,
                max_delay=interval,
                jitter=0.0,
            )
        return cls(
            base=max(0.1, spec.min_interval),
            min_delay=spec.min_interval,
            max_delay=spec.max_interval,
            jitter=jitter,
        )
