from __future__ import annotations

import asyncio
from collections.abc import Mapping

import pytest

from settle import Observation, TagSet


class FakeTime:
    """Simulated monotonic clock whose sleeps advance time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ScriptedFetch:
    """Refresh function replaying a script of states and errors.

    The last step repeats once the script runs out.
    """

    def __init__(self, *steps: str | BaseException) -> None:
        self.steps = steps
        self.calls = 0

    async def __call__(self) -> Observation:
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, BaseException):
            raise step
        return Observation(step, {"state": step, "call": self.calls})


class FakeTaggingClient:
    def __init__(
        self,
        tags: Mapping[str, str] | None = None,
        *,
        fail_on: str | None = None,
    ) -> None:
        self.tags: dict[str, dict[str, str]] = {"arn:test": dict(tags or {})}
        self.fail_on = fail_on
        self.calls: list[tuple[str, object]] = []

    async def list_tags(self, identifier: str) -> dict[str, str]:
        self.calls.append(("list", identifier))
        if self.fail_on == "list":
            raise ConnectionError("list failed")
        return dict(self.tags[identifier])

    async def add_tags(self, identifier: str, tags: TagSet) -> None:
        self.calls.append(("add", dict(tags)))
        if self.fail_on == "add":
            raise RuntimeError("AccessDenied")
        self.tags[identifier].update(tags)

    async def remove_tags(self, identifier: str, keys: frozenset[str]) -> None:
        self.calls.append(("remove", set(keys)))
        if self.fail_on == "remove":
            raise RuntimeError("AccessDenied")
        for key in keys:
            self.tags[identifier].pop(key, None)


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()
