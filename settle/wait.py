"""Convergence poller.

Drives a single resource from its current observed state to one of a set of
target states by polling a refresh function. Declared pending states are
waited on; anything else fails fast, since an undeclared state usually means
the remote side rolled back or errored.

Example:
    from settle import NOT_FOUND, PollSpec, poll

    payload = await poll(
        fetch,
        PollSpec(pending={"PENDING"}, target={"READY", "INCOMPLETE"}, timeout=180),
    )

    await wait_until_absent(fetch, pending={"DELETING"}, timeout=180)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from loguru import logger

from settle.backoff import Backoff
from settle.core.exceptions import (
    FetchFailedError,
    PollCancelledError,
    ResourceNotFoundError,
    UnexpectedStateError,
    WaitTimeoutError,
)
from settle.retry import RetryPolicy, call_with_retry
from settle.status import refresh_from
from settle.types import NOT_FOUND, Clock, Fetch, Observation, PollSpec, ResourceState, Sleep

if TYPE_CHECKING:
    from settle.protocols import StatusSource

log = logger.bind(component="wait")


async def _unless_cancelled[T](cancel: asyncio.Event, aw: Awaitable[T]) -> T | None:
    """Await ``aw`` unless ``cancel`` is set first, in which case ``aw`` is cancelled."""
    work = asyncio.ensure_future(aw)
    watcher = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [t for t in (work, watcher) if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if work.done() and not work.cancelled():
        return work.result()
    return None


class _Poll:
    """One invocation of the state machine. Holds no state beyond the call."""

    def __init__(
        self,
        fetch: Fetch,
        spec: PollSpec,
        *,
        cancel: asyncio.Event | None,
        sleep: Sleep,
        clock: Clock,
        retry_policy: RetryPolicy,
    ) -> None:
        self.fetch = fetch
        self.spec = spec
        self.cancel = cancel
        self.sleep = sleep
        self.clock = clock
        self.retry_policy = retry_policy
        self.backoff = Backoff.for_spec(spec)
        self.start = clock()
        self.deadline = self.start + spec.timeout
        self.last_state: ResourceState | None = None
        self.last_payload: Any = None
        self.log = log.bind(resource=spec.description)

    @property
    def elapsed(self) -> float:
        return self.clock() - self.start

    def _cancelled(self) -> PollCancelledError:
        self.log.info(
            "Wait for {what} cancelled after {elapsed:.1f}s",
            what=self.spec.description,
            elapsed=self.elapsed,
        )
        return PollCancelledError(
            description=self.spec.description,
            last_state=self.last_state,
            elapsed=self.elapsed,
            last_payload=self.last_payload,
        )

    def _timed_out(self) -> WaitTimeoutError:
        self.log.warning(
            "Timeout waiting for {what}: last state {state}",
            what=self.spec.description,
            state=self.last_state,
        )
        return WaitTimeoutError(
            description=self.spec.description,
            last_state=self.last_state,
            elapsed=self.elapsed,
            timeout=self.spec.timeout,
            last_payload=self.last_payload,
        )

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise self._cancelled()

    async def _pause(self, seconds: float) -> None:
        seconds = max(0.0, min(seconds, self.deadline - self.clock()))
        self._check_cancelled()
        if self.cancel is None:
            await self.sleep(seconds)
            return
        await _unless_cancelled(self.cancel, self.sleep(seconds))
        self._check_cancelled()

    async def _fetch(self) -> Any:
        call = call_with_retry(
            self.fetch,
            self.retry_policy,
            sleep=self._pause,
            clock=self.clock,
            deadline=self.deadline,
            description=self.spec.description,
        )
        if self.cancel is None:
            return await call
        raw = await _unless_cancelled(self.cancel, call)
        self._check_cancelled()
        return raw

    async def _observe(self) -> Observation:
        self._check_cancelled()
        # Loop time, not the injected clock, bounds a fetch that never returns.
        bound = asyncio.timeout(
            max(0.0, self.deadline - self.clock()) + self.spec.refresh_grace
        )
        try:
            async with bound:
                raw = await self._fetch()
        except PollCancelledError:
            raise
        except Exception as e:
            if bound.expired():
                raise self._timed_out() from e
            if self.clock() >= self.deadline and self.retry_policy.on(e):
                raise self._timed_out() from e
            self.log.error(
                "Fetching status of {what} failed: {kind}: {error}",
                what=self.spec.description,
                kind=type(e).__name__,
                error=e,
            )
            raise FetchFailedError(
                description=self.spec.description,
                last_state=self.last_state,
                elapsed=self.elapsed,
                cause=e,
                last_payload=self.last_payload,
            ) from e
        return Observation.of(raw)

    async def run(self) -> Any:
        spec = self.spec
        target_hits = 0
        not_found_hits = 0
        attempt = 0

        if spec.delay:
            await self._pause(spec.delay)

        while True:
            observation = await self._observe()
            state = observation.state
            self.last_state = state
            self.last_payload = observation.payload
            self.log.debug(
                "Polled {what}: state={state} attempt={attempt} elapsed={elapsed:.1f}s",
                what=spec.description,
                state=state,
                attempt=attempt + 1,
                elapsed=self.elapsed,
            )

            if state in spec.target:
                target_hits += 1
                not_found_hits = 0
                if target_hits >= spec.continuous_target_occurrence:
                    self.log.info(
                        "{what} reached {state} after {elapsed:.1f}s",
                        what=spec.description,
                        state=state,
                        elapsed=self.elapsed,
                    )
                    return observation.payload
            elif state in spec.pending:
                target_hits = 0
                not_found_hits = 0
            elif state == NOT_FOUND and not_found_hits < spec.not_found_checks:
                target_hits = 0
                not_found_hits += 1
                self.log.debug(
                    "{what} not found ({n}/{limit}), retrying",
                    what=spec.description,
                    n=not_found_hits,
                    limit=spec.not_found_checks,
                )
            elif state == NOT_FOUND and spec.not_found_checks:
                raise ResourceNotFoundError(
                    description=spec.description,
                    elapsed=self.elapsed,
                    checks=not_found_hits + 1,
                    expected=spec.expected,
                )
            else:
                self.log.warning(
                    "{what} reached unexpected state {state}",
                    what=spec.description,
                    state=state,
                )
                raise UnexpectedStateError(
                    description=spec.description,
                    last_state=state,
                    elapsed=self.elapsed,
                    expected=spec.expected,
                    last_payload=observation.payload,
                )

            if self.clock() >= self.deadline:
                raise self._timed_out()

            await self._pause(self.backoff.delay(attempt))
            attempt += 1


async def poll(
    fetch: Fetch,
    spec: PollSpec,
    *,
    cancel: asyncio.Event | None = None,
    sleep: Sleep | None = None,
    clock: Clock | None = None,
    retry_policy: RetryPolicy | None = None,
) -> Any:
    """Poll ``fetch`` until the resource reaches a state in ``spec.target``.

    A fetch still running at the deadline is abandoned once
    ``spec.refresh_grace`` more seconds have passed. Transient fetch errors
    still being retried when the deadline passes end the wait as a timeout,
    with the last error chained.

    Args:
        fetch: Async refresh function returning an Observation (or a
            ``(state, payload)`` tuple). Called strictly sequentially.
        spec: Pending/target states, time budget and interval settings.
        cancel: Event that aborts the wait when set, including mid-sleep and
            mid-fetch.
        sleep: Async sleep used between polls. Defaults to asyncio.sleep.
        clock: Monotonic clock in seconds. Defaults to time.monotonic.
        retry_policy: Budget for transient fetch errors.

    Returns:
        The payload of the last observation.

    Raises:
        WaitTimeoutError: The time budget ran out while still pending, while
            retrying transient fetch errors, or with a fetch in flight.
        UnexpectedStateError: A state outside pending and target was seen.
        ResourceNotFoundError: The resource stayed absent past not_found_checks.
        FetchFailedError: The refresh function failed non-transiently, or
            transient failures exhausted the retry budget before the deadline.
        PollCancelledError: ``cancel`` was set.
    """
    return await _Poll(
        fetch,
        spec,
        cancel=cancel,
        sleep=sleep or asyncio.sleep,
        clock=clock or time.monotonic,
        retry_policy=retry_policy or RetryPolicy(),
    ).run()


async def wait_until_present(
    fetch: Fetch,
    *,
    target: Iterable[ResourceState],
    pending: Iterable[ResourceState] = (NOT_FOUND,),
    timeout: float = 300.0,
    cancel: asyncio.Event | None = None,
    sleep: Sleep | None = None,
    clock: Clock | None = None,
    retry_policy: RetryPolicy | None = None,
    **options: Any,
) -> Any:
    """Wait until a freshly created resource reports one of ``target``.

    NOT_FOUND is pending by default to cover the window where a create call
    has returned but the resource is not yet visible.
    """
    spec = PollSpec(pending=frozenset(pending), target=frozenset(target), timeout=timeout, **options)
    return await poll(
        fetch, spec, cancel=cancel, sleep=sleep, clock=clock, retry_policy=retry_policy
    )


async def wait_until_absent(
    fetch: Fetch,
    *,
    pending: Iterable[ResourceState],
    timeout: float = 300.0,
    cancel: asyncio.Event | None = None,
    sleep: Sleep | None = None,
    clock: Clock | None = None,
    retry_policy: RetryPolicy | None = None,
    **options: Any,
) -> None:
    """Wait until a deleted resource reports NOT_FOUND."""
    spec = PollSpec(pending=frozenset(pending), target=frozenset({NOT_FOUND}), timeout=timeout, **options)
    await poll(fetch, spec, cancel=cancel, sleep=sleep, clock=clock, retry_policy=retry_policy)


@dataclass(frozen=True, slots=True)
class Waiter:
    """A PollSpec bound to a refresh factory, declared once per resource type.

    Example:
        wait_admin_account_enabled = Waiter(
            PollSpec(pending={NOT_FOUND}, target={"ENABLED"}, timeout=300,
                     description="admin account"),
            refresh=refresh_from(describe_admin_account, lambda a: a["Status"]),
        )

        account = await wait_admin_account_enabled("123456789012")
    """

    spec: PollSpec
    refresh: Callable[[str], Fetch]
    retry_policy: RetryPolicy | None = None

    @classmethod
    def for_source(
        cls,
        spec: PollSpec,
        source: StatusSource,
        state_of: Callable[[Any], object],
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> Waiter:
        return cls(spec, refresh_from(source.get, state_of), retry_policy)

    async def __call__(
        self,
        identifier: str,
        *,
        cancel: asyncio.Event | None = None,
        sleep: Sleep | None = None,
        clock: Clock | None = None,
        timeout: float | None = None,
    ) -> Any:
        spec = replace(
            self.spec,
            description=f"{self.spec.description} ({identifier})",
            timeout=timeout if timeout is not None else self.spec.timeout,
        )
        return await poll(
            self.refresh(identifier),
            spec,
            cancel=cancel,
            sleep=sleep,
            clock=clock,
            retry_policy=self.retry_policy,
        )
