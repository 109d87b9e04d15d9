"""Concurrent waits across independent resources.

Each wait is its own poll loop; this only bounds how many run at once and
collects their results in input order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from typing import Literal, overload


async def _bounded[T](semaphore: asyncio.Semaphore | None, wait: Awaitable[T]) -> T:
    if semaphore is None:
        return await wait
    async with semaphore:
        return await wait


@overload
async def wait_all[T](
    waits: Iterable[Awaitable[T]],
    *,
    concurrency: int | None = None,
    fail_fast: Literal[True] = True,
) -> list[T]: ...


@overload
async def wait_all[T](
    waits: Iterable[Awaitable[T]],
    *,
    concurrency: int | None = None,
    fail_fast: Literal[False],
) -> list[T | BaseException]: ...


async def wait_all[T](
    waits: Iterable[Awaitable[T]],
    *,
    concurrency: int | None = None,
    fail_fast: bool = True,
) -> list[T] | list[T | BaseException]:
    """Run independent waits concurrently, preserving order.

    Args:
        waits: Awaitables, typically ``poll(...)`` or ``Waiter(...)`` calls.
        concurrency: Max waits in flight. None = all at once.
        fail_fast: Raise the first error and cancel the rest. When False,
            errors are returned in place of results.

    Example:
        results = await wait_all(
            [wait_instance_running(i) for i in instance_ids],
            concurrency=10,
        )
    """
    semaphore = asyncio.Semaphore(concurrency) if concurrency else None
    tasks = [asyncio.ensure_future(_bounded(semaphore, w)) for w in waits]
    if not tasks:
        return []

    if not fail_fast:
        return list(await asyncio.gather(*tasks, return_exceptions=True))

    try:
        return list(await asyncio.gather(*tasks))
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
