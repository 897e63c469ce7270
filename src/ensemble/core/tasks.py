"""Cooperative cancellation and failure-tolerant fan-out."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional, Sequence

from .errors import OperationCancelledError


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError()


async def sleep_cancellable(delay: float, cancel_event: Optional[asyncio.Event] = None) -> None:
    """Sleep for ``delay`` seconds, waking early with an error if cancelled."""
    raise_if_cancelled(cancel_event)
    if delay <= 0:
        return
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError()


async def gather_settled(
    coros: Sequence[Awaitable[Any]],
    cancel_event: Optional[asyncio.Event] = None,
) -> list[Any]:
    """Run ``coros`` concurrently and wait for all of them.

    Returns one entry per coroutine in the order given: the result, or the
    exception it raised. Setting ``cancel_event`` cancels whatever is still
    running and raises ``OperationCancelledError``.
    """
    raise_if_cancelled(cancel_event)
    tasks = [asyncio.ensure_future(c) for c in coros]
    watcher = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None

    try:
        pending = set(tasks)
        while pending:
            waiting = pending | {watcher} if watcher is not None else pending
            done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
            if watcher is not None and watcher in done:
                raise OperationCancelledError()
            pending -= done
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    finally:
        if watcher is not None:
            watcher.cancel()

    outcomes: list[Any] = []
    for task in tasks:
        if task.cancelled():
            outcomes.append(OperationCancelledError())
        elif task.exception() is not None:
            outcomes.append(task.exception())
        else:
            outcomes.append(task.result())
    return outcomes
