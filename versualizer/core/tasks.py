"""
Helpers for long-running tasks that stop on a shared cancellation event.

Every loop in the pipeline (poller, fetcher, clock, console reporter)
waits on something else and on the cancel event at the same time, and
exits as soon as the event is set.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar


T = TypeVar("T")


class ShutdownRequested(Exception):
    """The cancel event was set before the awaited operation finished."""


async def race_cancel(awaitable: Awaitable[T], cancel: asyncio.Event) -> T:
    """
    Await `awaitable` unless `cancel` is set first.

    The loser of the race is cancelled. Exceptions raised by the
    awaitable propagate unchanged.

    Raises:
        ShutdownRequested: If cancel was set first.
    """
    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise ShutdownRequested()

    work = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, stop):
            if not task.done():
                task.cancel()

    if work in done:
        return work.result()
    raise ShutdownRequested()


async def sleep_or_cancel(seconds: float, cancel: asyncio.Event) -> bool:
    """
    Sleep for `seconds` or until `cancel` is set.

    Returns:
        True if cancelled, False if the full delay elapsed.
    """
    if cancel.is_set():
        return True
    try:
        await asyncio.wait_for(cancel.wait(), timeout=max(0.0, seconds))
        return True
    except asyncio.TimeoutError:
        return False
