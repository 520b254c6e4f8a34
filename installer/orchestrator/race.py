# installer/orchestrator/race.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, TypeVar

from installer.common.errors import AttemptTimedOutError
from installer.common.tasks import spawn

T = TypeVar("T")

log = logging.getLogger("installer.race")


async def run_with_timeout(
    task_fn: Callable[[], Coroutine[Any, Any, T]],
    timeout_seconds: float,
    *,
    name: str = "task",
) -> T:
    """
    Race `task_fn()` against a timer of `timeout_seconds`.

    Returns the task's result or re-raises its error. When the timer wins the
    task is cancelled, its termination is awaited, and AttemptTimedOutError is
    raised. Nothing started by the task keeps running after this returns.
    """
    work = spawn(task_fn(), name=name)
    timer = spawn(asyncio.sleep(timeout_seconds), name=f"{name}-timer")

    try:
        await asyncio.wait({work.task, timer.task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await work.cancel()
        await timer.cancel()
        raise

    if work.done():
        await timer.cancel()
        return (await work.join()).unwrap()

    await work.cancel()
    log.warning("%s timed out after %s seconds", name, timeout_seconds)
    raise AttemptTimedOutError(timeout_seconds)
