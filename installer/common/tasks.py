# installer/common/tasks.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Coroutine, Generic, Literal, Optional, TypeVar

T = TypeVar("T")

log = logging.getLogger("installer.tasks")

OutcomeStatus = Literal["completed", "failed", "cancelled"]


@dataclass(frozen=True)
class TaskOutcome(Generic[T]):
    """Terminal state of a spawned task: completed(value), failed(error) or cancelled."""
    status: OutcomeStatus
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def of(cls, task: "asyncio.Task[T]") -> "TaskOutcome[T]":
        if task.cancelled():
            return cls("cancelled")
        # retrieving the exception also keeps asyncio from warning about it
        exc = task.exception()
        if exc is not None:
            return cls("failed", error=exc)
        return cls("completed", value=task.result())

    def unwrap(self) -> T:
        if self.status == "completed":
            return self.value  # type: ignore[return-value]
        if self.status == "failed":
            assert self.error is not None
            raise self.error
        raise asyncio.CancelledError()


class TaskHandle(Generic[T]):
    """
    Handle on a spawned task. The spawner owns it: every handle must end
    with join() (natural completion) or cancel() (confirmed termination).
    """

    def __init__(self, task: "asyncio.Task[T]"):
        self._task = task

    @property
    def task(self) -> "asyncio.Task[T]":
        return self._task

    @property
    def name(self) -> str:
        return self._task.get_name()

    def done(self) -> bool:
        return self._task.done()

    async def join(self) -> TaskOutcome[T]:
        # asyncio.wait() does not cancel the child if the joiner is cancelled
        await asyncio.wait({self._task})
        return TaskOutcome.of(self._task)

    async def result(self) -> T:
        return (await self.join()).unwrap()

    async def cancel(self) -> TaskOutcome[T]:
        """Request cancellation and return only once the task has stopped."""
        if not self._task.done():
            log.debug("cancelling task %s", self.name)
            self._task.cancel()

        interrupted = False
        while not self._task.done():
            try:
                await asyncio.wait({self._task})
            except asyncio.CancelledError:
                # keep waiting for the child, re-raise once it is gone
                interrupted = True

        outcome = TaskOutcome.of(self._task)
        log.debug("task %s stopped: %s", self.name, outcome.status)
        if interrupted:
            raise asyncio.CancelledError()
        return outcome


def spawn(coro: Coroutine[Any, Any, T], *, name: Optional[str] = None) -> TaskHandle[T]:
    """Schedule `coro` on the running loop and return its handle."""
    task = asyncio.create_task(coro, name=name)
    log.debug("spawned task %s", task.get_name())
    return TaskHandle(task)


@asynccontextmanager
async def attached(
    coro: Coroutine[Any, Any, T], *, name: Optional[str] = None
) -> AsyncIterator[TaskHandle[T]]:
    """
    Run `coro` in the background for the duration of the block.
    On exit (normal or not) the task is cancelled and its termination awaited.
    """
    handle = spawn(coro, name=name)
    try:
        yield handle
    finally:
        outcome = await handle.cancel()
        if outcome.status == "failed":
            log.warning("background task %s had failed: %s", handle.name, outcome.error)
