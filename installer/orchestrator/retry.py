# installer/orchestrator/retry.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Collection, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from installer.common.errors import ErrorKind, kind_of
from installer.common.tracing import enter_attempt, leave_attempt

T = TypeVar("T")

log = logging.getLogger("installer.retry")


async def retry_upon_any_error(
    *,
    task: Callable[[], Awaitable[T]],
    max_attempts: int,
    delay_seconds: float,
    action_name: str,
    do_not_log_detail_for: Collection[ErrorKind] = (),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run `task()` until it succeeds, at most `max_attempts` times in total.

    Errors whose kind is in `do_not_log_detail_for` are logged on one line;
    anything else is logged with its traceback. After the last attempt the
    last error is re-raised as is.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    attempt_number = 0

    def _before(rs: RetryCallState) -> None:
        nonlocal attempt_number
        attempt_number = rs.attempt_number
        enter_attempt(action_name, rs.attempt_number, max_attempts)
        log.info("%s: attempt %d of %d", action_name, rs.attempt_number, max_attempts)

    def _after(rs: RetryCallState) -> None:
        # called for every failed attempt, the last one included
        e = rs.outcome.exception()
        kind = kind_of(e)
        if kind is not None and kind in do_not_log_detail_for:
            log.info("%s: attempt %d failed: %s", action_name, rs.attempt_number, e)
        else:
            log.error(
                "%s: attempt %d failed with %s: %s",
                action_name, rs.attempt_number, e.__class__.__name__, e,
                exc_info=e,
            )

    def _before_sleep(rs: RetryCallState) -> None:
        log.info("%s: retry in %s seconds", action_name, rs.next_action.sleep)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay_seconds),
        # SystemExit and cancellation pass straight through
        retry=retry_if_exception_type(Exception),
        before=_before,
        after=_after,
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    async def _attempt() -> T:
        result = await task()
        log.info("%s: attempt %d succeeded", action_name, attempt_number)
        return result

    try:
        return await retrying(_attempt)
    except Exception:
        log.error("%s: giving up after %d attempt(s)", action_name, attempt_number)
        raise
    finally:
        leave_attempt()
