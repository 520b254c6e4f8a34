# installer/common/tracing.py
"""
Per-attempt log context.

The retry supervisor enters an attempt before each run of its task; every log
record emitted while that attempt runs (including by collaborators and their
libraries) carries the action name and the `k/N` ordinal.
"""
from __future__ import annotations
import logging
from contextvars import ContextVar
from typing import Callable, NamedTuple, Optional


class AttemptInfo(NamedTuple):
    action: str
    number: int
    total: int

    @property
    def label(self) -> str:
        return f"{self.number}/{self.total}"


_CURRENT_ATTEMPT: ContextVar[Optional[AttemptInfo]] = ContextVar("_CURRENT_ATTEMPT", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(action)s %(attempt)s]: %(message)s"


def enter_attempt(action: str, number: int, total: int) -> None:
    _CURRENT_ATTEMPT.set(AttemptInfo(action, number, total))


def leave_attempt() -> None:
    _CURRENT_ATTEMPT.set(None)


def current_attempt() -> Optional[AttemptInfo]:
    return _CURRENT_ATTEMPT.get()


def get_attempt() -> Optional[str]:
    """`k/N` of the running attempt, or None outside of one."""
    info = _CURRENT_ATTEMPT.get()
    return info.label if info else None


def _install_logrecord_factory() -> None:
    old_factory: Callable[..., logging.LogRecord] = logging.getLogRecordFactory()  # type: ignore

    def record_factory(*args, **kwargs) -> logging.LogRecord:  # type: ignore
        record = old_factory(*args, **kwargs)
        info = _CURRENT_ATTEMPT.get()
        if not hasattr(record, "action"):
            record.action = info.action if info else "-"
        if not hasattr(record, "attempt"):
            record.attempt = info.label if info else "-"
        return record

    logging.setLogRecordFactory(record_factory)


def setup_logging(level: int = logging.INFO) -> None:
    _install_logrecord_factory()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # httpx logs every probe request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
