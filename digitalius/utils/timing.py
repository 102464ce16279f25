"""
Stage timing and the per-request deadline shared with store reads.

Usage:
    with Timer("dispatch") as t:
        records = await dispatcher.fetch(intent)
    logger.info("took %.1fms", t.elapsed_ms)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.timing")


class Timer:
    """Simple context-manager timer."""

    def __init__(self, label: str = ""):
        self.label = label
        self._start: float = 0.0
        self.elapsed_s: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_s * 1000

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: Any) -> None:
        self.elapsed_s = time.perf_counter() - self._start
        if self.label:
            logger.debug("%s completed in %.1fms", self.label, self.elapsed_ms)


class Deadline:
    """Absolute point in time by which every store read of a request must finish."""

    def __init__(self, seconds: float):
        self.expires_at = time.monotonic() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


_current_deadline: ContextVar[Deadline | None] = ContextVar("digitalius_deadline", default=None)


@contextmanager
def request_deadline(seconds: float) -> Iterator[Deadline]:
    """
    Publish a Deadline to every task started inside the block.

    Tasks copy the context when they are created, so reads fanned out
    with ``asyncio.gather`` see the same deadline.
    """
    deadline = Deadline(seconds)
    token = _current_deadline.set(deadline)
    try:
        yield deadline
    finally:
        _current_deadline.reset(token)


def current_deadline() -> Deadline | None:
    return _current_deadline.get()
