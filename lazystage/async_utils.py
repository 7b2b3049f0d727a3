"""Small asyncio helpers: latest-request-wins dispatch and debounce timers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestRequest(Generic[T]):
    """Run requests so that only the newest one's result is delivered.

    A superseded request is not cancelled; its child processes finish and
    its result is discarded when it arrives.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._in_flight = 0

    @property
    def is_pending(self) -> bool:
        return self._in_flight > 0

    async def run(self, factory: Callable[[], Awaitable[T]]) -> tuple[bool, T | None]:
        """Await ``factory()``; returns ``(True, result)`` only if still newest."""
        self._generation += 1
        token = self._generation
        self._in_flight += 1
        try:
            result = await factory()
        finally:
            self._in_flight -= 1
        if token != self._generation:
            logger.debug("discarding superseded result (request %d, latest %d)", token, self._generation)
            return False, None
        return True, result

    def cancel(self) -> None:
        """Discard whatever is in flight when it arrives."""
        self._generation += 1


class Debouncer:
    """Coalesce bursts of ``trigger()`` calls into one callback after a delay."""

    def __init__(self, delay_ms: int, callback: Callable[[], object]) -> None:
        self.delay_ms = delay_ms
        self.callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_ms / 1000.0, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        result = self.callback()
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("debounced callback failed", exc_info=exc)


__all__ = ["Debouncer", "LatestRequest"]
