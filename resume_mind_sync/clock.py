"""Timer, clock and task-spawning seam shared by the cache and the supervisor.

Everything time-related goes through a ``Scheduler`` so tests can drive a
virtual clock instead of sleeping.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay_s), callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = self.loop.create_task(coro)
        # The loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed", exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)


class Repeating:
    """Periodic timer built on one-shot ``call_later`` handles."""

    def __init__(
        self, scheduler: Scheduler, interval_s: float, callback: Callable[[], None]
    ) -> None:
        self._scheduler = scheduler
        self._interval_s = interval_s
        self._callback = callback
        self._handle: TimerHandle | None = None
        self._cancelled = False
        self._arm()

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(self._interval_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._arm()
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


__all__ = ["LoopScheduler", "Repeating", "Scheduler", "TimerHandle"]
