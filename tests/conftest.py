"""Shared test fixtures and dummy classes."""

from __future__ import annotations

import asyncio
import heapq
from typing import Any, Callable

import pytest

from resume_mind_sync.models.polling import StatusReport


class DummyTimer:
    """Timer handle returned by ManualScheduler.call_later."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock: timers only fire inside ``advance``."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = 0
        self._timers: list[tuple[float, int, DummyTimer]] = []
        self._tasks: list[asyncio.Task] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> DummyTimer:
        timer = DummyTimer(self._now + max(0.0, delay_s), callback)
        heapq.heappush(self._timers, (timer.due, self._seq, timer))
        self._seq += 1
        return timer

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.append(task)
        return task

    async def drain(self, rounds: int = 50) -> None:
        """Let spawned tasks run until they finish or block on something."""
        for _ in range(rounds):
            self._tasks = [t for t in self._tasks if not t.done()]
            if not self._tasks:
                return
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        await self.drain()
        while self._timers and self._timers[0][0] <= target:
            due, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = due
            timer.callback()
            await self.drain()
        self._now = target

    def active_timers(self) -> int:
        return sum(1 for _, _, t in self._timers if not t.cancelled)


class DummyFetcher:
    """Async fetcher returning queued results and recording calls."""

    def __init__(self, *results: Any) -> None:
        self.calls: list[str] = []
        self._results = list(results)
        self.default: Any = None

    async def __call__(self, key: str) -> Any:
        self.calls.append(key)
        result = self._results.pop(0) if self._results else self.default
        if isinstance(result, Exception):
            raise result
        return result


class ScriptedChecker:
    """Status check returning scripted results per entity."""

    def __init__(self, scheduler, default: str = "processing", **scripts) -> None:
        self.scheduler = scheduler
        self.default = default
        self.scripts = {k: list(v) for k, v in scripts.items()}
        self.calls: list[tuple[str, float]] = []

    async def __call__(self, entity_id: str) -> StatusReport:
        self.calls.append((entity_id, self.scheduler.now()))
        queue = self.scripts.get(entity_id) or []
        result = queue.pop(0) if queue else self.default
        if isinstance(result, Exception):
            raise result
        if isinstance(result, StatusReport):
            return result
        return StatusReport(result)

    def times(self, entity_id: str) -> list[float]:
        return [t for eid, t in self.calls if eid == entity_id]


class DummyResponse:
    """Dummy HTTP response for testing."""

    def __init__(self, data: object, status: int = 200, text: str = "") -> None:
        self._data = data
        self.status_code = status
        self.text = text or str(data)
        self.ok = 200 <= status < 300

    def json(self) -> object:
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
