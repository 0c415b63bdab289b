"""Per-entity status polling with two-stage backoff and an error ceiling.

One ``PollingTask`` exists per tracked entity. Its timer re-reads the task
from the supervisor's map on every tick, so a task stopped or rescheduled
while a status check is outstanding never acts on stale state.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Mapping

from .clock import LoopScheduler, Scheduler
from .models.polling import PollingConfig, PollingTask, PollPhase, StatusReport

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_ERRORS = 3
_MIN_POLL_GAP_S = 1.0
_RATE_LIMIT_BASE_S = 1.0
_RATE_LIMIT_MAX_S = 30.0

StatusCheck = Callable[[str], Awaitable[StatusReport]]
StatusCallback = Callable[[str, str, "str | None", "str | None"], None]


def rate_limit_delay(consecutive_errors: int) -> float:
    """Delay before the next check after an HTTP 429."""
    return min(_RATE_LIMIT_MAX_S, _RATE_LIMIT_BASE_S * (2**consecutive_errors))


class PollingSupervisor:
    """Tracks long-running entities until they reach a terminal status.

    Args:
        get_status: Async status check for one entity id. Raises on
            failure; a ``status`` attribute of 429 marks rate limiting.
        is_terminal: Predicate deciding when polling for an entity ends.
        scheduler: Clock/timer source; defaults to the running event loop.
        config: Initial configuration, replaced by ``sync(config=...)``.
    """

    def __init__(
        self,
        get_status: StatusCheck,
        is_terminal: Callable[[str | None], bool],
        scheduler: Scheduler | None = None,
        config: PollingConfig | None = None,
    ) -> None:
        self._get_status = get_status
        self._is_terminal = is_terminal
        self._scheduler = scheduler or LoopScheduler()
        self._config = config or PollingConfig()
        self._tasks: dict[str, PollingTask] = {}
        self._on_status_update: StatusCallback | None = None
        self._closed = False

    @property
    def config(self) -> PollingConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    def sync(
        self,
        entities: Mapping[str, str | None],
        on_status_update: StatusCallback | None = None,
        config: PollingConfig | None = None,
    ) -> None:
        """Reconcile running tasks with ``entities`` (id -> current status).

        New non-terminal ids start polling immediately; tracked ids that are
        missing or terminal are stopped. Tasks already running keep the
        configuration they were started with.
        """
        if self._closed:
            logger.warning("sync() called after shutdown; ignoring")
            return
        if on_status_update is not None:
            self._on_status_update = on_status_update
        if config is not None:
            self._config = config

        if not self._config.enabled:
            for entity_id in list(self._tasks):
                self.stop(entity_id)
            return

        active: dict[str, str | None] = {}
        for entity_id, status in entities.items():
            if not self._is_terminal(status):
                active[str(entity_id)] = status

        for entity_id, status in active.items():
            if entity_id not in self._tasks:
                self._start(entity_id, status)

        for entity_id in list(self._tasks):
            if entity_id not in active:
                self.stop(entity_id)

    def stop(self, entity_id: str) -> bool:
        task = self._tasks.pop(entity_id, None)
        if task is None:
            return False
        if task.timer is not None:
            task.timer.cancel()
            task.timer = None
        task.phase = PollPhase.STOPPED
        logger.debug("Stopped polling for %s after %d checks", entity_id, task.checks)
        return True

    def shutdown(self) -> None:
        """Stop every task; later ``sync`` calls are ignored."""
        self._closed = True
        for entity_id in list(self._tasks):
            self.stop(entity_id)

    def tracked(self) -> set[str]:
        return set(self._tasks)

    def task(self, entity_id: str) -> PollingTask | None:
        return self._tasks.get(entity_id)

    def _start(self, entity_id: str, status: str | None) -> None:
        cfg = self._config
        task = PollingTask(
            entity_id=entity_id,
            started_at=self._scheduler.now(),
            current_interval_s=cfg.initial_interval_s,
            config=cfg,
            status=status,
        )
        self._tasks[entity_id] = task
        self._arm(task, cfg.initial_interval_s)
        task.phase = PollPhase.POLLING_INITIAL
        logger.debug(
            "Started polling for %s (interval=%ss)", entity_id, cfg.initial_interval_s
        )
        self._scheduler.spawn(self._tick(entity_id))

    def _arm(self, task: PollingTask, delay_s: float) -> None:
        if task.timer is not None:
            task.timer.cancel()
        entity_id = task.entity_id
        task.timer = self._scheduler.call_later(
            delay_s, lambda: self._on_timer(entity_id)
        )

    def _on_timer(self, entity_id: str) -> None:
        task = self._tasks.get(entity_id)
        if task is None:
            return
        # Any rate-limit delay has now elapsed; resume the regular cadence.
        task.rate_limit_delay_s = None
        self._arm(task, task.current_interval_s)
        self._scheduler.spawn(self._tick(entity_id))

    async def _tick(self, entity_id: str) -> None:
        task = self._tasks.get(entity_id)
        if task is None:
            return
        cfg = task.config
        now = self._scheduler.now()
        elapsed = now - task.started_at

        if elapsed > cfg.max_duration_s:
            logger.info("Polling for %s timed out after %.0fs", entity_id, elapsed)
            self.stop(entity_id)
            return

        if elapsed > cfg.backoff_after_s and task.phase is PollPhase.POLLING_INITIAL:
            task.phase = PollPhase.POLLING_BACKOFF
            task.current_interval_s = cfg.backoff_interval_s
            if task.rate_limit_delay_s is None:
                self._arm(task, cfg.backoff_interval_s)

        if task.last_poll_at is not None and (now - task.last_poll_at) < _MIN_POLL_GAP_S:
            return

        task.last_poll_at = now
        task.checks += 1
        try:
            report = await self._get_status(entity_id)
        except Exception as exc:
            self._check_failed(task, exc)
            return

        if self._tasks.get(entity_id) is not task:
            return
        task.last_poll_at = self._scheduler.now()
        task.consecutive_errors = 0
        task.status = report.status

        callback = self._on_status_update
        if callback is not None:
            try:
                callback(
                    entity_id,
                    report.status,
                    report.progress_message,
                    report.error_message,
                )
            except Exception:
                logger.exception("Status callback for %s failed", entity_id)

        if self._is_terminal(report.status):
            logger.info("%s reached terminal status %s", entity_id, report.status)
            self.stop(entity_id)

    def _check_failed(self, task: PollingTask, exc: Exception) -> None:
        entity_id = task.entity_id
        if self._tasks.get(entity_id) is not task:
            return
        task.last_poll_at = self._scheduler.now()
        task.consecutive_errors += 1
        if task.consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
            logger.warning(
                "Stopping polling for %s after %d consecutive errors: %s",
                entity_id,
                task.consecutive_errors,
                exc,
            )
            self.stop(entity_id)
            return

        logger.debug("Status check for %s failed: %s", entity_id, exc)
        if getattr(exc, "status", None) == 429:
            delay = rate_limit_delay(task.consecutive_errors)
            task.rate_limit_delay_s = delay
            self._arm(task, delay)


__all__ = [
    "MAX_CONSECUTIVE_ERRORS",
    "PollingSupervisor",
    "StatusCallback",
    "StatusCheck",
    "rate_limit_delay",
]
