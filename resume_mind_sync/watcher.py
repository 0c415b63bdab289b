"""Keeps the document list cache and the status poller in step.

The cache and the supervisor never reference each other; this watcher
feeds the cached list into the supervisor and turns status updates back
into cache mutations and invalidations.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

from .cache import ResourceCache, Subscription
from .clock import LoopScheduler, Scheduler
from .documents import DocumentFilters, apply_status, documents_path, is_terminal_status
from .errors import ApiError
from .graph import document_graph_path
from .models.cache import CacheOptions
from .models.polling import PollingConfig
from .polling import PollingSupervisor

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, str, "str | None", "str | None"], None]


class DocumentWatcher:
    def __init__(
        self,
        cache: ResourceCache,
        supervisor: PollingSupervisor,
        filters: DocumentFilters | None = None,
        graph_keys: Iterable[str] = (),
        options: CacheOptions | None = None,
        polling_config: PollingConfig | None = None,
        on_status: StatusListener | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.key = documents_path(filters)
        self._cache = cache
        self._supervisor = supervisor
        self._graph_keys = list(graph_keys)
        self._options = options
        self._polling_config = polling_config
        self._on_status = on_status
        self._scheduler = scheduler or LoopScheduler()
        self._sub: Subscription | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def documents(self) -> list[dict[str, Any]]:
        if self._sub is None or not isinstance(self._sub.data, list):
            return []
        return self._sub.data

    @property
    def error(self) -> ApiError | None:
        """Error of the last list load, when no list is available to show."""
        if self._sub is None or self._sub.data is not None:
            return None
        return self._sub.error

    @property
    def idle(self) -> bool:
        """True once the list has loaded and nothing is being polled."""
        if self._sub is None or self._sub.is_loading:
            return False
        if self._supervisor.tracked():
            return False
        return all(task.done() for task in self._pending)

    def start(self) -> Subscription:
        if self._sub is not None:
            return self._sub
        self._sub = self._cache.get(self.key, self._options, on_change=self._list_changed)
        self._list_changed(self._sub)
        return self._sub

    async def wait_idle(self, poll_s: float = 1.0) -> None:
        while not self.idle:
            await asyncio.sleep(poll_s)

    def close(self) -> None:
        if self._sub is not None:
            self._sub.close()
        self._supervisor.shutdown()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def _list_changed(self, sub: Subscription) -> None:
        if sub.closed:
            return
        if sub.error is not None:
            logger.warning("Document list error: %s", sub.error)
        entities = {
            str(doc["id"]): doc.get("status")
            for doc in (sub.data if isinstance(sub.data, list) else [])
            if isinstance(doc, dict) and "id" in doc
        }
        self._supervisor.sync(entities, self._status_updated, self._polling_config)

    def _status_updated(
        self,
        document_id: str,
        status: str,
        progress_message: str | None = None,
        error_message: str | None = None,
    ) -> None:
        logger.info(
            "Document %s: %s%s",
            document_id,
            status,
            f" ({progress_message})" if progress_message else "",
        )
        if self._on_status is not None:
            self._on_status(document_id, status, progress_message, error_message)
        self._spawn(
            self._apply_update(document_id, status, progress_message, error_message)
        )

    async def _apply_update(
        self,
        document_id: str,
        status: str,
        progress_message: str | None,
        error_message: str | None,
    ) -> None:
        await self._cache.mutate(
            self.key,
            lambda docs: apply_status(
                docs, document_id, status, progress_message, error_message
            ),
        )
        if not is_terminal_status(status):
            return
        self._cache.invalidate(document_graph_path(document_id))
        for key in self._graph_keys:
            self._cache.invalidate(key)
        await self._cache.mutate(self.key)

    def _spawn(self, coro) -> None:
        task = self._scheduler.spawn(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Applying a status update failed", exc_info=exc)
