"""Keyed resource cache with single-flight fetching and revalidation triggers.

Callers declare interest in a key with ``ResourceCache.get`` and receive a
``Subscription`` whose fields are kept current by the cache. Stale data is
served immediately while a background refetch runs.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from .clock import LoopScheduler, Repeating, Scheduler
from .errors import ApiError
from .models.cache import CacheEntry, CacheOptions, EntryState, Flight
from .signals import FOCUS, RECONNECT, SignalHub

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[Any]]


class Subscription:
    """One caller's view of a cache key.

    ``data``, ``error``, ``is_loading`` and ``is_validating`` are refreshed
    synchronously whenever the entry changes, until ``close()`` is called.
    """

    def __init__(
        self,
        cache: "ResourceCache",
        key: str | None,
        options: CacheOptions,
        on_change: Callable[["Subscription"], None] | None = None,
    ) -> None:
        self.key = key
        self.options = options
        self.data: Any = None
        self.error: ApiError | None = None
        self.is_loading = True
        self.is_validating = False
        self.closed = False
        self._cache = cache
        self._on_change = on_change
        self._timer: Repeating | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    async def mutate(self, data: Any = None) -> Any:
        if self.closed or self.key is None:
            return self.data
        return await self._cache._mutate(self.key, data, owner=self)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._cache._detach(self)

    def _refresh(self, entry: CacheEntry, notify: bool = True) -> None:
        if self.closed:
            return
        self.data = entry.value if entry.has_value else None
        self.error = entry.error
        self.is_validating = entry.flight is not None
        self.is_loading = not entry.has_value and entry.state in (
            EntryState.IDLE,
            EntryState.VALIDATING,
        )
        if notify and self._on_change is not None:
            try:
                self._on_change(self)
            except Exception:
                logger.exception("Change callback for %s failed", self.key)

    def __repr__(self) -> str:
        return (
            f"Subscription(key={self.key!r}, loading={self.is_loading}, "
            f"validating={self.is_validating}, closed={self.closed})"
        )


class ResourceCache:
    """Process-wide cache of remote resource snapshots.

    Args:
        fetcher: Async callable ``fetcher(key) -> payload`` used for every
            network read.
        scheduler: Clock/timer source; defaults to the running event loop.
        signals: Hub delivering focus/reconnect events, if any.
        default_options: Options used when ``get`` receives none.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        scheduler: Scheduler | None = None,
        signals: SignalHub | None = None,
        default_options: CacheOptions | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._scheduler = scheduler or LoopScheduler()
        self._signals = signals
        self._defaults = default_options or CacheOptions()
        self._entries: dict[str, CacheEntry] = {}
        self._subscribers: dict[str, list[Subscription]] = {}

    def get(
        self,
        key: str | None,
        options: CacheOptions | None = None,
        on_change: Callable[[Subscription], None] | None = None,
    ) -> Subscription:
        """Register interest in ``key`` and return its live subscription.

        A ``None`` key returns an inert subscription and fetches nothing.
        Must be called from within a running event loop when a fetch may
        be needed.
        """
        opts = options or self._defaults
        sub = Subscription(self, key, opts, on_change)
        if key is None:
            return sub

        self._subscribers.setdefault(key, []).append(sub)
        entry = self._entry(key)
        if entry.flight is None and entry.is_stale(self._scheduler.now(), opts.ttl_s):
            self._start(entry, deduping_interval_s=opts.deduping_interval_s)
        sub._refresh(entry, notify=False)
        self._attach_triggers(sub)
        return sub

    async def mutate(self, key: str, data: Any = None) -> Any:
        """Update ``key`` locally or force a revalidation.

        ``None`` forces a refetch (joining one already in flight). An
        awaitable is awaited and its result stored. A callable receives the
        current cached value and its result is stored. Stored values are
        fresh and reach every subscriber before this returns.
        """
        return await self._mutate(key, data, owner=None)

    async def revalidate(self, key: str) -> Any:
        """Refetch ``key`` unless a fetch started inside the deduping window."""
        entry = self._entry(key)
        flight = self._start(
            entry, deduping_interval_s=self._defaults.deduping_interval_s, detached=True
        )
        return await self._settle(key, flight)

    def invalidate(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.invalidated = True
        entry.last_started_at = None

    def clear_all(self) -> None:
        self._entries.clear()

    def peek(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def close(self) -> None:
        for subs in list(self._subscribers.values()):
            for sub in list(subs):
                sub.close()

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, []))

    def _entry(self, key: str) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def _attach_triggers(self, sub: Subscription) -> None:
        opts = sub.options
        if opts.refresh_interval_s > 0:
            sub._timer = Repeating(
                self._scheduler, opts.refresh_interval_s, lambda: self._trigger(sub)
            )
        if self._signals is None:
            return
        if opts.revalidate_on_focus:
            sub._unsubscribers.append(
                self._signals.subscribe(FOCUS, lambda: self._trigger(sub))
            )
        if opts.revalidate_on_reconnect:
            sub._unsubscribers.append(
                self._signals.subscribe(RECONNECT, lambda: self._trigger(sub))
            )

    def _trigger(self, sub: Subscription) -> None:
        if sub.closed or sub.key is None:
            return
        self._start(
            self._entry(sub.key), deduping_interval_s=sub.options.deduping_interval_s
        )

    def _detach(self, sub: Subscription) -> None:
        if sub.key is None:
            return
        subs = self._subscribers.get(sub.key)
        if not subs:
            return
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.key, None)

    def _start(
        self,
        entry: CacheEntry,
        deduping_interval_s: float | None = None,
        detached: bool = False,
    ) -> Flight | None:
        """Begin a fetch for ``entry`` or join the one in flight.

        Returns ``None`` when the deduping window suppresses the request.
        """
        if entry.flight is not None:
            entry.flight.detached = entry.flight.detached or detached
            return entry.flight

        now = self._scheduler.now()
        if (
            deduping_interval_s is not None
            and entry.last_started_at is not None
            and (now - entry.last_started_at) < deduping_interval_s
        ):
            logger.debug("Deduped fetch for %s", entry.key)
            return None

        flight = Flight(
            mutation_seq=entry.mutation_seq, started_at=now, detached=detached
        )
        entry.flight = flight
        entry.last_started_at = now
        entry.state = EntryState.VALIDATING
        flight.task = self._scheduler.spawn(self._run(entry, flight))
        self._broadcast(entry.key)
        return flight

    async def _run(self, entry: CacheEntry, flight: Flight) -> None:
        key = entry.key
        value: Any = None
        error: ApiError | None = None
        try:
            value = await self._fetcher(key)
        except ApiError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected error fetching %s", key)
            error = ApiError(0, str(exc) or None)

        if self._entries.get(key) is not entry or entry.flight is not flight:
            logger.debug("Dropping result for %s: entry was cleared", key)
            return
        entry.flight = None

        if not flight.detached and not self._subscribers.get(key):
            logger.debug("Dropping result for %s: no subscribers left", key)
            # A later subscriber must not be deduped against a result nobody kept.
            entry.last_started_at = None
            entry.state = self._settled_state(entry)
            return

        if flight.mutation_seq != entry.mutation_seq:
            logger.debug("Dropping result for %s: superseded by a mutation", key)
            entry.state = self._settled_state(entry)
        elif error is not None:
            logger.warning("Fetch for %s failed: %s", key, error)
            entry.error = error
            entry.state = EntryState.FAILED
        else:
            self._store(entry, value)
        self._broadcast(key)

    async def _mutate(self, key: str, data: Any, owner: Subscription | None) -> Any:
        entry = self._entry(key)
        if data is None:
            flight = self._start(entry, detached=owner is None)
            return await self._settle(key, flight)

        entry.mutation_seq += 1
        seq = entry.mutation_seq
        value = data
        if callable(value):
            value = value(entry.value if entry.has_value else None)
        if inspect.isawaitable(value):
            value = await value

        if owner is not None and owner.closed:
            return None
        if self._entries.get(key) is not entry:
            logger.debug("Dropping mutation for %s: entry was cleared", key)
            return None
        if seq < entry.applied_seq:
            logger.debug("Dropping mutation for %s: a later one was applied", key)
            return entry.value
        entry.applied_seq = seq
        self._store(entry, value)
        self._broadcast(key)
        return value

    async def _settle(self, key: str, flight: Flight | None) -> Any:
        if flight is not None and flight.task is not None:
            await asyncio.shield(flight.task)
        entry = self._entries.get(key)
        return entry.value if entry is not None and entry.has_value else None

    def _store(self, entry: CacheEntry, value: Any) -> None:
        entry.value = value
        entry.has_value = True
        entry.fetched_at = self._scheduler.now()
        entry.error = None
        entry.invalidated = False
        entry.state = (
            EntryState.VALIDATING if entry.flight is not None else EntryState.READY
        )

    @staticmethod
    def _settled_state(entry: CacheEntry) -> EntryState:
        if entry.has_value:
            return EntryState.READY
        if entry.error is not None:
            return EntryState.FAILED
        return EntryState.IDLE

    def _broadcast(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        for sub in list(self._subscribers.get(key, [])):
            sub._refresh(entry)


__all__ = ["Fetcher", "ResourceCache", "Subscription"]
