"""Cache-related dataclasses."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from ..errors import ApiError


class EntryState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CacheOptions:
    """Per-subscription refresh policy."""

    ttl_s: float = 30.0
    deduping_interval_s: float = 2.0
    refresh_interval_s: float = 0.0
    revalidate_on_focus: bool = False
    revalidate_on_reconnect: bool = False


@dataclass
class Flight:
    """A fetch in progress for one key."""

    mutation_seq: int
    started_at: float
    detached: bool = False
    task: asyncio.Task | None = None


@dataclass
class CacheEntry:
    """Last known snapshot of a remote resource."""

    key: str
    value: object | None = None
    has_value: bool = False
    fetched_at: float | None = None
    error: ApiError | None = None
    state: EntryState = EntryState.IDLE
    invalidated: bool = False
    last_started_at: float | None = None
    flight: Flight | None = field(default=None, repr=False)
    # Bumped when a mutation is invoked / when one is written.
    mutation_seq: int = 0
    applied_seq: int = 0

    def is_stale(self, now: float, ttl_s: float) -> bool:
        if not self.has_value or self.invalidated or self.fetched_at is None:
            return True
        return (now - self.fetched_at) > ttl_s
