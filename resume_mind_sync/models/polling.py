"""Polling supervisor dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..clock import TimerHandle


class PollPhase(str, Enum):
    STARTING = "starting"
    POLLING_INITIAL = "polling_initial"
    POLLING_BACKOFF = "polling_backoff"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PollingConfig:
    initial_interval_s: float = 5.0
    backoff_interval_s: float = 10.0
    backoff_after_s: float = 60.0
    max_duration_s: float = 300.0
    enabled: bool = True


@dataclass(frozen=True)
class StatusReport:
    """Result of one status check."""

    status: str
    progress_message: str | None = None
    error_message: str | None = None


@dataclass
class PollingTask:
    entity_id: str
    started_at: float
    current_interval_s: float
    config: PollingConfig
    status: str | None = None
    last_poll_at: float | None = None
    consecutive_errors: int = 0
    checks: int = 0
    phase: PollPhase = PollPhase.STARTING
    # One-shot delay currently replacing the regular cadence (HTTP 429).
    rate_limit_delay_s: float | None = None
    timer: TimerHandle | None = field(default=None, repr=False)
