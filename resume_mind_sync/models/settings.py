"""Configuration dataclass."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Settings:
    """Configuration settings for resume_mind_sync.

    All settings are loaded from environment variables with sensible defaults.
    """

    API_URL: str
    API_TOKEN: str | None
    HTTP_TIMEOUT_S: float
    CACHE_TTL_S: float
    CACHE_DEDUPING_INTERVAL_S: float
    POLL_INITIAL_INTERVAL_S: float
    POLL_BACKOFF_INTERVAL_S: float
    POLL_BACKOFF_AFTER_S: float
    POLL_MAX_DURATION_S: float
    POLLING_ENABLED: bool
    WEB3FORMS_URL: str
    WEB3FORMS_KEY: str
