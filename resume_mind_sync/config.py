"""Central configuration for resume_mind_sync."""

from __future__ import annotations

import logging
import os

from .models.settings import Settings

logger = logging.getLogger(__name__)

_DEFAULT_FORMS_URL = "https://api.web3forms.com/submit"


def _float_env(name: str, default: float) -> float:
    """Read a float environment variable.

    Args:
        name: Environment variable name.
        default: Value used when the variable is unset, empty or invalid.

    Returns:
        The parsed float, or ``default``.

    Example:
        >>> os.environ["CACHE_TTL_S"] = "12.5"
        >>> _float_env("CACHE_TTL_S", 30.0)
        12.5
    """
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid value for %s: %r; using %s", name, raw, default)
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes"}


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Returns:
        Settings object with all configuration values.

    Note:
        Invalid numeric values fall back to sensible defaults.
        Boolean values accept: 1/true/yes (case-insensitive) as True.
    """
    api_url = (os.environ.get("RESUME_MIND_API_URL") or "").strip().rstrip("/")
    api_token = os.environ.get("RESUME_MIND_API_TOKEN") or None

    forms_url = os.environ.get("WEB3FORMS_URL") or _DEFAULT_FORMS_URL
    forms_key = os.environ.get("WEB3FORMS_KEY") or ""

    return Settings(
        API_URL=api_url,
        API_TOKEN=api_token,
        HTTP_TIMEOUT_S=_float_env("HTTP_TIMEOUT_S", 15.0),
        CACHE_TTL_S=_float_env("CACHE_TTL_S", 30.0),
        CACHE_DEDUPING_INTERVAL_S=_float_env("CACHE_DEDUPING_INTERVAL_S", 2.0),
        POLL_INITIAL_INTERVAL_S=_float_env("POLL_INITIAL_INTERVAL_S", 5.0),
        POLL_BACKOFF_INTERVAL_S=_float_env("POLL_BACKOFF_INTERVAL_S", 10.0),
        POLL_BACKOFF_AFTER_S=_float_env("POLL_BACKOFF_AFTER_S", 60.0),
        POLL_MAX_DURATION_S=_float_env("POLL_MAX_DURATION_S", 300.0),
        POLLING_ENABLED=_bool_env("POLLING_ENABLED", True),
        WEB3FORMS_URL=forms_url,
        WEB3FORMS_KEY=forms_key,
    )


settings = _read_settings()


def validate_settings() -> None:
    """Validate critical configuration and log warnings for issues.

    Missing values are reported here; the operations that need them raise
    ``ConfigurationError`` when called.
    """
    if not settings.API_URL:
        logger.error("RESUME_MIND_API_URL environment variable is not set")
    if settings.API_TOKEN is None:
        logger.warning(
            "RESUME_MIND_API_TOKEN is empty; requests will be sent unauthenticated."
        )
    if not settings.WEB3FORMS_KEY:
        logger.warning("WEB3FORMS_KEY is not set; contact form will be unavailable.")


# Exported constants
API_URL: str = settings.API_URL
API_TOKEN: str | None = settings.API_TOKEN
HTTP_TIMEOUT_S: float = settings.HTTP_TIMEOUT_S
WEB3FORMS_URL: str = settings.WEB3FORMS_URL
WEB3FORMS_KEY: str = settings.WEB3FORMS_KEY
