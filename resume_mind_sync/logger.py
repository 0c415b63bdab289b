"""Logging setup for the resume_mind_sync watcher.

``LOG_LEVEL`` applies to the package loggers. The HTTP client loggers log a
line per request: ``httpx``/``httpcore`` for API calls and ``urllib3`` for the
``requests``-based contact form. They stay at WARNING unless ``HTTP_DEBUG`` is
set, since status polling would otherwise flood the output.
"""
from __future__ import annotations

import logging
import os

from .config import _bool_env

PACKAGE_LOGGER = "resume_mind_sync"
API_HTTP_LOGGERS = ("httpx", "httpcore")
FORM_HTTP_LOGGERS = ("urllib3",)


def setup_logging(level: str | None = None) -> None:
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    package_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(package_level)
    logging.getLogger(PACKAGE_LOGGER).setLevel(package_level)

    http_level = logging.DEBUG if _bool_env("HTTP_DEBUG", False) else logging.WARNING
    for name in API_HTTP_LOGGERS + FORM_HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


__all__ = ["setup_logging"]
