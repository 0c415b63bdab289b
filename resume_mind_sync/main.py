"""Entrypoint for the headless document watcher.

Loads the document list, polls every document still being analyzed and
exits once all of them have settled.
"""

from __future__ import annotations

import asyncio
import logging

from . import config
from .api import ApiClient, static_token
from .cache import ResourceCache
from .documents import is_terminal_status, status_checker
from .errors import ApiError, ConfigurationError
from .graph import user_graph_path
from .logger import setup_logging
from .models.cache import CacheOptions
from .models.polling import PollingConfig
from .polling import PollingSupervisor
from .signals import SignalHub
from .watcher import DocumentWatcher

logger = logging.getLogger(__name__)


def polling_config_from_settings() -> PollingConfig:
    s = config.settings
    return PollingConfig(
        initial_interval_s=s.POLL_INITIAL_INTERVAL_S,
        backoff_interval_s=s.POLL_BACKOFF_INTERVAL_S,
        backoff_after_s=s.POLL_BACKOFF_AFTER_S,
        max_duration_s=s.POLL_MAX_DURATION_S,
        enabled=s.POLLING_ENABLED,
    )


def cache_options_from_settings() -> CacheOptions:
    s = config.settings
    return CacheOptions(ttl_s=s.CACHE_TTL_S, deduping_interval_s=s.CACHE_DEDUPING_INTERVAL_S)


async def watch() -> None:
    client = ApiClient(
        config.API_URL,
        token_provider=static_token(config.API_TOKEN),
        timeout_s=config.HTTP_TIMEOUT_S,
    )
    async with client:
        cache = ResourceCache(
            client.get, signals=SignalHub(), default_options=cache_options_from_settings()
        )
        supervisor = PollingSupervisor(status_checker(client), is_terminal_status)
        watcher = DocumentWatcher(
            cache,
            supervisor,
            graph_keys=[user_graph_path()],
            polling_config=polling_config_from_settings(),
        )
        watcher.start()
        try:
            await watcher.wait_idle()
            if watcher.error is not None:
                raise watcher.error
            logger.info("All %d document(s) settled", len(watcher.documents))
        finally:
            watcher.close()
            cache.close()


def run() -> None:
    setup_logging()
    config.validate_settings()
    if not config.API_URL:
        raise ConfigurationError("RESUME_MIND_API_URL environment variable is not set")

    logger.info("Starting resume_mind_sync watcher")
    try:
        asyncio.run(watch())
    except KeyboardInterrupt:
        logger.info("Interrupted; stopping")
    except ApiError as exc:
        logger.error("Could not load documents: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    run()
