"""Named process-wide signals (window focus, network reconnect)."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

FOCUS = "focus"
RECONNECT = "reconnect"


class SignalHub:
    """Observer registry for global revalidation triggers."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[], None]]] = {}

    def subscribe(self, name: str, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` for ``name``; returns the matching unsubscribe."""
        self._listeners.setdefault(name, []).append(callback)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(name)
            if not listeners:
                return
            try:
                listeners.remove(callback)
            except ValueError:
                return
            if not listeners:
                self._listeners.pop(name, None)

        return _unsubscribe

    def emit(self, name: str) -> int:
        listeners = list(self._listeners.get(name, []))
        for callback in listeners:
            try:
                callback()
            except Exception:
                logger.exception("Listener for %s signal failed", name)
        return len(listeners)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, []))


__all__ = ["FOCUS", "RECONNECT", "SignalHub"]
