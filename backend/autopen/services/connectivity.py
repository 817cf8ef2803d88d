from __future__ import annotations

import logging
import time
from typing import Callable, List

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"

Listener = Callable[[str], None]


class ConnectivityState:
    """
    Process-wide view of whether the hosted backend is reachable.

    Updated by the backend client on every response or transport error.
    Observers register through ``subscribe``; they receive ``"online"`` when
    the state flips back to connected and ``"offline"`` on every transport
    failure.
    """

    def __init__(self, connected: bool = False) -> None:
        self._connected = connected
        self._last_success: float | None = None
        self._failed = False
        self._listeners: List[Listener] = []

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def offline(self) -> bool:
        """True after a transport failure, until the next successful response."""
        return self._failed

    @property
    def last_success(self) -> float | None:
        return self._last_success

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def mark_online(self) -> None:
        was_connected = self._connected
        self._connected = True
        self._failed = False
        self._last_success = time.monotonic()
        if not was_connected:
            logger.info("Backend connection restored")
            self._emit(ONLINE)

    def mark_offline(self) -> None:
        self._connected = False
        self._failed = True
        logger.warning("Backend unreachable; marking offline")
        self._emit(OFFLINE)

    def recently_connected(self, within_seconds: float) -> bool:
        if not self._connected or self._last_success is None:
            return False
        return (time.monotonic() - self._last_success) < within_seconds

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Connectivity listener failed for '%s' event", event)
