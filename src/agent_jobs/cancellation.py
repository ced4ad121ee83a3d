"""Cooperative cancellation token shared between a job and its execution."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation signal with listener broadcast.

    ``cancel()`` flips the token exactly once and notifies every registered
    listener. Listeners registered after cancellation are invoked immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            listeners = list(self._listeners)
            self._listeners.clear()
        for listener in listeners:
            _notify(listener)

    def on_cancel(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._listeners.append(listener)
                return
        _notify(listener)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; returns the cancelled flag."""

        return self._event.wait(timeout)


def _notify(listener: Callable[[], None]) -> None:
    try:
        listener()
    except Exception:
        logger.exception("Cancellation listener failed")
