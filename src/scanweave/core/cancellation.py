"""Cooperative cancellation for scans."""

from __future__ import annotations

import threading
from typing import Callable, List


class CancellationToken:
    """Thread-safe cancellation flag shared by all tasks of one scan.

    Callbacks registered with :meth:`on_cancel` run once, on the thread
    that calls :meth:`cancel`. A callback registered after cancellation
    runs immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; return True if cancelled."""
        return self._event.wait(timeout)
