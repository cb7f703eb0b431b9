"""Cooperative cancellation token.

A single token is created per build and passed explicitly into every
long-running call. Work loops poll it at the start of each iteration and
before spawning an external process; code holding a live resource (a child
process, an open download) registers a callback so cancel() can release it
immediately instead of waiting for the next poll.
"""

import logging
import threading
from typing import Callable, Dict


class CancelledError(Exception):
    """Raised by raise_if_cancelled() once the token has been cancelled."""

    pass


class CancellationToken:
    """Thread-safe cancellation flag with cancel callbacks."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_handle = 0

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Set the flag and run every registered callback once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except KeyboardInterrupt:
                raise
            except Exception as e:
                logging.warning(f"Cancel callback failed: {e}")

    def raise_if_cancelled(self, message: str = "Operation cancelled") -> None:
        if self._event.is_set():
            raise CancelledError(message)

    def register(self, callback: Callable[[], None]) -> int:
        """Register a callback to run on cancellation.

        If the token is already cancelled the callback runs immediately.

        Args:
            callback: Zero-argument callable

        Returns:
            Handle for unregister()
        """
        with self._lock:
            if not self._event.is_set():
                handle = self._next_handle
                self._next_handle += 1
                self._callbacks[handle] = callback
                return handle

        callback()
        return -1

    def unregister(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def wait(self, timeout: float) -> bool:
        """Block until cancelled or the timeout elapses.

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)
