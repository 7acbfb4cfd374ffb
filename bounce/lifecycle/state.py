"""Shared lifecycle state: the cancellation token and in-flight tracking."""

import threading
from enum import Enum
from typing import Callable, Optional


class SupervisorState(Enum):
    """Lifecycle of a single listener."""

    IDLE = "idle"
    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class CoordinatorState(Enum):
    """Lifecycle of the process-wide shutdown controller."""

    RUNNING = "running"
    SIGNALED = "signaled"
    DRAINING = "draining"
    EXITING = "exiting"


class ServerLifecycle:
    """Cancellation token shared by both listeners, plus worker tracking.

    Cancellation is one event; listeners also register a callback that
    shuts their socket at that instant. Worker tracking only feeds log
    counts; nothing waits on it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._workers: set[threading.Thread] = set()
        self._cancel_callbacks: list[Callable[[], None]] = []

    def cancel(self) -> None:
        """Fire the cancellation token and its callbacks; repeated calls are no-ops."""
        with self._lock:
            if self._cancel_event.is_set():
                return
            self._cancel_event.set()
            callbacks = list(self._cancel_callbacks)
            self._cancel_callbacks.clear()
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._cancel_event.is_set():
                self._cancel_callbacks.append(callback)
                return
        callback()

    def is_cancelled(self) -> bool:
        """Check if listeners should stop accepting new connections."""
        return self._cancel_event.is_set()

    def wait_cancelled(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses."""
        return self._cancel_event.wait(timeout)

    def register_worker(self, thread: threading.Thread) -> None:
        """Register a worker thread for tracking."""
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.discard(thread)

    def has_worker(self, thread: threading.Thread) -> bool:
        """Return True when the worker is currently tracked."""
        with self._lock:
            return thread in self._workers

    def active_worker_count(self) -> int:
        """Return the number of live tracked worker threads."""
        with self._lock:
            self._workers = {w for w in self._workers if w.is_alive()}
            return len(self._workers)
