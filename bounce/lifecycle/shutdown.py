"""Process-wide shutdown coordination: signals, cancellation, fixed deadline."""

import logging
import signal
import threading
import time
from datetime import timedelta
from typing import Iterable, Optional

from bounce.domain.correlation_id import CorrelationLoggerAdapter
from bounce.lifecycle.state import CoordinatorState, ServerLifecycle

SHUTDOWN_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bounce.lifecycle"), {})

# SIGKILL cannot be caught; SIGHUP is POSIX only.
SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGHUP", "SIGINT", "SIGTERM") if hasattr(signal, name)
)

_WAKE_INTERVAL_SECONDS = 0.5


def _signal_name(signum: Optional[int]) -> str:
    if signum is None:
        return "manual"
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class ShutdownCoordinator:
    """Waits for a termination request, cancels listeners, then waits out the deadline.

    There is no readiness check: once the deadline elapses ``run`` returns
    whatever is still in flight, and the caller exits the process.
    """

    def __init__(
        self,
        lifecycle: ServerLifecycle,
        deadline: timedelta,
        logger: Optional[CorrelationLoggerAdapter] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.deadline = deadline
        self.logger = logger or SHUTDOWN_LOGGER
        self._requested = threading.Event()
        self._signum: Optional[int] = None
        self._state = CoordinatorState.RUNNING

    @property
    def state(self) -> CoordinatorState:
        """Current coordinator state."""
        return self._state

    def install_signal_handlers(self, signals: Iterable[int] = SHUTDOWN_SIGNALS) -> None:
        """Subscribe once to the termination signals; must run on the main thread."""
        for signum in signals:
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum: int, _frame) -> None:
        self.request_shutdown(signum)

    def request_shutdown(self, signum: Optional[int] = None) -> bool:
        """Record a shutdown request; only the first one counts."""
        if self._requested.is_set():
            return False
        self._signum = signum
        self._requested.set()
        return True

    def wait_requested(self, timeout: Optional[float] = None) -> bool:
        """Block until a shutdown request arrives or ``timeout`` elapses."""
        return self._requested.wait(timeout)

    def run(self) -> int:
        """Block until shutdown, drain for the deadline, return in-flight count."""
        while not self._requested.wait(_WAKE_INTERVAL_SECONDS):
            pass
        self._state = CoordinatorState.SIGNALED
        self.logger.info(
            "Shutdown signal received",
            extra={"event": "shutdown_signal", "signal": _signal_name(self._signum)},
        )

        deadline_seconds = max(0.0, self.deadline.total_seconds())
        self.lifecycle.cancel()
        self._state = CoordinatorState.DRAINING
        self.logger.info(
            "Listeners draining",
            extra={"event": "shutdown_draining", "deadline_seconds": deadline_seconds},
        )

        time.sleep(deadline_seconds)

        self._state = CoordinatorState.EXITING
        in_flight = self.lifecycle.active_worker_count()
        self.logger.info(
            "Shutdown deadline reached",
            extra={"event": "shutdown_exiting", "in_flight": in_flight},
        )
        return in_flight
