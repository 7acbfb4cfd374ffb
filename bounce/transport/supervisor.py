"""Listener supervisor: bind, accept loop, and cancellation-aware shutdown."""

import errno
import logging
import socket
import threading
from typing import Iterable, Optional

from bounce.bootstrap.config import ListenerSettings
from bounce.bootstrap.socket_factory import build_tls_context, create_listener_socket
from bounce.domain.correlation_id import CorrelationLoggerAdapter
from bounce.lifecycle.state import ServerLifecycle, SupervisorState
from bounce.transport.context import WorkerContext
from bounce.transport.worker import handle_client

SUPERVISOR_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("bounce.transport.supervisor"), {}
)

# Accept failures caused by resource exhaustion; wait briefly and retry.
_TRANSIENT_ACCEPT_ERRNOS = {errno.EMFILE, errno.ENFILE, errno.ENOBUFS, errno.ENOMEM}
_TRANSIENT_BACKOFF_SECONDS = 0.05


class ListenerSupervisor:
    """Owns one listener from bind to stop.

    ``start`` binds on the caller's thread, so a TLS credential failure can
    still end the process, then hands the accept loop to a daemon thread.
    The loop stops when the shared lifecycle token is cancelled.
    """

    def __init__(
        self,
        settings: ListenerSettings,
        server_names: Iterable[str],
        lifecycle: ServerLifecycle,
        logger: Optional[CorrelationLoggerAdapter] = None,
    ) -> None:
        self.settings = settings
        self.lifecycle = lifecycle
        self.logger = logger or SUPERVISOR_LOGGER
        self._server_names = tuple(server_names)
        self._state = SupervisorState.IDLE
        self._state_lock = threading.Lock()
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    @property
    def name(self) -> str:
        """Protocol label used in logs and thread names."""
        return self.settings.protocol

    @property
    def state(self) -> SupervisorState:
        """Current state; cancellation flips a serving listener to draining."""
        with self._state_lock:
            state = self._state
        if state is SupervisorState.SERVING and self.lifecycle.is_cancelled():
            return SupervisorState.DRAINING
        return state

    @property
    def bound_address(self) -> Optional[tuple]:
        """Socket address actually bound, useful when the port was 0."""
        if self._socket is None:
            return None
        return self._socket.getsockname()

    def _set_state(self, state: SupervisorState) -> None:
        with self._state_lock:
            self._state = state

    def start(self) -> bool:
        """Bind and begin serving; False when disabled or the bind failed."""
        if not self.settings.enabled:
            self.logger.info(
                "Listener disabled; no address configured",
                extra={"event": "listener_disabled", "listener": self.name},
            )
            return False

        self._set_state(SupervisorState.STARTING)
        tls_context = None
        if self.settings.tls:
            tls_context = build_tls_context(self.settings, self.logger)

        try:
            server_socket = create_listener_socket(self.settings.address)
        except (OSError, ValueError) as error:
            self.logger.error(
                "Error listening",
                extra={
                    "event": "listen_error",
                    "listener": self.name,
                    "address": self.settings.address,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
            self._set_state(SupervisorState.STOPPED)
            self._stopped.set()
            return False

        self._socket = server_socket
        context = WorkerContext(
            settings=self.settings,
            server_names=self._server_names,
            lifecycle=self.lifecycle,
            logger=self.logger,
            tls_context=tls_context,
        )
        self._set_state(SupervisorState.SERVING)
        self.logger.info(
            "Listener serving",
            extra={
                "event": "listener_serving",
                "listener": self.name,
                "address": self.settings.address,
                "server_name": self.settings.server_name,
                "tls": self.settings.tls,
                "keep_alive": self.settings.keep_alive,
            },
        )
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(server_socket, context),
            name=f"{self.name}-accept",
            daemon=True,
        )
        self._thread.start()
        self.lifecycle.on_cancel(lambda: self._interrupt_accept(server_socket))
        return True

    def _interrupt_accept(self, server_socket: socket.socket) -> None:
        """Stop listening as soon as cancellation fires, ahead of the accept poll."""
        try:
            server_socket.shutdown(socket.SHUT_RDWR)
        except OSError as error:
            self.logger.debug(
                "Listening socket already closed",
                extra={
                    "event": "listener_shutdown_skipped",
                    "listener": self.name,
                    "errno": error.errno,
                },
            )

    def _accept_loop(self, server_socket: socket.socket, context: WorkerContext) -> None:
        try:
            while not self.lifecycle.is_cancelled():
                try:
                    client_socket, client_address = server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as error:
                    if self.lifecycle.is_cancelled():
                        break
                    if isinstance(error, ConnectionError):
                        continue
                    if error.errno in _TRANSIENT_ACCEPT_ERRNOS:
                        self.logger.warning(
                            "Transient accept failure",
                            extra={
                                "event": "accept_retry",
                                "listener": self.name,
                                "errno": error.errno,
                            },
                        )
                        self.lifecycle.wait_cancelled(_TRANSIENT_BACKOFF_SECONDS)
                        continue
                    self.logger.error(
                        "Error serving",
                        extra={
                            "event": "serve_error",
                            "listener": self.name,
                            "error_type": type(error).__name__,
                            "error": str(error),
                        },
                    )
                    break

                if self.lifecycle.is_cancelled():
                    client_socket.close()
                    break
                worker = threading.Thread(
                    target=handle_client,
                    args=(client_socket, client_address, context),
                    name=f"{self.name}-worker",
                    daemon=True,
                )
                worker.start()
        finally:
            if self.lifecycle.is_cancelled():
                self._set_state(SupervisorState.DRAINING)
            server_socket.close()
            self._set_state(SupervisorState.STOPPED)
            self._stopped.set()
            self.logger.info(
                "Listener stopped",
                extra={"event": "listener_stopped", "listener": self.name},
            )

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has closed its socket."""
        return self._stopped.wait(timeout)
