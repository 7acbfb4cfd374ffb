"""Worker thread logic for handling individual client connections."""

import socket
import ssl
import threading
from datetime import timedelta
from typing import Optional

from bounce.domain.correlation_id import (
    clear_correlation_id,
    generate_correlation_id,
    set_correlation_id,
)
from bounce.domain.request_info import classify_request, format_address
from bounce.domain.response_builders import bad_request_response
from bounce.pipeline.io import MalformedRequest, receive_request, send_response
from bounce.pipeline.router import route_request
from bounce.transport.context import WorkerContext


def timeout_seconds(value: timedelta) -> Optional[float]:
    """Socket timeout for a configured duration; zero or negative means none."""
    seconds = value.total_seconds()
    return seconds if seconds > 0 else None


def _serve_requests(
    client_socket: socket.socket, client_addr_str: str, context: WorkerContext
) -> None:
    settings = context.settings
    log = context.logger
    read_timeout = timeout_seconds(settings.read_timeout)
    write_timeout = timeout_seconds(settings.write_timeout)
    idle_timeout = timeout_seconds(settings.idle_timeout) or read_timeout

    buffer = b""
    served = 0
    while True:
        if served and context.lifecycle.is_cancelled():
            break
        try:
            request, buffer = receive_request(
                client_socket,
                buffer,
                read_timeout,
                idle_timeout if served else read_timeout,
            )
        except MalformedRequest as error:
            log.warning(
                "Malformed request received",
                extra={
                    "event": "malformed_request",
                    "client": client_addr_str,
                    "error": str(error),
                },
            )
            send_response(client_socket, bad_request_response(), write_timeout)
            break
        if request is None:
            break

        info = classify_request(
            client_addr_str, request.host, request.headers.get("x-forwarded-for", "")
        )
        response = route_request(request, info, context.server_names, log)
        if (
            not settings.keep_alive
            or request.declares_body
            or context.lifecycle.is_cancelled()
        ):
            response.close_connection = True
        send_response(client_socket, response, write_timeout)
        served += 1
        if response.close_connection:
            break


def _close_client(client_socket: socket.socket) -> None:
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Serve requests on one accepted connection until it closes."""
    current_thread = threading.current_thread()
    context.lifecycle.register_worker(current_thread)
    client_addr_str = format_address(client_address)
    log = context.logger
    set_correlation_id(generate_correlation_id())

    try:
        if context.tls_context is not None:
            client_socket.settimeout(timeout_seconds(context.settings.read_timeout))
            client_socket = context.tls_context.wrap_socket(
                client_socket, server_side=True
            )
        _serve_requests(client_socket, client_addr_str, context)
    except ssl.SSLError as error:
        log.warning(
            "TLS error on client connection",
            extra={
                "event": "tls_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": getattr(error, "reason", None) or str(error),
            },
        )
    except (ConnectionError, TimeoutError, OSError, UnicodeDecodeError) as error:
        log.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    finally:
        context.lifecycle.cleanup_worker(current_thread)
        _close_client(client_socket)
        log.debug(
            "Socket closed", extra={"event": "socket_closed", "client": client_addr_str}
        )
        clear_correlation_id()
