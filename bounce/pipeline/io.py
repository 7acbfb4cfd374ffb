"""HTTP Input/Output operations."""

import logging
import socket
import time
from typing import Optional, Tuple

from bounce.domain.correlation_id import CorrelationLoggerAdapter
from bounce.domain.http_types import HttpRequest, HttpResponse

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bounce.io"), {})

HEADER_DELIMITER = b"\r\n\r\n"
RECV_SIZE = 4096
MAX_HEADER_BYTES = 1 << 20


class MalformedRequest(ValueError):
    """Raised when the request head cannot be parsed."""


def _recv_with_deadline(
    client_socket: socket.socket, deadline_ns: Optional[int]
) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    if deadline_ns is None:
        client_socket.settimeout(None)
        return client_socket.recv(RECV_SIZE)
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError("Request deadline exceeded")
    client_socket.settimeout(remaining_ns / 1_000_000_000)
    return client_socket.recv(RECV_SIZE)


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Split the request line into method, target and protocol version."""
    parts = request_line.split(" ")
    if len(parts) != 3 or not all(parts):
        raise MalformedRequest(f"invalid request line {request_line!r}")
    method, target, version = parts
    if not version.startswith("HTTP/"):
        raise MalformedRequest(f"invalid protocol version {version!r}")
    return method, target, version


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed: dict[str, str] = {}
    for line in lines:
        if not line:
            continue
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            raise MalformedRequest(f"invalid header line {line!r}")
        parsed.setdefault(name.lower(), value.strip())
    return parsed


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    read_timeout: Optional[float],
    idle_timeout: Optional[float],
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes until a complete request head is available.

    Returns ``(None, b"")`` when the peer closes or stays idle past
    ``idle_timeout`` before sending anything.
    """
    if not buffer:
        client_socket.settimeout(idle_timeout)
        try:
            buffer = client_socket.recv(RECV_SIZE)
        except TimeoutError:
            IO_LOGGER.debug("Idle timeout reached", extra={"event": "idle_timeout"})
            return None, b""
        if not buffer:
            return None, b""

    deadline_ns = (
        None if read_timeout is None else time.monotonic_ns() + int(read_timeout * 1e9)
    )
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise MalformedRequest("request head too large")
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("iso-8859-1").split("\r\n")
    method, target, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])
    IO_LOGGER.debug(
        "Parsed request", extra={"event": "request_parsed", "method": method, "route": target}
    )
    return HttpRequest(method, target, version, headers), remainder


def send_response(
    client_socket: socket.socket,
    response: HttpResponse,
    write_timeout: Optional[float] = None,
) -> None:
    """Serialize and send the HTTP response over the socket."""
    headers = dict(response.headers)
    headers.setdefault("Content-Length", str(len(response.body)))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER
    client_socket.settimeout(write_timeout)
    client_socket.sendall(header_block + response.body)
    IO_LOGGER.debug(
        "Sent response",
        extra={"event": "response_sent", "status_code": response.status_code},
    )
