"""Best-effort connection and host metadata for inbound requests."""

from dataclasses import dataclass
from typing import Iterable


def split_host_port(value: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[v6]:port`` into its parts.

    Raises ValueError when the port is missing or the address is malformed.
    """
    if value.startswith("["):
        end = value.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {value!r}")
        host, rest = value[1:end], value[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {value!r}")
        port = rest[1:]
        if ":" in port:
            raise ValueError(f"too many colons in address {value!r}")
        return host, port

    if ":" not in value:
        raise ValueError(f"missing port in address {value!r}")
    host, port = value.rsplit(":", 1)
    if ":" in host:
        raise ValueError(f"too many colons in address {value!r}")
    if "[" in host or "]" in host or "]" in port:
        raise ValueError(f"unexpected bracket in address {value!r}")
    return host, port


def split_requested_host(host_header: str) -> tuple[str, str]:
    """Split a Host header; a header without a port is all host."""
    value = host_header.strip()
    if not value:
        return "", ""
    try:
        return split_host_port(value)
    except ValueError:
        pass
    if ":" in value or "[" in value or "]" in value:
        return "", ""
    return value, ""


@dataclass
class RequestInfo:
    """Metadata describing one inbound request."""

    remote_addr: str
    ip: str = ""
    port: str = ""
    x_forwarded_for: str = ""
    requested_host: str = ""
    requested_port: str = ""

    def __str__(self) -> str:
        return (
            f"<RemoteAddr: {self.remote_addr}; IP: {self.ip}; Port: {self.port}; "
            f"X-Forwarded-For: {self.x_forwarded_for}>"
        )


def classify_request(
    remote_addr: str, host_header: str, forwarded_for: str = ""
) -> RequestInfo:
    """Build request metadata; malformed input leaves fields empty, never raises."""
    info = RequestInfo(remote_addr=remote_addr, x_forwarded_for=forwarded_for)
    try:
        info.ip, info.port = split_host_port(remote_addr)
    except ValueError:
        info.ip, info.port = "", ""
    # assumes no proxy in front; the Host header is authoritative
    info.requested_host, info.requested_port = split_requested_host(host_header)
    return info


def is_redirect_eligible(info: RequestInfo, server_names: Iterable[str]) -> bool:
    """True when the bare requested host exactly equals a listener server name."""
    if not info.requested_host:
        return False
    return any(info.requested_host == name for name in server_names if name)


def format_address(address: tuple) -> str:
    """Render a socket peer address tuple as ``host:port`` / ``[v6]:port``."""
    host, port = address[0], address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
