"""Listening socket creation and TLS configuration."""

import logging
import socket
import ssl
import sys
from typing import Optional

from bounce.bootstrap.config import ListenerSettings
from bounce.domain.correlation_id import CorrelationLoggerAdapter
from bounce.domain.request_info import split_host_port

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bounce.socket"), {})

ACCEPT_POLL_SECONDS = 0.5

TLS_MINIMUM_VERSION = ssl.TLSVersion.TLSv1_2
# TLS 1.2 allow-list; ECDHE key exchange with AES-GCM only.
TLS12_CIPHERS = "ECDHE-RSA-AES128-GCM-SHA256:ECDHE-ECDSA-AES128-GCM-SHA256"
# TLS 1.3 suites are not selectable through the ssl module; OpenSSL's default
# TLS 1.3 set is exactly these three AEAD suites.
TLS13_CIPHER_SUITES = (
    "TLS_AES_256_GCM_SHA384",
    "TLS_AES_128_GCM_SHA256",
    "TLS_CHACHA20_POLY1305_SHA256",
)


def parse_listen_address(address: str) -> tuple[str, int]:
    """Turn ``host:port`` (host optional, port may be a service name) into a bind tuple."""
    host, port_text = split_host_port(address)
    if not port_text:
        return host, 0
    if port_text.isdigit():
        port = int(port_text)
    else:
        try:
            port = socket.getservbyname(port_text, "tcp")
        except OSError as exc:
            raise ValueError(f"unknown port {port_text!r} in address {address!r}") from exc
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in address {address!r}")
    return host, port


def create_listener_socket(address: str) -> socket.socket:
    """Bind a listening socket; an empty host listens on every interface."""
    host, port = parse_listen_address(address)
    if not host and socket.has_dualstack_ipv6():
        server_socket = socket.create_server(
            ("", port), family=socket.AF_INET6, dualstack_ipv6=True
        )
    elif ":" in host:
        server_socket = socket.create_server((host, port), family=socket.AF_INET6)
    else:
        server_socket = socket.create_server((host, port))
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return server_socket


def build_tls_context(
    settings: ListenerSettings, logger: Optional[CorrelationLoggerAdapter] = None
) -> ssl.SSLContext:
    """Create the server TLS context, exiting the process if credentials fail to load."""
    log = logger or SOCKET_LOGGER
    tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    tls_context.minimum_version = TLS_MINIMUM_VERSION
    tls_context.set_ciphers(TLS12_CIPHERS)
    try:
        if not settings.certificate_path or not settings.key_path:
            raise FileNotFoundError("certificate and key paths are required")
        tls_context.load_cert_chain(settings.certificate_path, settings.key_path)
    except (ssl.SSLError, OSError) as error:
        log.critical(
            "Failed to load TLS key pair",
            extra={
                "event": "tls_keypair_error",
                "error": str(error),
                "missing_cert": not settings.certificate_path,
                "missing_key": not settings.key_path,
            },
        )
        sys.exit(1)
    return tls_context
