"""Integration tests for signal-driven shutdown with a fixed deadline."""

import json
import signal
import socket
import time
from pathlib import Path

import pytest

from tests.conftest import HOST, start_relay, stop_relay
from tests.utils.http import (
    build_request,
    exchange,
    is_connection_refused,
    read_http_response,
    reserve_port,
    send_signal_to_process,
    wait_for_port,
)

DEADLINE_SECONDS = 1.0
EXIT_SLACK_SECONDS = 3.0


@pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT, signal.SIGHUP])
def test_signal_exits_cleanly_within_deadline(relay_process, sig):
    """Each termination signal leads to exit code 0 shortly after the deadline."""
    process = relay_process["process"]
    assert exchange(
        relay_process["host"],
        relay_process["http_port"],
        build_request("localhost.localdomain"),
    ).status_code == 302

    started = time.monotonic()
    send_signal_to_process(process.pid, sig)
    return_code = process.wait(timeout=DEADLINE_SECONDS + EXIT_SLACK_SECONDS)
    elapsed = time.monotonic() - started

    assert return_code == 0
    assert DEADLINE_SECONDS * 0.9 <= elapsed < DEADLINE_SECONDS + EXIT_SLACK_SECONDS


def test_new_connections_refused_while_draining(relay_process):
    """After the signal the listening socket is gone even before exit."""
    process = relay_process["process"]
    host, port = relay_process["host"], relay_process["http_port"]

    send_signal_to_process(process.pid, signal.SIGTERM)
    refused = False
    deadline = time.monotonic() + DEADLINE_SECONDS
    while time.monotonic() < deadline and process.poll() is None:
        if is_connection_refused(host, port, timeout=0.2):
            refused = True
            break
        time.sleep(0.05)

    assert refused
    assert process.wait(timeout=EXIT_SLACK_SECONDS + DEADLINE_SECONDS) == 0


def test_stuck_request_does_not_delay_exit(relay_process):
    """A client that never finishes its request cannot hold the process open."""
    process = relay_process["process"]
    with socket.create_connection(
        (relay_process["host"], relay_process["http_port"]), timeout=5.0
    ) as sock:
        sock.sendall(b"GET / HTTP/1.1\r\nHost: localhost.localdomain\r\n")
        time.sleep(0.1)

        started = time.monotonic()
        send_signal_to_process(process.pid, signal.SIGTERM)
        return_code = process.wait(timeout=DEADLINE_SECONDS + EXIT_SLACK_SECONDS)

    assert return_code == 0
    assert time.monotonic() - started < DEADLINE_SECONDS + EXIT_SLACK_SECONDS


def test_open_keep_alive_connection_closes_after_cancel(relay_process):
    """A keep-alive connection gets one more response, marked close, once draining."""
    process = relay_process["process"]
    with socket.create_connection(
        (relay_process["host"], relay_process["http_port"]), timeout=2.0
    ) as sock:
        sock.sendall(build_request("localhost.localdomain"))
        assert read_http_response(sock).status_code == 302

        send_signal_to_process(process.pid, signal.SIGTERM)
        time.sleep(0.6)
        try:
            sock.sendall(build_request("localhost.localdomain"))
            response = read_http_response(sock)
        except (RuntimeError, ConnectionError):
            response = None
        if response is not None:
            assert response.headers.get("connection") == "close"

    assert process.wait(timeout=DEADLINE_SECONDS + EXIT_SLACK_SECONDS) == 0


def test_repeated_signals_do_not_restart_the_deadline(relay_process):
    """Later signals are ignored; the first one sets the schedule."""
    process = relay_process["process"]

    started = time.monotonic()
    send_signal_to_process(process.pid, signal.SIGTERM)
    time.sleep(0.3)
    send_signal_to_process(process.pid, signal.SIGINT)
    return_code = process.wait(timeout=DEADLINE_SECONDS + EXIT_SLACK_SECONDS)

    assert return_code == 0
    assert time.monotonic() - started < DEADLINE_SECONDS + EXIT_SLACK_SECONDS


def test_shutdown_sequence_is_logged(tmp_path: Path):
    """Signal, draining and exit records appear in order in the JSON log."""
    port = reserve_port(HOST)
    log_file = tmp_path / "relay.log"
    process = start_relay(
        {
            "LOGLEVEL": "info",
            "LOGDESTINATION": str(log_file),
            "SHUTDOWNDEADLINE": "500ms",
            "HTTPSERVERADDR": f"{HOST}:{port}",
            "HTTPSSERVERADDR": "",
        }
    )
    try:
        wait_for_port(HOST, port)
        send_signal_to_process(process.pid, signal.SIGTERM)
        assert process.wait(timeout=5) == 0
    finally:
        stop_relay(process)

    events = [
        json.loads(line).get("event")
        for line in log_file.read_text().splitlines()
        if line.strip()
    ]
    for earlier, later in (
        ("listener_serving", "shutdown_signal"),
        ("shutdown_signal", "shutdown_draining"),
        ("shutdown_draining", "shutdown_exiting"),
    ):
        assert events.index(earlier) < events.index(later)
    assert "listener_disabled" in events
