"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Generator, Optional, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
RELAY_ENTRYPOINT = PROJECT_ROOT / "main.py"
HOST = "127.0.0.1"

CONFIG_ENV_KEYS = (
    "CONFIG_FILE",
    "LOGLEVEL",
    "LOGDESTINATION",
    "SHUTDOWNDEADLINE",
    "HTTPSERVERNAME",
    "HTTPSERVERADDR",
    "HTTPSERVERKEEPALIVE",
    "HTTPREADTIMEOUT",
    "HTTPWRITETIMEOUT",
    "HTTPIDLETIMEOUT",
    "HTTPSSERVERNAME",
    "HTTPSSERVERADDR",
    "HTTPSCERTIFICATEPATH",
    "HTTPSKEYPATH",
    "HTTPSISOFFLOADED",
    "DESTINATIONHOST",
)


class RelayProcessInfo(TypedDict):
    """Metadata describing a running relay fixture instance."""

    process: subprocess.Popen[str]
    host: str
    http_port: Optional[int]
    https_port: Optional[int]
    log_file: Path


def relay_env(overrides: dict[str, str]) -> dict[str, str]:
    """Process environment with every relay setting scrubbed, then overridden."""

    env = {
        name: value
        for name, value in os.environ.items()
        if name.upper() not in CONFIG_ENV_KEYS
    }
    env.update(overrides)
    return env


def start_relay(
    overrides: dict[str, str], args: Optional[list[str]] = None
) -> subprocess.Popen[str]:
    """Launch ``main.py`` with the given environment overrides."""

    # pylint: disable=consider-using-with
    return subprocess.Popen(
        [sys.executable, str(RELAY_ENTRYPOINT), *(args or [])],
        cwd=PROJECT_ROOT,
        env=relay_env(overrides),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


def stop_relay(process: subprocess.Popen[str]) -> None:
    """Terminate a relay that a test left running."""

    if process.poll() is None:
        process.kill()
    process.communicate(timeout=5)


def _launch_relay(
    log_file: Path,
    http_port: Optional[int],
    https_port: Optional[int] = None,
    extra_env: Optional[dict[str, str]] = None,
) -> Generator[RelayProcessInfo, None, None]:
    overrides = {
        "LOGLEVEL": "debug",
        "LOGDESTINATION": str(log_file),
        "SHUTDOWNDEADLINE": "1s",
        "HTTPSERVERADDR": f"{HOST}:{http_port}" if http_port else "",
        "HTTPSSERVERADDR": f"{HOST}:{https_port}" if https_port else "",
    }
    overrides.update(extra_env or {})
    process = start_relay(overrides)
    try:
        for port in (http_port, https_port):
            if port:
                wait_for_port(HOST, port)
    except Exception:
        # If startup failed, print stdout/stderr to help debug
        process.kill()
        stdout, stderr = process.communicate(timeout=5)
        print(f"\nRelay stdout:\n{stdout}")
        print(f"\nRelay stderr:\n{stderr}")
        raise

    yield {
        "process": process,
        "host": HOST,
        "http_port": http_port,
        "https_port": https_port,
        "log_file": log_file,
    }

    stop_relay(process)


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="relay_process")
def _relay_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[RelayProcessInfo, None, None]:
    """Launch the relay with only the plaintext listener enabled."""

    log_file = tmp_path_factory.mktemp("relay") / "relay.log"
    yield from _launch_relay(log_file, reserve_port(HOST))


@pytest.fixture(name="tls_credentials", scope="session")
def _tls_credentials(tmp_path_factory: "TempPathFactory") -> tuple[Path, Path]:
    """Create a throwaway self-signed certificate and key with the openssl CLI."""

    openssl = shutil.which("openssl")
    if openssl is None:
        pytest.skip("openssl CLI not available, skipping TLS tests")
    directory = tmp_path_factory.mktemp("tls")
    cert_file = directory / "cert.pem"
    key_file = directory / "key.pem"
    result = subprocess.run(
        [
            openssl,
            "req",
            "-x509",
            "-newkey",
            "rsa:2048",
            "-nodes",
            "-keyout",
            str(key_file),
            "-out",
            str(cert_file),
            "-days",
            "2",
            "-subj",
            "/CN=localhost.localdomain",
        ],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        pytest.skip(f"openssl could not create a key pair: {result.stderr}")
    return cert_file, key_file


@pytest.fixture(name="tls_relay_process")
def _tls_relay_process(
    tmp_path_factory: "TempPathFactory", tls_credentials: tuple[Path, Path]
) -> Generator[RelayProcessInfo, None, None]:
    """Launch the relay with both listeners enabled."""

    cert_file, key_file = tls_credentials
    log_file = tmp_path_factory.mktemp("relay-tls") / "relay.log"
    yield from _launch_relay(
        log_file,
        reserve_port(HOST),
        reserve_port(HOST),
        {
            "HTTPSCERTIFICATEPATH": str(cert_file),
            "HTTPSKEYPATH": str(key_file),
            "HTTPSSERVERNAME": "secure.localdomain",
        },
    )
