"""Relay configuration: default table, file loading, env overrides, CLI."""

import argparse
import json
import math
import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from bounce.bootstrap.durations import parse_duration
from bounce.bootstrap.logging_setup import LOG_LEVELS

CONFIG_FILE_ENV = "CONFIG_FILE"


class ConfigErrorKind(Enum):
    """Categories of configuration failure reported at startup."""

    BAD_DEFAULT = "bad_default"
    FILE_NOT_FOUND = "file_not_found"
    PARSE_ERROR = "parse_error"
    TYPE_MISMATCH = "type_mismatch"


class ConfigError(Exception):
    """Raised when configuration cannot be resolved into a BounceConfig."""

    def __init__(
        self,
        kind: ConfigErrorKind,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.field = field
        self.value = value


class FieldKind(Enum):
    """Semantic type of a configuration field."""

    STRING = "string"
    BOOL = "bool"
    DURATION = "duration"
    LEVEL = "level"


@dataclass(frozen=True)
class FieldSpec:
    """One row of the default table."""

    key: str
    attribute: str
    kind: FieldKind
    default: str


CONFIG_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("LogLevel", "log_level", FieldKind.LEVEL, "error"),
    FieldSpec("LogDestination", "log_destination", FieldKind.STRING, "stderr"),
    FieldSpec("ShutdownDeadline", "shutdown_deadline", FieldKind.DURATION, "10s"),
    FieldSpec("HttpServerName", "http_server_name", FieldKind.STRING, "localhost.localdomain"),
    FieldSpec("HttpServerAddr", "http_server_addr", FieldKind.STRING, ":80"),
    FieldSpec("HttpServerKeepAlive", "http_server_keep_alive", FieldKind.BOOL, "true"),
    FieldSpec("HttpReadTimeout", "http_read_timeout", FieldKind.DURATION, "10s"),
    FieldSpec("HttpWriteTimeout", "http_write_timeout", FieldKind.DURATION, "10s"),
    FieldSpec("HttpIdleTimeout", "http_idle_timeout", FieldKind.DURATION, "30s"),
    FieldSpec("HttpsServerName", "https_server_name", FieldKind.STRING, "localhost.localdomain"),
    FieldSpec("HttpsServerAddr", "https_server_addr", FieldKind.STRING, ":443"),
    FieldSpec("HttpsCertificatePath", "https_certificate_path", FieldKind.STRING, ""),
    FieldSpec("HttpsKeyPath", "https_key_path", FieldKind.STRING, ""),
    FieldSpec("HttpsIsOffloaded", "https_is_offloaded", FieldKind.BOOL, "true"),
    FieldSpec("DestinationHost", "destination_host", FieldKind.STRING, "example.org"),
)

# Accepted boolean spellings; anything else is a type mismatch.
_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass(frozen=True)
class ListenerSettings:
    """Everything a single listener needs to bind and serve."""

    protocol: str
    server_name: str
    address: str
    read_timeout: timedelta
    write_timeout: timedelta
    idle_timeout: timedelta
    keep_alive: bool = True
    certificate_path: str = ""
    key_path: str = ""

    @property
    def tls(self) -> bool:
        """Return True for the TLS listener."""
        return self.protocol == "https"

    @property
    def enabled(self) -> bool:
        """An empty listen address disables the listener."""
        return bool(self.address)


@dataclass(frozen=True)
class BounceConfig:  # pylint: disable=too-many-instance-attributes
    """Immutable relay configuration, fully populated before serving."""

    log_level: str
    log_destination: str
    shutdown_deadline: timedelta

    http_server_name: str
    http_server_addr: str
    http_server_keep_alive: bool
    http_read_timeout: timedelta
    http_write_timeout: timedelta
    http_idle_timeout: timedelta

    https_server_name: str
    https_server_addr: str
    https_certificate_path: str
    https_key_path: str
    https_is_offloaded: bool

    destination_host: str

    @property
    def server_names(self) -> tuple[str, str]:
        """Names a request Host must match to be redirected."""
        return (self.http_server_name, self.https_server_name)

    def http_listener(self) -> ListenerSettings:
        """Settings for the plaintext listener."""
        return ListenerSettings(
            protocol="http",
            server_name=self.http_server_name,
            address=self.http_server_addr,
            read_timeout=self.http_read_timeout,
            write_timeout=self.http_write_timeout,
            idle_timeout=self.http_idle_timeout,
            keep_alive=self.http_server_keep_alive,
        )

    def https_listener(self) -> ListenerSettings:
        """Settings for the TLS listener; it shares the plaintext timeouts."""
        return ListenerSettings(
            protocol="https",
            server_name=self.https_server_name,
            address=self.https_server_addr,
            read_timeout=self.http_read_timeout,
            write_timeout=self.http_write_timeout,
            idle_timeout=self.http_idle_timeout,
            certificate_path=self.https_certificate_path,
            key_path=self.https_key_path,
        )


def default_values(fields: tuple[FieldSpec, ...] = CONFIG_FIELDS) -> dict[str, Any]:
    """Register every field's default, parsing duration literals up front."""
    defaults: dict[str, Any] = {}
    for spec in fields:
        if spec.kind is FieldKind.DURATION:
            try:
                defaults[spec.attribute] = parse_duration(spec.default)
            except ValueError as exc:
                raise ConfigError(
                    ConfigErrorKind.BAD_DEFAULT,
                    f"could not parse default value for {spec.key}: {exc}",
                    field=spec.key,
                    value=spec.default,
                ) from exc
        else:
            defaults[spec.attribute] = spec.default
    return defaults


def _load_yaml(text: str) -> Any:
    return yaml.safe_load(text)


_FILE_LOADERS = {
    ".json": json.loads,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
    ".toml": tomllib.loads,
}


def load_config_file(path: str) -> dict[str, Any]:
    """Read a JSON, YAML or TOML file into a flat key/value mapping."""
    target = Path(path)
    try:
        text = target.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigError(
            ConfigErrorKind.PARSE_ERROR, f"config file {path} is not valid UTF-8"
        ) from exc
    except OSError as exc:
        raise ConfigError(
            ConfigErrorKind.FILE_NOT_FOUND,
            f"could not read specified file {path}: {exc.strerror or exc}",
        ) from exc

    loader = _FILE_LOADERS.get(target.suffix.lower())
    if loader is None:
        raise ConfigError(
            ConfigErrorKind.PARSE_ERROR,
            f"unsupported config file type {target.suffix or '(none)'!r} for {path}",
        )
    try:
        data = loader(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(
            ConfigErrorKind.PARSE_ERROR,
            f"failed to parse config file {path} (try passing it through a linter): {exc}",
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            ConfigErrorKind.PARSE_ERROR,
            f"config file {path} must contain a mapping at the top level",
        )
    return data


def _match_keys(
    values: Mapping[str, Any], fields: tuple[FieldSpec, ...]
) -> dict[str, Any]:
    """Map case-insensitive source keys onto field attributes, ignoring unknowns."""
    by_key = {spec.key.lower(): spec for spec in fields}
    matched: dict[str, Any] = {}
    for name in sorted(values, key=str):
        spec = by_key.get(str(name).lower())
        if spec is None or spec.attribute in matched:
            continue
        matched[spec.attribute] = values[name]
    return matched


def _mismatch(spec: FieldSpec, raw: Any, expected: str) -> ConfigError:
    return ConfigError(
        ConfigErrorKind.TYPE_MISMATCH,
        f"{spec.key}: expected {expected}, got {raw!r}",
        field=spec.key,
        value=raw,
    )


def coerce_value(spec: FieldSpec, raw: Any) -> Any:
    """Convert a raw default/file/env value into the field's declared type."""
    if spec.kind is FieldKind.DURATION:
        if isinstance(raw, timedelta):
            return raw
        if isinstance(raw, bool):
            raise _mismatch(spec, raw, "a duration")
        try:
            if isinstance(raw, (int, float)):
                if not math.isfinite(raw):
                    raise ValueError(f"non-finite duration {raw!r}")
                return timedelta(seconds=raw)
            return parse_duration(raw)
        except (ValueError, OverflowError) as exc:
            raise _mismatch(spec, raw, "a duration such as '10s'") from exc

    if spec.kind is FieldKind.BOOL:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            if raw in _TRUE_STRINGS:
                return True
            if raw in _FALSE_STRINGS:
                return False
        raise _mismatch(spec, raw, "a boolean")

    if not isinstance(raw, str):
        raise _mismatch(spec, raw, "a string")

    if spec.kind is FieldKind.LEVEL:
        level = raw.strip().lower()
        if level not in LOG_LEVELS:
            raise _mismatch(spec, raw, f"one of {', '.join(LOG_LEVELS)}")
        return level
    return raw


def resolve_config(
    file_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    fields: tuple[FieldSpec, ...] = CONFIG_FIELDS,
) -> BounceConfig:
    """Resolve configuration: defaults, then the optional file, then env."""
    merged = default_values(fields)
    if file_path:
        merged.update(_match_keys(load_config_file(file_path), fields))
    merged.update(_match_keys(os.environ if environ is None else environ, fields))

    decoded = {spec.attribute: coerce_value(spec, merged[spec.attribute]) for spec in fields}
    return BounceConfig(**decoded)


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments; only the config file path is selectable."""
    parser = argparse.ArgumentParser(description="bounce edge relay")
    parser.add_argument(
        "--config-file",
        "--config_file",
        dest="config_file",
        default=os.getenv(CONFIG_FILE_ENV, ""),
        help=f"path to configuration file (defaults to ${CONFIG_FILE_ENV})",
    )
    return parser.parse_args(argv)
