"""Duration string parsing for configuration values."""

import re
from datetime import timedelta

_UNIT_MICROSECONDS = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1_000.0,
    "s": 1_000_000.0,
    "m": 60_000_000.0,
    "h": 3_600_000_000.0,
}

_SEGMENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``300ms``, ``10s`` or ``1h15m30.5s``.

    Segments are a decimal number followed by a unit (``ns``, ``us``, ``ms``,
    ``s``, ``m``, ``h``) and may carry a leading sign. A bare ``0`` is
    accepted without a unit. Raises ValueError for anything else, including
    values too large for a timedelta.
    """
    if not isinstance(text, str):
        raise ValueError(f"invalid duration {text!r}")
    raw = text.strip()
    sign = 1
    if raw[:1] in {"+", "-"}:
        sign = -1 if raw[0] == "-" else 1
        raw = raw[1:]
    if raw == "0":
        return timedelta(0)
    if not raw:
        raise ValueError(f"invalid duration {text!r}")

    total_us = 0.0
    position = 0
    while position < len(raw):
        match = _SEGMENT.match(raw, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        number, unit = match.groups()
        total_us += float(number) * _UNIT_MICROSECONDS[unit]
        position = match.end()
    try:
        return timedelta(microseconds=sign * total_us)
    except OverflowError as exc:
        raise ValueError(f"duration {text!r} out of range") from exc
