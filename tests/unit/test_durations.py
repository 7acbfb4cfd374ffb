"""Unit tests for duration string parsing."""

from datetime import timedelta

import pytest

from bounce.bootstrap.durations import parse_duration


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("10s", timedelta(seconds=10)),
        ("300ms", timedelta(milliseconds=300)),
        ("1m30s", timedelta(seconds=90)),
        ("1h15m30.5s", timedelta(hours=1, minutes=15, seconds=30.5)),
        ("1.5h", timedelta(minutes=90)),
        ("250us", timedelta(microseconds=250)),
        ("250µs", timedelta(microseconds=250)),
        ("0", timedelta(0)),
        ("-2s", timedelta(seconds=-2)),
        ("+2s", timedelta(seconds=2)),
        (".5s", timedelta(milliseconds=500)),
    ],
)
def test_parse_duration_accepts_unit_strings(text: str, expected: timedelta) -> None:
    """Numbers with units, compound values and a bare zero parse."""
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "10", "ten", "10 s", "5d", "s", "-", "1s2", "1..5s"])
def test_parse_duration_rejects_malformed_values(text: str) -> None:
    """Missing units, unknown units and stray characters raise ValueError."""
    with pytest.raises(ValueError):
        parse_duration(text)


def test_parse_duration_rejects_non_strings() -> None:
    """Only strings are parsed; callers coerce numbers themselves."""
    with pytest.raises(ValueError):
        parse_duration(10)  # type: ignore[arg-type]


def test_parse_duration_rejects_values_beyond_timedelta_range() -> None:
    """Overflowing durations surface as ValueError like any other bad input."""
    with pytest.raises(ValueError):
        parse_duration("99999999999999h")
