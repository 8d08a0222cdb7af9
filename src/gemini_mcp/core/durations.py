"""Duration and timestamp parsing shared by config, caching and search."""

from __future__ import annotations

from datetime import datetime, timedelta
import re

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration like ``"90s"``, ``"1h30m"`` or a bare number of seconds.

    Raises:
        ValueError: If the string is empty, malformed or not strictly positive.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        seconds = float(text)
    else:
        pos = 0
        seconds = 0.0
        for match in _COMPONENT.finditer(text):
            if match.start() != pos:
                raise ValueError(f"invalid duration {value!r}")
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if pos != len(text):
            raise ValueError(f"invalid duration {value!r}")

    if seconds <= 0:
        raise ValueError(f"duration must be positive, got {value!r}")
    return timedelta(seconds=seconds)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp; a timezone designator is required."""
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        raise ValueError(f"missing timezone offset in {value!r}")
    return parsed
