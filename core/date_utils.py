"""Shared date and time utilities.

ISO-8601 parsing and formatting for API timestamps. Everything is normalized
to timezone-aware UTC so values from the server (``...Z``), locally generated
ones and naive strings compare cleanly.
"""
from __future__ import annotations

import datetime as _dt
from typing import Any, Optional

__all__ = [
    "EPOCH_MIN",
    "utc_now",
    "to_iso_str",
    "parse_iso",
    "sort_key",
]

# Sort position for missing/unparseable timestamps (older than anything real)
EPOCH_MIN = _dt.datetime.min.replace(tzinfo=_dt.timezone.utc)


def utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def to_iso_str(value: _dt.datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and ``Z`` suffix.

    Examples:
        datetime(2024, 1, 2, 10, 0, tzinfo=utc) -> '2024-01-02T10:00:00.000Z'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    value = value.astimezone(_dt.timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Any) -> Optional[_dt.datetime]:
    """Parse an ISO-8601 string (or datetime / epoch milliseconds) to aware UTC.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, _dt.datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return _dt.datetime.fromtimestamp(value / 1000.0, tz=_dt.timezone.utc)
        except (OverflowError, ValueError, OSError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = _dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_dt.timezone.utc)
    return parsed.astimezone(_dt.timezone.utc)


def sort_key(value: Any) -> _dt.datetime:
    """Key function for ordering by timestamp; bad values sort first."""
    return parse_iso(value) or EPOCH_MIN
