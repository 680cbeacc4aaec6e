"""Shared timestamp parsing and conversion helpers."""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# Fractional seconds are padded or truncated to exactly six digits (RFC3339Nano).
_FRACTION_RE = re.compile(r"\.(\d+)")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _microseconds(match: re.Match) -> str:
    return "." + (match.group(1) + "000000")[:6]


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339 timestamp (with or without fraction, `Z` or offset) into UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned or _DATE_ONLY_RE.match(cleaned):
            return None
        cleaned = _FRACTION_RE.sub(_microseconds, cleaned.replace("Z", "+00:00").replace("z", "+00:00"))
        try:
            dt = datetime.fromisoformat(cleaned)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date. Raises ValueError on anything else."""
    token = (value or "").strip()
    if not _DATE_ONLY_RE.match(token):
        raise ValueError(f"invalid date format: {value} (expected YYYY-MM-DD)")
    return date.fromisoformat(token)


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def end_of_day(value: date) -> datetime:
    """Last representable instant of the given UTC day."""
    return start_of_day(value) + timedelta(days=1) - timedelta(microseconds=1)


def to_unix_nano(value: datetime) -> int:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


def from_unix_nano(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=int(value) // 1_000)
