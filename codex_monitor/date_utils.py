"""Shared timestamp parsing and formatting helpers."""
from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from typing import Optional

_ISO_DATETIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<zone>Z|z|[+-]\d{2}:?\d{2})?$"
)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 record timestamp into an aware UTC datetime.

    Fractional seconds are optional and truncated to microseconds. A missing
    zone designator is read as UTC.
    """
    if not isinstance(value, str):
        return None
    token = value.strip()
    match = _ISO_DATETIME_RE.match(token)
    if not match:
        return None

    base = match.group("base").replace(" ", "T")
    fraction = match.group("fraction")
    zone = match.group("zone") or ""
    if zone in ("Z", "z"):
        zone = "+00:00"
    elif zone and ":" not in zone:
        zone = f"{zone[:3]}:{zone[3:]}"

    cleaned = base
    if fraction:
        cleaned += "." + fraction[:6].ljust(6, "0")
    cleaned += zone
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def epoch_to_datetime(value: float) -> datetime:
    return datetime.fromtimestamp(float(value), timezone.utc)


def _localize(value: datetime, tz: Optional[tzinfo]) -> datetime:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def format_datetime(value: datetime, tz: Optional[tzinfo] = None) -> str:
    """``YYYY-mm-dd HH:MM:SS`` in ``tz`` (local time by default)."""
    return _localize(value, tz).strftime("%Y-%m-%d %H:%M:%S")


def date_path(now: Optional[datetime] = None) -> str:
    """Return the ``YYYY/MM/DD`` partition for ``now`` in local time."""
    current = now if now is not None else datetime.now().astimezone()
    return current.strftime("%Y/%m/%d")
