"""Shared datetime helpers and display formatting."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(UTC)


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def iso_timestamp(dt: datetime | None = None) -> str:
    """Render a UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = (dt or utc_now()).astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_time_string(value: str) -> bool:
    """Return True for well-formed 24h ``HH:MM`` strings."""
    match = _TIME_PATTERN.match(value or "")
    if not match:
        return False
    return int(match.group(1)) < 24 and int(match.group(2)) < 60


def is_date_string(value: str) -> bool:
    """Return True for well-formed ISO ``YYYY-MM-DD`` calendar dates."""
    if not _DATE_PATTERN.match(value or ""):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def format_display_date(value: str) -> str:
    """Format an ISO date as ``M/D/YYYY``; unparseable input is returned as-is."""
    try:
        parsed = date.fromisoformat(value)
    except (TypeError, ValueError):
        return value
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def format_display_time(value: str) -> str:
    """Format ``HH:MM`` as ``H:MM AM``; unparseable input is returned as-is."""
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except (TypeError, ValueError):
        return value
    suffix = "AM" if parsed.hour < 12 else "PM"
    return f"{parsed.hour % 12 or 12}:{parsed.minute:02d} {suffix}"
