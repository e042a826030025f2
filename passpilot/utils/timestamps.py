"""
Timestamp helpers for PassPilot.

Every temporal value that reaches the pass and trial evaluators is
normalized here to a timezone-aware UTC datetime. Naive datetimes coming
out of the database are treated as UTC, matching how the models store them.
"""

from datetime import datetime, date, timezone
from typing import Optional, Union

import pytz

TimestampInput = Union[datetime, date, str, int, float, None]


def utc_now():
    """Default clock used by evaluators and scheduled jobs."""
    return datetime.now(timezone.utc)


def as_utc(dt):
    """Ensure a datetime is timezone-aware and in UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: TimestampInput) -> Optional[datetime]:
    """Coerce a stored or API-supplied timestamp into an aware UTC datetime.

    Accepts datetimes, dates (midnight UTC), ISO-8601 strings with or
    without a trailing ``Z``, and epoch milliseconds. Anything that cannot
    be interpreted returns ``None`` instead of raising.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return as_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    dt = as_utc(dt)
    if not dt:
        return None
    return dt.isoformat().replace("+00:00", "Z")


def get_timezone(tz_name, fallback='America/Los_Angeles'):
    """Resolve a pytz timezone, falling back when the name is unknown."""
    try:
        return pytz.timezone(tz_name or fallback)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(fallback)


def start_of_local_day(now, tz):
    """Return the UTC instant of local midnight for the day containing ``now``."""
    local_now = as_utc(now).astimezone(tz)
    local_midnight = tz.localize(
        datetime(local_now.year, local_now.month, local_now.day)
    )
    return local_midnight.astimezone(timezone.utc)
