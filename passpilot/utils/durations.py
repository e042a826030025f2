"""
Pass duration calculation.

Durations are whole minutes between issue and return. A closed pass always
reports at least one minute, including when the recorded return time is
equal to or earlier than the issue time (clock skew, same-instant close).
Open passes have no duration at all, and a stored value must never be shown
for them.
"""

import math
from datetime import timedelta
from typing import Optional

from passpilot.utils.timestamps import parse_timestamp

MINIMUM_DURATION_MINUTES = 1

_ONE_MINUTE = timedelta(minutes=1)


def _round_half_up(value: float) -> int:
    """Round to nearest, with ties going toward positive infinity."""
    return int(math.floor(value + 0.5))


def compute_duration(issued_at, returned_at) -> Optional[int]:
    """Return elapsed whole minutes for a returned pass, or ``None`` if still open.

    Negative and zero elapsed times are floored to one minute rather than
    rejected. An unreadable ``issued_at`` makes the duration unknown.
    """
    returned = parse_timestamp(returned_at)
    if returned is None:
        return None

    issued = parse_timestamp(issued_at)
    if issued is None:
        return None

    diff_minutes = _round_half_up((returned - issued) / _ONE_MINUTE)
    if diff_minutes < MINIMUM_DURATION_MINUTES:
        return MINIMUM_DURATION_MINUTES
    return diff_minutes


def resolve_duration(issued_at, returned_at, stored_duration=None) -> Optional[int]:
    """
    Pick the duration to display for a pass.

    Order of preference:
        1. Nothing while the pass is open.
        2. The duration computed from timestamps.
        3. The stored duration, when it is a positive number of minutes.
        4. One minute.
    """
    if parse_timestamp(returned_at) is None:
        return None

    computed = compute_duration(issued_at, returned_at)
    if computed is not None:
        return computed

    if stored_duration is not None and stored_duration >= MINIMUM_DURATION_MINUTES:
        return int(stored_duration)

    return MINIMUM_DURATION_MINUTES


def export_duration(issued_at, returned_at, stored_duration=None) -> Optional[int]:
    """Duration column value for reports; always empty for a pass that is still out."""
    if parse_timestamp(returned_at) is None:
        return None
    return resolve_duration(issued_at, returned_at, stored_duration)


def average_duration(durations):
    """Mean of the given durations rounded to one decimal place (0 when empty)."""
    values = [d for d in durations if d is not None]
    if not values:
        return 0
    return _round_half_up(sum(values) / len(values) * 10) / 10
