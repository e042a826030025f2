"""
Trial banner evaluation.

The banner only appears for schools still on the free trial plan whose
trial has been flagged expired by the server. Everything is recomputed
from the school record and the current time on every call.
"""

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from passpilot.records import SEVERITY_ERROR, SEVERITY_WARNING
from passpilot.utils.timestamps import parse_timestamp, utc_now

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class TrialBanner:
    days_remaining: int
    is_expired: bool
    severity: str
    title: str
    message: str

    def to_dict(self):
        return {
            'visible': True,
            'days_remaining': self.days_remaining,
            'is_expired': self.is_expired,
            'severity': self.severity,
            'title': self.title,
            'message': self.message,
        }


def trial_days_remaining(trial_end_date, now=None) -> int:
    """Whole days left in the trial, rounded up and never negative."""
    trial_end_date = parse_timestamp(trial_end_date)
    if trial_end_date is None:
        return 0
    now = parse_timestamp(now) or utc_now()
    remaining = (trial_end_date - now) / _ONE_DAY
    return max(0, math.ceil(remaining))


def evaluate_trial_banner(school, now=None) -> Optional[TrialBanner]:
    """Return banner state for a ``SchoolRecord`` or ``None`` when it is suppressed.

    The plan check comes first: a paid school never sees the banner even if
    its expired flag is still set.
    """
    if school is None or not school.is_free_trial or not school.is_trial_expired:
        return None

    days_remaining = trial_days_remaining(school.trial_end_date, now)
    is_expired = days_remaining <= 0

    if is_expired:
        return TrialBanner(
            days_remaining=0,
            is_expired=True,
            severity=SEVERITY_ERROR,
            title="Your free trial has expired",
            message="Upgrade to a paid plan to continue using PassPilot",
        )

    day_word = "day" if days_remaining == 1 else "days"
    return TrialBanner(
        days_remaining=days_remaining,
        is_expired=False,
        severity=SEVERITY_WARNING,
        title=f"Your free trial expires in {days_remaining} {day_word}",
        message="Upgrade now to ensure uninterrupted access to all features",
    )
