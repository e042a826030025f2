"""
Plain records handed to the pass and trial evaluators.

The evaluators never touch SQLAlchemy objects or raw API payloads directly.
Models and API clients convert into these records first, so every timestamp
is already an aware UTC datetime (or ``None`` when missing or unreadable).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from passpilot.utils.timestamps import parse_timestamp

PLAN_FREE_TRIAL = 'free_trial'

PASS_STATUS_ACTIVE = 'active'
PASS_STATUS_RETURNED = 'returned'
PASS_STATUS_EXPIRED = 'expired'
PASS_STATUS_REVOKED = 'revoked'
PASS_STATUSES = (
    PASS_STATUS_ACTIVE,
    PASS_STATUS_RETURNED,
    PASS_STATUS_EXPIRED,
    PASS_STATUS_REVOKED,
)

SEVERITY_DEFAULT = 'default'
SEVERITY_DESTRUCTIVE = 'destructive'
SEVERITY_WARNING = 'warning'
SEVERITY_ERROR = 'error'


def _optional_int(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class PassRecord:
    """Snapshot of a single hall pass."""

    student_name: str
    issued_at: Optional[datetime]
    expires_at: Optional[datetime]
    returned_at: Optional[datetime] = None
    stored_duration: Optional[int] = None
    id: Optional[Any] = None
    status: str = PASS_STATUS_ACTIVE

    @property
    def is_open(self):
        return self.returned_at is None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'PassRecord':
        """Build a record from an API payload (snake_case or camelCase keys)."""
        def pick(*keys):
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            id=pick('id'),
            student_name=str(pick('student_name', 'studentName') or 'Unknown Student'),
            issued_at=parse_timestamp(pick('issued_at', 'issuedAt')),
            expires_at=parse_timestamp(pick('expires_at', 'expiresAt')),
            returned_at=parse_timestamp(pick('returned_at', 'returnedAt')),
            stored_duration=_optional_int(pick('stored_duration', 'elapsed_minutes', 'storedDuration')),
            status=str(pick('status') or PASS_STATUS_ACTIVE),
        )


@dataclass(frozen=True)
class SchoolRecord:
    """Billing/trial view of a school."""

    plan: str
    is_trial_expired: bool = False
    trial_end_date: Optional[datetime] = None
    id: Optional[Any] = None
    name: Optional[str] = None

    @property
    def is_free_trial(self):
        return self.plan == PLAN_FREE_TRIAL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'SchoolRecord':
        def pick(*keys):
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            id=pick('id'),
            name=pick('name'),
            plan=str(pick('plan') or PLAN_FREE_TRIAL),
            is_trial_expired=bool(pick('is_trial_expired', 'isTrialExpired')),
            trial_end_date=parse_timestamp(pick('trial_end_date', 'trialEndDate')),
        )


@dataclass(frozen=True)
class Notification:
    """A user-facing alert. Has no identity beyond being emitted."""

    title: str
    description: str
    severity: str = SEVERITY_DEFAULT

    def to_dict(self):
        return {
            'title': self.title,
            'description': self.description,
            'severity': self.severity,
        }
