"""
Database models for PassPilot.

All SQLAlchemy models are defined here with proper relationships and properties.
Times are stored as naive UTC in the database and converted to aware UTC
datetimes whenever they leave a model (see ``to_record``).
"""

from datetime import datetime, timedelta, timezone

from werkzeug.security import generate_password_hash, check_password_hash

from passpilot.extensions import db
from passpilot.records import (
    PassRecord, SchoolRecord, PLAN_FREE_TRIAL,
    PASS_STATUS_ACTIVE,
)
from passpilot.utils.durations import resolve_duration
from passpilot.utils.timestamps import as_utc, format_utc_iso


def _utc_now():
    """Naive UTC timestamp used for column defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(dt):
    """Convert an aware datetime into the naive UTC value stored in columns."""
    if dt is None:
        return None
    return as_utc(dt).replace(tzinfo=None)


FIRST_PASS_NUMBER = 1000

STAFF_ROLE_TEACHER = 'teacher'
STAFF_ROLE_ADMIN = 'admin'


# -------------------- MODELS --------------------

class School(db.Model):
    __tablename__ = 'schools'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    plan = db.Column(db.String(30), nullable=False, default=PLAN_FREE_TRIAL)

    # Trial bookkeeping. is_trial_expired is refreshed by a scheduled job.
    trial_end_date = db.Column(db.DateTime, nullable=True)
    is_trial_expired = db.Column(db.Boolean, nullable=False, default=False)

    max_teachers = db.Column(db.Integer, nullable=False, default=10)
    max_students = db.Column(db.Integer, nullable=False, default=500)

    # Next sequential pass number handed out by issue_pass()
    next_pass_number = db.Column(db.Integer, nullable=False, default=FIRST_PASS_NUMBER)

    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    @classmethod
    def start_trial(cls, name, now, trial_days=30):
        return cls(
            name=name,
            plan=PLAN_FREE_TRIAL,
            trial_end_date=to_db_time(now + timedelta(days=trial_days)),
            is_trial_expired=False,
        )

    def refresh_trial_flag(self, now):
        """Recompute ``is_trial_expired`` from the trial end date. Returns True if it changed."""
        expired = (
            self.plan == PLAN_FREE_TRIAL
            and self.trial_end_date is not None
            and as_utc(self.trial_end_date) <= as_utc(now)
        )
        if expired != bool(self.is_trial_expired):
            self.is_trial_expired = expired
            return True
        return False

    def to_record(self):
        return SchoolRecord(
            id=self.id,
            name=self.name,
            plan=self.plan,
            is_trial_expired=bool(self.is_trial_expired),
            trial_end_date=as_utc(self.trial_end_date),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "plan": self.plan,
            "trial_end_date": format_utc_iso(self.trial_end_date),
            "is_trial_expired": bool(self.is_trial_expired),
            "current_teachers": self.staff.count(),
            "max_teachers": self.max_teachers,
            "current_students": self.students.count(),
            "max_students": self.max_students,
        }


class Staff(db.Model):
    __tablename__ = 'staff'
    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=STAFF_ROLE_TEACHER)  # teacher, admin
    password_hash = db.Column(db.String(255), nullable=False)
    enable_notifications = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=_utc_now)
    last_login = db.Column(db.DateTime, nullable=True)

    school = db.relationship('School', backref=db.backref('staff', lazy='dynamic'))

    @property
    def is_admin(self):
        return self.role == STAFF_ROLE_ADMIN

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_admin": self.is_admin,
            "school_id": self.school_id,
            "school_name": self.school.name if self.school else None,
            "enable_notifications": self.enable_notifications,
        }


class Student(db.Model):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    grade = db.Column(db.String(20), nullable=True)
    student_number = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)

    school = db.relationship('School', backref=db.backref('students', lazy='dynamic'))

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "grade": self.grade,
            "student_number": self.student_number,
        }


# ---- Hall Pass Model ----
class HallPass(db.Model):
    __tablename__ = 'hall_passes'
    __table_args__ = (
        db.UniqueConstraint('school_id', 'pass_number', name='uq_hall_passes_school_pass_number'),
    )
    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('staff.id', ondelete='SET NULL'), nullable=True)

    # Denormalized so history survives roster edits
    student_name = db.Column(db.String(200), nullable=False)
    teacher_name = db.Column(db.String(200), nullable=True)

    destination = db.Column(db.String(50), nullable=False)
    custom_destination = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Minutes granted when the pass was issued; sets expires_at
    duration = db.Column(db.Integer, nullable=False)
    # Minutes actually spent out, stored when the pass is returned
    elapsed_minutes = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=PASS_STATUS_ACTIVE, index=True)  # active, returned, expired, revoked
    pass_number = db.Column(db.Integer, nullable=False)

    # All times stored as UTC
    issued_at = db.Column(db.DateTime, nullable=False, default=_utc_now)
    expires_at = db.Column(db.DateTime, nullable=False)
    returned_at = db.Column(db.DateTime, nullable=True)

    student = db.relationship('Student', backref=db.backref('hall_passes', lazy='dynamic'))
    teacher = db.relationship('Staff', foreign_keys=[teacher_id])

    def to_record(self):
        return PassRecord(
            id=self.id,
            student_name=self.student_name,
            issued_at=as_utc(self.issued_at),
            expires_at=as_utc(self.expires_at),
            returned_at=as_utc(self.returned_at),
            stored_duration=self.elapsed_minutes,
            status=self.status,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "pass_number": self.pass_number,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "grade": self.student.grade if self.student else None,
            "teacher_id": self.teacher_id,
            "teacher_name": self.teacher_name,
            "destination": self.destination,
            "custom_destination": self.custom_destination,
            "notes": self.notes,
            "duration": self.duration,
            "elapsed_minutes": resolve_duration(self.issued_at, self.returned_at, self.elapsed_minutes),
            "status": self.status,
            "issued_at": format_utc_iso(self.issued_at),
            "expires_at": format_utc_iso(self.expires_at),
            "returned_at": format_utc_iso(self.returned_at),
        }
