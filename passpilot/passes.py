"""
Hall pass operations.

Issuing, returning and expiring passes, the per-school queries the API and
background jobs poll, and the reporting helpers (stats and CSV export).
Functions here only stage changes on the session; callers commit.
"""

import csv
import io
import logging
from datetime import timedelta

from sqlalchemy import func

from passpilot.extensions import db
from passpilot.models import HallPass, School, Student, to_db_time
from passpilot.pass_monitor import find_expiring_passes
from passpilot.records import (
    PASS_STATUSES, PASS_STATUS_ACTIVE, PASS_STATUS_EXPIRED,
    PASS_STATUS_RETURNED, PASS_STATUS_REVOKED,
)
from passpilot.utils.durations import compute_duration, export_duration, average_duration
from passpilot.utils.timestamps import as_utc, start_of_local_day, utc_now

logger = logging.getLogger(__name__)

MIN_PASS_DURATION = 1
MAX_PASS_DURATION = 120
DEFAULT_PASS_DURATION = 10

CSV_HEADERS = [
    "Student Name", "Grade", "Teacher", "Destination", "Custom Destination",
    "Checkout Time", "Return Time", "Duration (min)",
]
STILL_OUT = "Still Out"


# -------------------- ERRORS --------------------

class PassError(Exception):
    """Base class for pass operation failures."""
    status_code = 400


class PassValidationError(PassError):
    pass


class PassConflictError(PassError):
    status_code = 409


class PassStateError(PassError):
    pass


# -------------------- ISSUE / RETURN --------------------

def get_active_pass_for_student(student_id):
    return (
        HallPass.query
        .filter_by(student_id=student_id, status=PASS_STATUS_ACTIVE)
        .order_by(HallPass.issued_at.desc())
        .first()
    )


def _next_pass_number(school):
    number = school.next_pass_number
    school.next_pass_number = number + 1
    return number


def issue_pass(staff, student, destination, duration=DEFAULT_PASS_DURATION,
               custom_destination=None, notes=None, now=None):
    """
    Create an active pass for ``student`` issued by ``staff``.

    Raises:
        PassValidationError: bad destination/duration or cross-school student.
        PassConflictError: the student already has an active pass.
    """
    now = as_utc(now) if now is not None else utc_now()

    destination = (destination or '').strip()
    if not destination:
        raise PassValidationError("Destination is required.")

    try:
        duration = int(duration)
    except (TypeError, ValueError):
        raise PassValidationError("Duration must be a whole number of minutes.")
    if duration < MIN_PASS_DURATION or duration > MAX_PASS_DURATION:
        raise PassValidationError(
            f"Duration must be between {MIN_PASS_DURATION} and {MAX_PASS_DURATION} minutes."
        )

    if student.school_id != staff.school_id:
        raise PassValidationError("Student does not belong to your school.")

    if get_active_pass_for_student(student.id):
        raise PassConflictError(f"{student.full_name} already has an active pass.")

    school = db.session.get(School, staff.school_id)
    hall_pass = HallPass(
        school_id=staff.school_id,
        student_id=student.id,
        teacher_id=staff.id,
        student_name=student.full_name,
        teacher_name=staff.name,
        destination=destination,
        custom_destination=(custom_destination or '').strip() or None,
        notes=(notes or '').strip() or None,
        duration=duration,
        status=PASS_STATUS_ACTIVE,
        pass_number=_next_pass_number(school),
        issued_at=to_db_time(now),
        expires_at=to_db_time(now + timedelta(minutes=duration)),
    )
    db.session.add(hall_pass)
    logger.info(f"Issued pass {hall_pass.pass_number} to student {student.id} for {duration} min")
    return hall_pass


def return_pass(hall_pass, now=None):
    """Close a pass and store how long the student was out."""
    if hall_pass.returned_at is not None:
        raise PassStateError("Pass has already been returned.")
    if hall_pass.status == PASS_STATUS_REVOKED:
        raise PassStateError("Revoked passes cannot be returned.")

    now = as_utc(now) if now is not None else utc_now()
    hall_pass.returned_at = to_db_time(now)
    hall_pass.status = PASS_STATUS_RETURNED
    hall_pass.elapsed_minutes = compute_duration(hall_pass.issued_at, now)
    return hall_pass


def update_pass_status(hall_pass, status, now=None):
    """Apply a status change coming from the API. ``returned`` closes the pass."""
    if status not in PASS_STATUSES:
        raise PassValidationError(f"Unknown status '{status}'.")
    if status == PASS_STATUS_RETURNED:
        return return_pass(hall_pass, now)
    if status == PASS_STATUS_ACTIVE and hall_pass.status != PASS_STATUS_ACTIVE:
        raise PassStateError("A closed pass cannot be reactivated.")
    if hall_pass.returned_at is not None:
        raise PassStateError("Returned passes cannot change status.")
    hall_pass.status = status
    return hall_pass


def expire_overdue_passes(school_id=None, now=None):
    """Mark active passes whose deadline has passed as expired. Returns the count."""
    now = as_utc(now) if now is not None else utc_now()
    query = HallPass.query.filter(
        HallPass.status == PASS_STATUS_ACTIVE,
        HallPass.expires_at <= to_db_time(now),
    )
    if school_id is not None:
        query = query.filter(HallPass.school_id == school_id)

    overdue = query.all()
    for hall_pass in overdue:
        hall_pass.status = PASS_STATUS_EXPIRED
    return len(overdue)


def return_all_active_passes(school_id, now=None):
    """Close every open pass for a school (daily reset). Returns the count."""
    now = as_utc(now) if now is not None else utc_now()
    open_passes = HallPass.query.filter(
        HallPass.school_id == school_id,
        HallPass.status.in_([PASS_STATUS_ACTIVE, PASS_STATUS_EXPIRED]),
        HallPass.returned_at.is_(None),
    ).all()
    for hall_pass in open_passes:
        return_pass(hall_pass, now)
    return len(open_passes)


# -------------------- QUERIES --------------------

def active_passes_query(school_id):
    return (
        HallPass.query
        .filter(HallPass.school_id == school_id, HallPass.status == PASS_STATUS_ACTIVE)
        .order_by(HallPass.issued_at.asc())
    )


def fetch_active_passes(school_id):
    """Snapshot of a school's active passes as ``PassRecord`` objects."""
    return [hall_pass.to_record() for hall_pass in active_passes_query(school_id).all()]


def schools_with_active_passes():
    rows = (
        db.session.query(HallPass.school_id)
        .filter(HallPass.status == PASS_STATUS_ACTIVE)
        .distinct()
        .all()
    )
    return [row[0] for row in rows]


def date_range_start(date_range, now, tz):
    """Start of a named reporting window (today, week, month) as aware UTC."""
    if date_range == 'today':
        return start_of_local_day(now, tz)
    if date_range == 'week':
        return as_utc(now) - timedelta(days=7)
    if date_range == 'month':
        return as_utc(now) - timedelta(days=30)
    return None


def pass_history_query(school_id, start=None, end=None, grade=None, teacher_id=None,
                       destination=None, status=None):
    query = HallPass.query.filter(HallPass.school_id == school_id)
    if start is not None:
        query = query.filter(HallPass.issued_at >= to_db_time(start))
    if end is not None:
        query = query.filter(HallPass.issued_at <= to_db_time(end))
    if grade:
        query = query.join(Student, HallPass.student_id == Student.id).filter(Student.grade == grade)
    if teacher_id:
        query = query.filter(HallPass.teacher_id == teacher_id)
    if destination:
        query = query.filter(HallPass.destination == destination)
    if status:
        query = query.filter(HallPass.status == status)
    return query.order_by(HallPass.issued_at.desc())


# -------------------- REPORTING --------------------

def pass_stats(school_id, now, tz, warning_window=timedelta(minutes=5)):
    """Dashboard counters for a school."""
    now = as_utc(now)
    active = active_passes_query(school_id).all()

    today_start = start_of_local_day(now, tz)
    today_count = (
        db.session.query(func.count(HallPass.id))
        .filter(HallPass.school_id == school_id, HallPass.issued_at >= to_db_time(today_start))
        .scalar()
    )

    expiring_soon = len(find_expiring_passes([p.to_record() for p in active], now, warning_window))

    returned = HallPass.query.filter(
        HallPass.school_id == school_id,
        HallPass.status == PASS_STATUS_RETURNED,
        HallPass.returned_at.isnot(None),
    ).all()
    durations = [
        export_duration(p.issued_at, p.returned_at, p.elapsed_minutes) for p in returned
    ]

    return {
        "active_passes": len(active),
        "today_passes": today_count or 0,
        "expiring_soon": expiring_soon,
        "avg_duration": average_duration(durations),
        "unique_students_today": (
            db.session.query(func.count(func.distinct(HallPass.student_id)))
            .filter(HallPass.school_id == school_id, HallPass.issued_at >= to_db_time(today_start))
            .scalar()
        ) or 0,
    }


def _format_local(dt, tz, fmt='%Y-%m-%d %I:%M %p'):
    return as_utc(dt).astimezone(tz).strftime(fmt)


def csv_row(hall_pass, tz):
    duration = export_duration(hall_pass.issued_at, hall_pass.returned_at, hall_pass.elapsed_minutes)
    student = hall_pass.student
    return [
        hall_pass.student_name or "Unknown",
        (student.grade if student and student.grade else "Unknown"),
        hall_pass.teacher_name or "Unknown",
        hall_pass.destination,
        hall_pass.custom_destination or "",
        _format_local(hall_pass.issued_at, tz),
        _format_local(hall_pass.returned_at, tz) if hall_pass.returned_at else STILL_OUT,
        duration if duration is not None else STILL_OUT,
    ]


def build_csv_report(passes, tz):
    """Render passes as CSV text. Open passes never carry a duration."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CSV_HEADERS)
    for hall_pass in passes:
        writer.writerow(csv_row(hall_pass, tz))
    return buffer.getvalue()
