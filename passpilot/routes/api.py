"""
API routes for PassPilot.

RESTful JSON API endpoints for signing in, issuing and returning hall
passes, reports, school/trial status and the notification feed. Every
route except login is scoped to the signed-in staff member's school.
"""

from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, session, current_app, Response
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError

from passpilot.extensions import db, limiter, notification_feed
from passpilot.models import HallPass, School, Staff, Student
from passpilot.auth import (
    login_required, admin_required, get_current_staff,
    start_staff_session, clear_staff_session,
)
from passpilot.passes import (
    PassError, PassValidationError, issue_pass, return_pass, update_pass_status, return_all_active_passes,
    active_passes_query, get_active_pass_for_student, pass_history_query,
    date_range_start, pass_stats, build_csv_report, expire_overdue_passes,
)
from passpilot.utils.timestamps import get_timezone
from passpilot.utils.trial_status import evaluate_trial_banner

# Create blueprint
api_bp = Blueprint('api', __name__, url_prefix='/api')

HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 500


def _error(message, status=400):
    return jsonify({"status": "error", "message": message}), status


def _school_timezone():
    tz_name = session.get('timezone') or current_app.config.get('SCHOOL_TIMEZONE')
    return get_timezone(tz_name)


def _now():
    return datetime.now(timezone.utc)


def _get_school_pass(pass_id):
    """Load a pass inside the current school, or None."""
    staff = get_current_staff()
    hall_pass = db.session.get(HallPass, pass_id)
    if not hall_pass or hall_pass.school_id != staff.school_id:
        return None
    return hall_pass


# -------------------- AUTH API --------------------

@api_bp.route('/auth/csrf-token', methods=['GET'])
def csrf_token():
    """Token for the X-CSRFToken header on state-changing requests."""
    return jsonify({"status": "success", "csrf_token": generate_csrf()})


@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return _error("Email and password are required.")

    staff = Staff.query.filter_by(email=email).first()
    if not staff or not staff.check_password(password):
        current_app.logger.info(f"Failed login for {email}")
        return _error("Invalid credentials", 401)

    start_staff_session(staff)
    staff.last_login = _now().replace(tzinfo=None)
    db.session.commit()
    return jsonify({"status": "success", "user": staff.to_dict()})


@api_bp.route('/auth/logout', methods=['POST'])
def logout():
    clear_staff_session()
    return jsonify({"status": "success"})


@api_bp.route('/auth/me', methods=['GET'])
@login_required
def me():
    return jsonify({"status": "success", "user": get_current_staff().to_dict()})


@api_bp.route('/set-timezone', methods=['POST'])
@login_required
def set_timezone():
    """Remember the browser's timezone for day boundaries and report times."""
    data = request.get_json(silent=True) or {}
    tz_name = data.get('timezone')
    if not tz_name or get_timezone(tz_name, fallback='UTC').zone != tz_name:
        return _error("Invalid timezone")
    session['timezone'] = tz_name
    return jsonify({"status": "success", "timezone": tz_name})


# -------------------- STUDENTS API --------------------

@api_bp.route('/students', methods=['GET'])
@login_required
def list_students():
    staff = get_current_staff()
    query = Student.query.filter_by(school_id=staff.school_id)
    grade = request.args.get('grade', '').strip()
    if grade:
        query = query.filter_by(grade=grade)
    students = query.order_by(Student.last_name, Student.first_name).all()
    return jsonify({"status": "success", "students": [s.to_dict() for s in students]})


# -------------------- HALL PASS API --------------------

@api_bp.route('/passes', methods=['POST'])
@login_required
@limiter.limit("60 per minute")
def create_pass():
    staff = get_current_staff()
    data = request.get_json(silent=True) or {}

    student = db.session.get(Student, data.get('student_id')) if data.get('student_id') else None
    if not student or student.school_id != staff.school_id:
        return _error("Student not found.", 404)

    try:
        hall_pass = issue_pass(
            staff,
            student,
            destination=data.get('destination'),
            duration=data.get('duration', current_app.config.get('DEFAULT_PASS_DURATION', 10)),
            custom_destination=data.get('custom_destination'),
            notes=data.get('notes'),
        )
        db.session.commit()
    except PassError as e:
        db.session.rollback()
        return _error(str(e), e.status_code)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Creating pass failed: {e}", exc_info=True)
        return _error("Database error.", 500)

    return jsonify({"status": "success", "pass": hall_pass.to_dict()}), 201


@api_bp.route('/passes/active', methods=['GET'])
@login_required
def get_active_passes():
    """Currently open passes, oldest first. Overdue passes are expired first."""
    staff = get_current_staff()
    try:
        if expire_overdue_passes(staff.school_id, _now()):
            db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Expiring overdue passes failed: {e}", exc_info=True)

    passes = active_passes_query(staff.school_id).all()
    return jsonify({"status": "success", "passes": [p.to_dict() for p in passes]})


def _history_filters():
    """Translate query-string filters into pass_history_query() kwargs."""
    now = _now()
    tz = _school_timezone()
    filters = {}

    date_range = request.args.get('date_range', 'all').strip()
    if date_range == 'custom':
        start_date = request.args.get('start_date', '').strip()
        end_date = request.args.get('end_date', '').strip()
        try:
            if start_date:
                start = tz.localize(datetime.strptime(start_date, '%Y-%m-%d'))
                filters['start'] = start.astimezone(timezone.utc)
            if end_date:
                end = tz.localize(datetime.strptime(end_date, '%Y-%m-%d').replace(hour=23, minute=59, second=59))
                filters['end'] = end.astimezone(timezone.utc)
        except ValueError:
            raise PassValidationError("Invalid date format, expected YYYY-MM-DD")
    elif date_range != 'all':
        start = date_range_start(date_range, now, tz)
        if start is None:
            raise PassValidationError(f"Unknown date range '{date_range}'")
        filters['start'] = start

    for arg, key in (('grade', 'grade'), ('destination', 'destination'), ('status', 'status')):
        value = request.args.get(arg, '').strip()
        if value:
            filters[key] = value

    teacher_id = request.args.get('teacher_id', type=int)
    if teacher_id:
        filters['teacher_id'] = teacher_id
    return filters


@api_bp.route('/passes/history', methods=['GET'])
@login_required
def get_pass_history():
    staff = get_current_staff()
    try:
        filters = _history_filters()
    except PassError as e:
        return _error(str(e))

    limit = min(request.args.get('limit', HISTORY_DEFAULT_LIMIT, type=int) or HISTORY_DEFAULT_LIMIT,
                HISTORY_MAX_LIMIT)
    passes = pass_history_query(staff.school_id, **filters).limit(limit).all()
    return jsonify({"status": "success", "passes": [p.to_dict() for p in passes]})


@api_bp.route('/passes/export.csv', methods=['GET'])
@login_required
def export_passes_csv():
    staff = get_current_staff()
    try:
        filters = _history_filters()
    except PassError as e:
        return _error(str(e))

    passes = pass_history_query(staff.school_id, **filters).all()
    if not passes:
        return _error("No pass data available to export.", 404)

    body = build_csv_report(passes, _school_timezone())
    filename = f"pass-report-{_now().strftime('%Y-%m-%d')}.csv"
    return Response(
        body,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@api_bp.route('/passes/student/<int:student_id>', methods=['GET'])
@login_required
def get_student_active_pass(student_id):
    staff = get_current_staff()
    student = db.session.get(Student, student_id)
    if not student or student.school_id != staff.school_id:
        return _error("Student not found.", 404)

    hall_pass = get_active_pass_for_student(student.id)
    return jsonify({"status": "success", "pass": hall_pass.to_dict() if hall_pass else None})


@api_bp.route('/passes/<int:pass_id>/return', methods=['POST'])
@login_required
def return_hall_pass(pass_id):
    hall_pass = _get_school_pass(pass_id)
    if not hall_pass:
        return _error("Pass not found.", 404)

    try:
        return_pass(hall_pass, _now())
        db.session.commit()
    except PassError as e:
        db.session.rollback()
        return _error(str(e), e.status_code)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Returning pass {pass_id} failed: {e}", exc_info=True)
        return _error("Database error.", 500)

    return jsonify({
        "status": "success",
        "message": f"{hall_pass.student_name} has returned.",
        "pass": hall_pass.to_dict(),
    })


@api_bp.route('/passes/<int:pass_id>/status', methods=['PATCH'])
@login_required
def patch_pass_status(pass_id):
    hall_pass = _get_school_pass(pass_id)
    if not hall_pass:
        return _error("Pass not found.", 404)

    data = request.get_json(silent=True) or {}
    try:
        update_pass_status(hall_pass, (data.get('status') or '').strip(), _now())
        db.session.commit()
    except PassError as e:
        db.session.rollback()
        return _error(str(e), e.status_code)

    return jsonify({"status": "success", "pass": hall_pass.to_dict()})


@api_bp.route('/passes/reset', methods=['POST'])
@admin_required
def reset_passes():
    """Return every open pass in the school immediately (manual daily reset)."""
    staff = get_current_staff()
    returned = return_all_active_passes(staff.school_id, _now())
    db.session.commit()
    current_app.logger.info(f"Manual reset by staff {staff.id}: returned {returned} passes")
    return jsonify({"status": "success", "returned": returned})


@api_bp.route('/stats', methods=['GET'])
@login_required
def get_stats():
    staff = get_current_staff()
    stats = pass_stats(staff.school_id, _now(), _school_timezone())
    return jsonify({"status": "success", "stats": stats})


# -------------------- SCHOOL / TRIAL API --------------------

@api_bp.route('/school', methods=['GET'])
@login_required
def get_school():
    school = db.session.get(School, get_current_staff().school_id)
    return jsonify({"status": "success", "school": school.to_dict()})


@api_bp.route('/school/trial-status', methods=['GET'])
@login_required
def get_trial_status():
    school = db.session.get(School, get_current_staff().school_id)
    banner = evaluate_trial_banner(school.to_record(), _now())
    return jsonify({
        "status": "success",
        "banner": banner.to_dict() if banner else {"visible": False},
    })


# -------------------- NOTIFICATIONS API --------------------

@api_bp.route('/notifications', methods=['GET'])
@login_required
def get_notifications():
    """Drain pending notifications for the current school."""
    staff = get_current_staff()
    if not staff.enable_notifications:
        return jsonify({"status": "success", "notifications": []})
    return jsonify({
        "status": "success",
        "notifications": notification_feed.drain(staff.school_id),
    })
