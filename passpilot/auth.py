"""
Authentication and authorization utilities for PassPilot.

Contains session management helpers, authentication decorators, and timeout logic.
The API is consumed by fetch calls, so failures return JSON 401/403 instead
of redirecting to a login page.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import session, jsonify, current_app


# -------------------- SESSION CONFIGURATION --------------------

SESSION_TIMEOUT_MINUTES = 60


def _unauthorized(message="Unauthorized", status=401):
    return jsonify({"status": "error", "message": message}), status


def clear_staff_session():
    session.pop('staff_id', None)
    session.pop('school_id', None)
    session.pop('last_activity', None)


def start_staff_session(staff):
    session['staff_id'] = staff.id
    session['school_id'] = staff.school_id
    session['last_activity'] = datetime.now(timezone.utc).isoformat()


# -------------------- AUTHENTICATION DECORATORS --------------------

def login_required(f):
    """
    Decorator to require a signed-in staff member.

    Enforces session timeout based on last activity.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'staff_id' not in session:
            return _unauthorized()

        staff = get_current_staff()
        if not staff:
            clear_staff_session()
            return _unauthorized("Session is invalid. Please log in again.")

        now = datetime.now(timezone.utc)
        last_activity = session.get('last_activity')
        if last_activity:
            try:
                last_activity = datetime.fromisoformat(last_activity)
            except ValueError:
                last_activity = None
            if last_activity is None or (now - last_activity) > timedelta(minutes=SESSION_TIMEOUT_MINUTES):
                clear_staff_session()
                return _unauthorized("Session expired. Please log in again.")

        session['last_activity'] = now.isoformat()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require a signed-in school administrator."""
    @login_required
    @wraps(f)
    def decorated_function(*args, **kwargs):
        staff = get_current_staff()
        if not staff.is_admin:
            current_app.logger.warning(f"Staff {staff.id} denied admin route")
            return _unauthorized("Administrator access required.", 403)
        return f(*args, **kwargs)
    return decorated_function


# -------------------- HELPER FUNCTIONS --------------------

def get_current_staff():
    """Return the logged-in staff member, or None if not logged in."""
    staff_id = session.get('staff_id')
    if not staff_id:
        return None
    from passpilot.extensions import db
    from passpilot.models import Staff  # Imported lazily to avoid circular import
    return db.session.get(Staff, staff_id)

