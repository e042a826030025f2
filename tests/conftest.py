import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from passpilot import app as flask_app, db
from passpilot.extensions import limiter, notification_feed
from passpilot.models import School, Staff, Student, STAFF_ROLE_ADMIN
from passpilot.records import PLAN_FREE_TRIAL


@pytest.fixture
def app():
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
    )
    limiter.enabled = False
    yield flask_app
    limiter.enabled = True


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    client = flask_app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def school(client):
    school = School(name="Lincoln High", plan=PLAN_FREE_TRIAL)
    db.session.add(school)
    db.session.commit()
    # Ids are reused once tables are recreated; start every test with an empty feed
    notification_feed.drain(school.id)
    return school


@pytest.fixture
def teacher(school):
    staff = Staff(school_id=school.id, email="teacher@lincoln.edu", name="Ms. Rivera")
    staff.set_password("correct-horse")
    db.session.add(staff)
    db.session.commit()
    return staff


@pytest.fixture
def admin_staff(school):
    staff = Staff(
        school_id=school.id,
        email="principal@lincoln.edu",
        name="Dr. Okafor",
        role=STAFF_ROLE_ADMIN,
    )
    staff.set_password("battery-staple")
    db.session.add(staff)
    db.session.commit()
    return staff


@pytest.fixture
def student(school):
    student = Student(school_id=school.id, first_name="Alice", last_name="Nguyen", grade="10")
    db.session.add(student)
    db.session.commit()
    return student


def _login(client, staff):
    with client.session_transaction() as sess:
        sess['staff_id'] = staff.id
        sess['school_id'] = staff.school_id
        sess['last_activity'] = datetime.now(timezone.utc).isoformat()
    return client


@pytest.fixture
def teacher_client(client, teacher):
    """Test client with a teacher session."""
    return _login(client, teacher)


@pytest.fixture
def admin_client(client, admin_staff):
    """Test client with a school administrator session."""
    return _login(client, admin_staff)
