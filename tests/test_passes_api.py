"""
Tests for the PassPilot JSON API.

Every route is scoped to the signed-in staff member's school.
"""

from datetime import datetime, timedelta, timezone

from passpilot.extensions import db, notification_feed
from passpilot.models import HallPass, School, Staff, Student
from passpilot.passes import issue_pass
from passpilot.records import Notification


def test_requires_login(client):
    resp = client.get('/api/passes/active')
    assert resp.status_code == 401
    assert resp.json['status'] == 'error'


def test_login_and_me(client, teacher):
    resp = client.post('/api/auth/login', json={'email': 'Teacher@Lincoln.edu', 'password': 'correct-horse'})
    assert resp.status_code == 200
    assert resp.json['user']['email'] == 'teacher@lincoln.edu'

    me = client.get('/api/auth/me')
    assert me.status_code == 200
    assert me.json['user']['name'] == 'Ms. Rivera'

    client.post('/api/auth/logout')
    assert client.get('/api/auth/me').status_code == 401


def test_login_rejects_bad_password(client, teacher):
    resp = client.post('/api/auth/login', json={'email': 'teacher@lincoln.edu', 'password': 'nope'})
    assert resp.status_code == 401


def test_expired_session_is_rejected(client, teacher):
    with client.session_transaction() as sess:
        sess['staff_id'] = teacher.id
        sess['school_id'] = teacher.school_id
        sess['last_activity'] = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()

    resp = client.get('/api/auth/me')
    assert resp.status_code == 401
    assert 'expired' in resp.json['message']


def test_list_students(teacher_client, student):
    resp = teacher_client.get('/api/students')
    assert resp.status_code == 200
    assert [s['full_name'] for s in resp.json['students']] == ['Alice Nguyen']


def test_create_pass(teacher_client, student):
    resp = teacher_client.post('/api/passes', json={
        'student_id': student.id,
        'destination': 'Restroom',
        'duration': 5,
    })
    assert resp.status_code == 201
    data = resp.json['pass']
    assert data['status'] == 'active'
    assert data['duration'] == 5
    assert data['elapsed_minutes'] is None
    assert data['issued_at'].endswith('Z')

    again = teacher_client.post('/api/passes', json={'student_id': student.id, 'destination': 'Nurse'})
    assert again.status_code == 409


def test_create_pass_validation(teacher_client, student):
    resp = teacher_client.post('/api/passes', json={'student_id': student.id, 'destination': ''})
    assert resp.status_code == 400

    missing = teacher_client.post('/api/passes', json={'student_id': 9999, 'destination': 'Office'})
    assert missing.status_code == 404


def test_active_passes_and_return(teacher_client, teacher, student):
    hall_pass = issue_pass(teacher, student, 'Library', duration=30)
    db.session.commit()

    active = teacher_client.get('/api/passes/active')
    assert [p['id'] for p in active.json['passes']] == [hall_pass.id]

    current = teacher_client.get(f'/api/passes/student/{student.id}')
    assert current.json['pass']['id'] == hall_pass.id

    resp = teacher_client.post(f'/api/passes/{hall_pass.id}/return')
    assert resp.status_code == 200
    assert resp.json['message'] == 'Alice Nguyen has returned.'
    assert resp.json['pass']['elapsed_minutes'] == 1

    assert teacher_client.post(f'/api/passes/{hall_pass.id}/return').status_code == 400
    assert teacher_client.get('/api/passes/active').json['passes'] == []


def test_active_endpoint_expires_overdue_passes(teacher_client, teacher, student):
    hall_pass = issue_pass(teacher, student, 'Restroom', duration=1,
                           now=datetime.now(timezone.utc) - timedelta(minutes=5))
    db.session.commit()

    resp = teacher_client.get('/api/passes/active')
    assert resp.json['passes'] == []
    assert db.session.get(HallPass, hall_pass.id).status == 'expired'


def test_patch_status(teacher_client, teacher, student):
    hall_pass = issue_pass(teacher, student, 'Office')
    db.session.commit()

    bad = teacher_client.patch(f'/api/passes/{hall_pass.id}/status', json={'status': 'missing'})
    assert bad.status_code == 400

    resp = teacher_client.patch(f'/api/passes/{hall_pass.id}/status', json={'status': 'revoked'})
    assert resp.status_code == 200
    assert resp.json['pass']['status'] == 'revoked'


def test_patch_status_after_return_is_rejected(teacher_client, teacher, student):
    hall_pass = issue_pass(teacher, student, 'Office')
    db.session.commit()
    assert teacher_client.post(f'/api/passes/{hall_pass.id}/return').status_code == 200

    resp = teacher_client.patch(f'/api/passes/{hall_pass.id}/status', json={'status': 'expired'})
    assert resp.status_code == 400
    assert db.session.get(HallPass, hall_pass.id).status == 'returned'


def test_other_school_pass_is_not_found(teacher_client):
    other_school = School(name="Roosevelt Middle")
    db.session.add(other_school)
    db.session.commit()
    other_teacher = Staff(school_id=other_school.id, email="x@roosevelt.edu", name="Mr. X")
    other_teacher.set_password("pw")
    other_student = Student(school_id=other_school.id, first_name="Zed", last_name="Park")
    db.session.add_all([other_teacher, other_student])
    db.session.commit()
    hall_pass = issue_pass(other_teacher, other_student, 'Gym')
    db.session.commit()

    assert teacher_client.post(f'/api/passes/{hall_pass.id}/return').status_code == 404
    assert teacher_client.get(f'/api/passes/student/{other_student.id}').status_code == 404


def test_history_filters(teacher_client, teacher, student):
    issue_pass(teacher, student, 'Library')
    db.session.commit()

    resp = teacher_client.get('/api/passes/history?date_range=today&destination=Library')
    assert len(resp.json['passes']) == 1

    none = teacher_client.get('/api/passes/history?destination=Gym')
    assert none.json['passes'] == []

    bad = teacher_client.get('/api/passes/history?date_range=custom&start_date=03/01/2026')
    assert bad.status_code == 400

    unknown = teacher_client.get('/api/passes/history?date_range=decade')
    assert unknown.status_code == 400


def test_export_csv(teacher_client, teacher, student):
    empty = teacher_client.get('/api/passes/export.csv')
    assert empty.status_code == 404

    issue_pass(teacher, student, 'Library')
    db.session.commit()

    resp = teacher_client.get('/api/passes/export.csv')
    assert resp.status_code == 200
    assert resp.mimetype == 'text/csv'
    assert 'attachment; filename=pass-report-' in resp.headers['Content-Disposition']
    body = resp.get_data(as_text=True)
    assert body.splitlines()[1].endswith('"Still Out","Still Out"')


def test_stats(teacher_client, teacher, student):
    issue_pass(teacher, student, 'Library', duration=3)
    db.session.commit()

    stats = teacher_client.get('/api/stats').json['stats']
    assert stats['active_passes'] == 1
    assert stats['expiring_soon'] == 1
    assert stats['avg_duration'] == 0


def test_school_and_trial_status(teacher_client, school):
    resp = teacher_client.get('/api/school')
    assert resp.json['school']['name'] == 'Lincoln High'
    assert resp.json['school']['current_teachers'] == 1

    hidden = teacher_client.get('/api/school/trial-status')
    assert hidden.json['banner'] == {'visible': False}

    school.trial_end_date = (datetime.now(timezone.utc) - timedelta(days=1)).replace(tzinfo=None)
    school.is_trial_expired = True
    db.session.commit()

    banner = teacher_client.get('/api/school/trial-status').json['banner']
    assert banner['visible'] is True
    assert banner['is_expired'] is True
    assert banner['severity'] == 'error'


def test_notifications_are_drained(teacher_client, teacher):
    notification_feed.publish(teacher.school_id, Notification(
        title="Pass Expiring Soon",
        description="Alice Nguyen's pass expires in 2 minutes",
        severity="destructive",
    ))

    first = teacher_client.get('/api/notifications').json['notifications']
    assert [n['description'] for n in first] == ["Alice Nguyen's pass expires in 2 minutes"]
    assert teacher_client.get('/api/notifications').json['notifications'] == []


def test_notifications_respect_staff_preference(teacher_client, teacher):
    teacher.enable_notifications = False
    db.session.commit()
    notification_feed.publish(teacher.school_id, Notification(title="t", description="d"))

    assert teacher_client.get('/api/notifications').json['notifications'] == []
    notification_feed.drain(teacher.school_id)


def test_reset_requires_admin(teacher_client):
    resp = teacher_client.post('/api/passes/reset')
    assert resp.status_code == 403


def test_admin_reset_returns_open_passes(admin_client, admin_staff, student):
    issue_pass(admin_staff, student, 'Office')
    db.session.commit()

    resp = admin_client.post('/api/passes/reset')
    assert resp.status_code == 200
    assert resp.json['returned'] == 1


def test_set_timezone(teacher_client):
    assert teacher_client.post('/api/set-timezone', json={'timezone': 'America/Chicago'}).status_code == 200
    assert teacher_client.post('/api/set-timezone', json={'timezone': 'Mars/Olympus'}).status_code == 400


def test_csrf_token_endpoint(client):
    resp = client.get('/api/auth/csrf-token')
    assert resp.status_code == 200
    assert resp.json['csrf_token']
