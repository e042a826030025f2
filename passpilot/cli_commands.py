"""
Flask CLI commands for school setup and pass maintenance.
"""

import time
from datetime import timedelta

import click
from flask import current_app
from sqlalchemy.exc import IntegrityError

from passpilot.extensions import db
from passpilot.models import School, Staff, STAFF_ROLE_ADMIN, STAFF_ROLE_TEACHER
from passpilot.pass_monitor import watch_pass_expiry
from passpilot.passes import fetch_active_passes, return_all_active_passes
from passpilot.polling import PollingScheduler
from passpilot.scheduled_tasks import refresh_trial_flags_job
from passpilot.utils.timestamps import utc_now


@click.command('create-school')
@click.argument('name')
@click.option('--trial-days', type=int, default=None, help='Trial length in days (defaults to TRIAL_LENGTH_DAYS)')
def create_school_command(name, trial_days):
    """Create a school on a free trial."""
    days = trial_days or current_app.config['TRIAL_LENGTH_DAYS']
    school = School.start_trial(name.strip(), utc_now(), trial_days=days)
    db.session.add(school)
    db.session.commit()
    click.echo(f"✓ Created school '{school.name}' (ID: {school.id}), trial ends in {days} days")


@click.command('create-staff')
@click.argument('school_id', type=int)
@click.argument('email')
@click.argument('name')
@click.option('--admin', is_flag=True, help='Give the account school administrator rights')
@click.password_option()
def create_staff_command(school_id, email, name, admin, password):
    """Create a staff account for a school."""
    school = db.session.get(School, school_id)
    if not school:
        raise click.ClickException(f"School {school_id} not found")

    staff = Staff(
        school_id=school.id,
        email=email.strip().lower(),
        name=name.strip(),
        role=STAFF_ROLE_ADMIN if admin else STAFF_ROLE_TEACHER,
    )
    staff.set_password(password)
    db.session.add(staff)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"A staff account for {staff.email} already exists")
    click.echo(f"✓ Created {staff.role} {staff.email} for {school.name}")


@click.command('reset-passes')
@click.option('--school-id', type=int, default=None, help='Only reset this school')
def reset_passes_command(school_id):
    """Return every open pass now (the daily reset, on demand)."""
    schools = [db.session.get(School, school_id)] if school_id else School.query.all()
    if schools == [None]:
        raise click.ClickException(f"School {school_id} not found")

    now = utc_now()
    total = 0
    for school in schools:
        returned = return_all_active_passes(school.id, now)
        total += returned
        click.echo(f"  {school.name}: returned {returned} passes")
    db.session.commit()
    click.echo(f"✓ Returned {total} passes")


@click.command('refresh-trials')
def refresh_trials_command():
    """Recompute every school's trial-expired flag."""
    changed = refresh_trial_flags_job()
    click.echo(f"✓ Updated {changed} schools")


@click.command('watch-passes')
@click.argument('school_id', type=int)
@click.option('--interval', type=int, default=None, help='Seconds between checks (defaults to PASS_EXPIRY_CHECK_SECONDS)')
@click.option('--dedupe/--no-dedupe', default=None, help='Announce each minute count only once per pass')
def watch_passes_command(school_id, interval, dedupe):
    """Watch one school's passes in the foreground and echo expiry warnings."""
    app = current_app._get_current_object()
    school = db.session.get(School, school_id)
    if not school:
        raise click.ClickException(f"School {school_id} not found")

    def fetch(scope_id):
        with app.app_context():
            return fetch_active_passes(scope_id)

    def echo(notification):
        click.echo(f"[{notification.severity}] {notification.title}: {notification.description}")

    interval = interval or app.config['PASS_EXPIRY_CHECK_SECONDS']
    if dedupe is None:
        dedupe = app.config['PASS_NOTIFY_DEDUPE']

    click.echo(f"Watching passes for {school.name} every {interval}s (Ctrl-C to stop)")
    with PollingScheduler() as scheduler:
        with watch_pass_expiry(
            scheduler,
            school.id,
            fetch,
            echo,
            interval_seconds=interval,
            window=timedelta(minutes=app.config['PASS_EXPIRY_WARNING_MINUTES']),
            dedupe=dedupe,
            run_immediately=True,
        ):
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                click.echo("Stopping pass watch")


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(create_school_command)
    app.cli.add_command(create_staff_command)
    app.cli.add_command(reset_passes_command)
    app.cli.add_command(refresh_trials_command)
    app.cli.add_command(watch_passes_command)
