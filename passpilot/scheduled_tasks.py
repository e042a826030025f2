"""
Scheduled background tasks for PassPilot.

Contains periodic tasks that run in the background to maintain pass state
and feed the notification sink:
- expire passes that ran past their deadline
- warn about passes about to expire
- return every open pass at local midnight
- refresh each school's trial-expired flag
"""

import logging
import threading
from datetime import timedelta

from passpilot.pass_monitor import ExpiryMonitor
from passpilot.utils.timestamps import utc_now

logger = logging.getLogger('scheduled_tasks')


def expire_overdue_passes_job(now=None):
    """Mark overdue active passes as expired across all schools."""
    from passpilot.extensions import db
    from passpilot.passes import expire_overdue_passes

    try:
        expired = expire_overdue_passes(now=now or utc_now())
        db.session.commit()
        if expired:
            logger.info(f"Expired {expired} overdue passes")
        return expired
    except Exception as e:
        logger.error(f"Expire overdue passes job failed: {e}", exc_info=True)
        db.session.rollback()
        return 0


class ExpiryCheck:
    """One ExpiryMonitor per school, fed from a fresh query every cycle."""

    def __init__(self, feed, window=timedelta(minutes=5), dedupe=False, clock=utc_now):
        self.feed = feed
        self.window = window
        self.dedupe = dedupe
        self.clock = clock
        self.monitors = {}
        self._closed = threading.Event()

    @property
    def closed(self):
        return self._closed.is_set()

    def monitor_for(self, school_id):
        """Monitor for one school, or None once the check has been closed."""
        if self.closed:
            return None
        monitor = self.monitors.get(school_id)
        if monitor is None:
            monitor = ExpiryMonitor(
                self.feed.sink_for(school_id),
                scope_id=school_id,
                window=self.window,
                clock=self.clock,
                dedupe=self.dedupe,
            )
            self.monitors[school_id] = monitor
        return monitor

    def run(self):
        """Evaluate every school with open passes. Returns the notification count."""
        from passpilot.passes import fetch_active_passes, schools_with_active_passes

        if self.closed:
            return 0
        logger.debug("Starting pass expiry check")
        now = self.clock()
        school_ids = schools_with_active_passes()

        # Drop monitors for schools that no longer have open passes
        for school_id in list(self.monitors):
            if school_id not in school_ids:
                self.monitors.pop(school_id).close()

        emitted = 0
        for school_id in school_ids:
            if self.closed:
                logger.info("Pass expiry check closed mid-cycle, skipping remaining schools")
                break
            try:
                passes = fetch_active_passes(school_id)
                monitor = self.monitor_for(school_id)
                if monitor is None:
                    break
                emitted += len(monitor.evaluate(passes, now))
            except Exception as e:
                logger.error(f"Expiry check failed for school {school_id}: {e}", exc_info=True)
                continue
        return emitted

    def close(self):
        """Stop emitting. A cycle already in flight emits nothing further."""
        self._closed.set()
        for monitor in list(self.monitors.values()):
            monitor.close()
        self.monitors.clear()


def daily_pass_reset_job(now=None):
    """Return every open pass in every school."""
    from passpilot.extensions import db
    from passpilot.models import School
    from passpilot.passes import return_all_active_passes

    logger.info("Starting daily pass reset")
    now = now or utc_now()
    total_returned = 0
    for school in School.query.all():
        try:
            returned = return_all_active_passes(school.id, now)
            db.session.commit()
        except Exception as e:
            logger.error(f"Daily reset failed for school {school.id}: {e}", exc_info=True)
            db.session.rollback()
            continue
        if returned:
            logger.info(f"Daily reset: returned {returned} active passes for school {school.name}")
        total_returned += returned

    logger.info(f"Daily reset completed. Total passes returned: {total_returned}")
    return total_returned


def refresh_trial_flags_job(now=None):
    """Recompute is_trial_expired for every school. Returns how many changed."""
    from passpilot.extensions import db
    from passpilot.models import School

    now = now or utc_now()
    try:
        changed = [school for school in School.query.all() if school.refresh_trial_flag(now)]
        db.session.commit()
    except Exception as e:
        logger.error(f"Trial flag refresh failed: {e}", exc_info=True)
        db.session.rollback()
        return 0

    for school in changed:
        logger.info(f"School {school.id} trial expired flag is now {school.is_trial_expired}")
    return len(changed)


def init_scheduled_tasks(app):
    """
    Initialize and start scheduled tasks.

    Args:
        app: Flask application instance

    Returns:
        list: disposers for every registered task
    """
    from passpilot.extensions import scheduler, notification_feed

    if scheduler.running:
        logger.info("Scheduler already running")
        return []

    def with_context(func):
        # Wrapper function that runs the job with Flask app context
        def run():
            with app.app_context():
                func()
        run.__name__ = getattr(func, '__name__', 'task')
        return run

    expiry_check = ExpiryCheck(
        notification_feed,
        window=timedelta(minutes=app.config['PASS_EXPIRY_WARNING_MINUTES']),
        dedupe=app.config['PASS_NOTIFY_DEDUPE'],
    )

    disposers = [
        scheduler.every(
            app.config['ACTIVE_PASS_REFRESH_SECONDS'],
            with_context(expire_overdue_passes_job),
            name='expire-overdue-passes',
        ),
        scheduler.every(
            app.config['PASS_EXPIRY_CHECK_SECONDS'],
            with_context(expiry_check.run),
            name='pass-expiry-check',
        ),
        scheduler.every(
            3600,
            with_context(refresh_trial_flags_job),
            name='refresh-trial-flags',
            run_immediately=True,
        ),
    ]

    if app.config['DAILY_RESET_ENABLED']:
        disposers.append(scheduler.daily(
            with_context(daily_pass_reset_job),
            hour=0,
            minute=0,
            timezone=app.config['SCHOOL_TIMEZONE'],
            name='daily-pass-reset',
        ))

    # Closing the expiry check stops any in-flight cycle from emitting
    disposers[1] = _chain(expiry_check.close, disposers[1])
    scheduler.on_shutdown(disposers[1])

    logger.info(
        "Scheduled tasks initialized. Expiry check every "
        f"{app.config['PASS_EXPIRY_CHECK_SECONDS']}s, overdue sweep every "
        f"{app.config['ACTIVE_PASS_REFRESH_SECONDS']}s."
    )
    return disposers


def _chain(first, disposer):
    from passpilot.polling import Disposer

    def cleanup():
        first()
        disposer()
    return Disposer(cleanup, name=disposer.name)
