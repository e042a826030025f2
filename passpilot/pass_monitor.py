"""
Pass expiry monitoring.

Each polling cycle looks at the current snapshot of active passes for one
school and emits a "Pass Expiring Soon" notification for every pass with
less than the warning window left. Passes that are already at or past
their deadline are a different state and are not announced here.

Notifications are not de-duplicated by default: a pass that stays inside
the window is announced again on every cycle until it expires or is
returned. Passing ``dedupe=True`` keeps a per-pass memory of the last
announced minute count and stays quiet until that count changes.
"""

import logging
import math
import threading
from datetime import timedelta

from passpilot.polling import Disposer, SnapshotPoller
from passpilot.records import Notification, SEVERITY_DESTRUCTIVE
from passpilot.utils.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_WARNING_WINDOW = timedelta(minutes=5)
DEFAULT_CHECK_INTERVAL_SECONDS = 30

_ONE_MINUTE = timedelta(minutes=1)


def format_minutes(minutes):
    return f"{minutes} minute{'' if minutes == 1 else 's'}"


def expiring_soon_notification(record, minutes_remaining):
    return Notification(
        title="Pass Expiring Soon",
        description=f"{record.student_name}'s pass expires in {format_minutes(minutes_remaining)}",
        severity=SEVERITY_DESTRUCTIVE,
    )


def find_expiring_passes(passes, now, window=DEFAULT_WARNING_WINDOW):
    """Return ``(record, minutes_remaining)`` for passes with ``0 < remaining <= window``.

    Records without a usable ``expires_at`` are skipped.
    """
    now = parse_timestamp(now) or utc_now()
    expiring = []
    for record in passes or []:
        expires_at = parse_timestamp(getattr(record, 'expires_at', None))
        if expires_at is None:
            logger.debug(f"Skipping pass {getattr(record, 'id', None)} without a readable deadline")
            continue
        time_remaining = expires_at - now
        if timedelta(0) < time_remaining <= window:
            expiring.append((record, math.floor(time_remaining / _ONE_MINUTE)))
    return expiring


class ExpiryMonitor:
    """Evaluates snapshots of active passes and pushes notifications to a sink."""

    def __init__(self, sink, scope_id=None, window=DEFAULT_WARNING_WINDOW,
                 clock=utc_now, dedupe=False):
        self.sink = sink
        self.scope_id = scope_id
        self.window = window
        self.clock = clock
        self.dedupe = dedupe
        self._last_notified = {}
        self._closed = threading.Event()

    @property
    def enabled(self):
        return self.scope_id is not None and not self._closed.is_set()

    @property
    def closed(self):
        return self._closed.is_set()

    def close(self):
        self._closed.set()
        self._last_notified.clear()

    def evaluate(self, passes, now=None):
        """Run one cycle over ``passes`` and return the notifications emitted."""
        if not self.enabled or not passes:
            return []

        now = now if now is not None else self.clock()
        expiring = find_expiring_passes(passes, now, self.window)

        if self.dedupe:
            in_window = {self._pass_key(record) for record, _ in expiring}
            for key in list(self._last_notified):
                if key not in in_window:
                    del self._last_notified[key]

        emitted = []
        for record, minutes_remaining in expiring:
            if self._closed.is_set():
                break
            if self.dedupe:
                key = self._pass_key(record)
                if self._last_notified.get(key) == minutes_remaining:
                    continue
                self._last_notified[key] = minutes_remaining

            notification = expiring_soon_notification(record, minutes_remaining)
            logger.info(f"Scope {self.scope_id}: {notification.description}")
            self.sink(notification)
            emitted.append(notification)
        return emitted

    @staticmethod
    def _pass_key(record):
        if record.id is not None:
            return record.id
        return (record.student_name, record.expires_at)


def watch_pass_expiry(scheduler, scope_id, fetch_active_passes, sink,
                      interval_seconds=DEFAULT_CHECK_INTERVAL_SECONDS,
                      window=DEFAULT_WARNING_WINDOW, clock=utc_now, dedupe=False,
                      run_immediately=False):
    """
    Poll ``fetch_active_passes(scope_id)`` on an interval and evaluate each result.

    Returns a ``Disposer``. Once it has been called no further cycle runs and
    no notification is emitted, even for a cycle that was already in flight.
    Without a scope the watch is disabled and a no-op disposer is returned.
    """
    if scope_id is None:
        logger.info("Pass expiry watch disabled: no scope")
        return Disposer(name='pass-expiry-disabled')

    monitor = ExpiryMonitor(sink, scope_id=scope_id, window=window, clock=clock, dedupe=dedupe)
    poller = SnapshotPoller(lambda: fetch_active_passes(scope_id), name=f"active passes for {scope_id}")
    watch = ExpiryWatch(monitor, poller)
    watch.attach(scheduler.every(
        interval_seconds,
        watch.tick,
        name=f"pass-expiry-{scope_id}",
        run_immediately=run_immediately,
    ))
    return watch


class ExpiryWatch(Disposer):
    """A registered expiry check: one poller feeding one monitor."""

    def __init__(self, monitor, poller):
        super().__init__(self._teardown, name=f"pass-expiry-{monitor.scope_id}")
        self.monitor = monitor
        self.poller = poller
        self._task = None

    def attach(self, task):
        self._task = task

    def tick(self):
        if self.monitor.closed:
            return []
        passes = self.poller.refresh(now=self.monitor.clock())
        return self.monitor.evaluate(passes)

    def _teardown(self):
        self.monitor.close()
        if self._task is not None:
            self._task()
