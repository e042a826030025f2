"""
Notification sinks.

Background checks run server-side, but toasts are shown in the browser, so
notifications for a school are parked in a bounded in-memory feed that the
dashboard drains through ``GET /api/notifications`` on its own poll.
"""

import threading
from collections import defaultdict, deque

from passpilot.utils.timestamps import format_utc_iso, utc_now

DEFAULT_FEED_SIZE = 50


class NotificationFeed:
    """Per-school queues of pending notifications. Oldest entries drop first."""

    def __init__(self, max_size=DEFAULT_FEED_SIZE, clock=utc_now):
        self.max_size = max_size
        self.clock = clock
        self._lock = threading.Lock()
        self._queues = defaultdict(lambda: deque(maxlen=self.max_size))

    def publish(self, school_id, notification):
        entry = notification.to_dict()
        entry['created_at'] = format_utc_iso(self.clock())
        with self._lock:
            self._queues[school_id].append(entry)

    def drain(self, school_id):
        """Return and clear everything pending for ``school_id``."""
        with self._lock:
            queue = self._queues.pop(school_id, None)
        return list(queue) if queue else []

    def pending_count(self, school_id):
        with self._lock:
            queue = self._queues.get(school_id)
            return len(queue) if queue else 0

    def sink_for(self, school_id):
        """Build an ``emit_notification`` callable bound to one school."""
        def emit(notification):
            self.publish(school_id, notification)
        return emit

