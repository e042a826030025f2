"""Tests for the per-school notification feed."""

from datetime import datetime, timezone

from passpilot.notifications import NotificationFeed
from passpilot.records import Notification

NOW = datetime(2026, 1, 12, 9, 0, tzinfo=timezone.utc)


def note(text):
    return Notification(title="Pass Expiring Soon", description=text, severity="destructive")


def test_publish_and_drain():
    feed = NotificationFeed(clock=lambda: NOW)
    feed.publish(1, note("a"))

    assert feed.pending_count(1) == 1
    assert feed.drain(1) == [{
        'title': "Pass Expiring Soon",
        'description': "a",
        'severity': "destructive",
        'created_at': "2026-01-12T09:00:00Z",
    }]
    assert feed.drain(1) == []
    assert feed.pending_count(1) == 0


def test_feeds_are_scoped_per_school():
    feed = NotificationFeed()
    feed.sink_for(1)(note("one"))
    feed.sink_for(2)(note("two"))

    assert [n['description'] for n in feed.drain(2)] == ["two"]
    assert [n['description'] for n in feed.drain(1)] == ["one"]


def test_feed_drops_oldest_when_full():
    feed = NotificationFeed(max_size=2)
    for text in ("a", "b", "c"):
        feed.publish(1, note(text))
    assert [n['description'] for n in feed.drain(1)] == ["b", "c"]
