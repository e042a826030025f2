"""Tests for the periodic task scheduler and snapshot poller."""

import threading

import pytest
from apscheduler.triggers.cron import CronTrigger

from passpilot.polling import Disposer, PollingScheduler, SnapshotPoller


@pytest.fixture
def polling():
    scheduler = PollingScheduler()
    yield scheduler
    scheduler.shutdown()


def test_disposer_runs_cleanup_once():
    calls = []
    disposer = Disposer(lambda: calls.append(1), name="job")

    assert disposer.disposed is False
    assert disposer() is True
    assert disposer() is False
    assert disposer.disposed is True
    assert calls == [1]


def test_disposer_as_context_manager():
    calls = []
    with Disposer(lambda: calls.append(1)) as disposer:
        assert not disposer.disposed
    assert calls == [1]


def test_every_registers_and_disposes(polling):
    disposer = polling.every(3600, lambda: None, name="refresh")

    assert polling.running is True
    assert polling.task_names == ["refresh"]
    assert len(polling.scheduler.get_jobs()) == 1

    disposer()
    assert polling.task_names == []
    assert polling.scheduler.get_jobs() == []
    # Disposing twice is harmless
    assert disposer() is False


def test_run_immediately_fires_first_cycle(polling):
    ran = threading.Event()
    polling.every(3600, ran.set, name="kick", run_immediately=True)
    assert ran.wait(timeout=5)


def test_daily_uses_cron_trigger(polling):
    polling.daily(lambda: None, hour=0, minute=0, timezone="America/Los_Angeles", name="reset")
    job = polling.scheduler.get_jobs()[0]
    assert isinstance(job.trigger, CronTrigger)
    assert str(job.trigger.timezone) == "America/Los_Angeles"


def test_shutdown_disposes_everything():
    scheduler = PollingScheduler()
    first = scheduler.every(3600, lambda: None, name="a")
    second = scheduler.every(3600, lambda: None, name="b")

    scheduler.shutdown()

    assert first.disposed and second.disposed
    assert scheduler.running is False
    assert scheduler.task_names == []


def test_scheduler_restarts_after_shutdown():
    scheduler = PollingScheduler()
    scheduler.every(3600, lambda: None, name="a")
    scheduler.shutdown()

    scheduler.every(3600, lambda: None, name="b")
    assert scheduler.running is True
    assert scheduler.task_names == ["b"]
    scheduler.shutdown()


def test_snapshot_poller_replaces_snapshot():
    data = [[1, 2], [3]]
    poller = SnapshotPoller(lambda: data.pop(0), name="numbers")

    assert poller.refresh(now="t1") == [1, 2]
    assert poller.refresh(now="t2") == [3]
    assert poller.snapshot == [3]
    assert poller.last_refreshed == "t2"


def test_snapshot_poller_keeps_last_snapshot_on_failure():
    results = [[1], RuntimeError("boom")]

    def fetch():
        result = results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    poller = SnapshotPoller(fetch)
    poller.refresh(now="t1")
    assert poller.refresh(now="t2") == [1]
    assert poller.last_refreshed == "t1"
    assert isinstance(poller.last_error, RuntimeError)


def test_snapshot_poller_none_result_is_empty():
    poller = SnapshotPoller(lambda: None, initial=[5])
    assert poller.refresh() == []


def test_shutdown_runs_hooks_before_disposing():
    scheduler = PollingScheduler()
    order = []
    task = scheduler.every(3600, lambda: None, name="a")
    scheduler.on_shutdown(lambda: order.append(("hook", task.disposed)))

    scheduler.shutdown()
    scheduler.shutdown()

    assert order == [("hook", False)]
    assert task.disposed
