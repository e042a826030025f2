"""
Periodic task scheduling for PassPilot.

Wraps an APScheduler ``BackgroundScheduler`` so that every registered task
comes back with a ``Disposer``. Calling the disposer removes the task; it is
safe to call more than once. Jobs share a single worker thread, so two
evaluators never run at the same time, and each job is limited to one
running instance with missed runs coalesced.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class Disposer:
    """Handle returned by task registration. Runs its cleanup at most once."""

    def __init__(self, cleanup=None, name=None):
        self._cleanup = cleanup
        self._lock = threading.Lock()
        self._disposed = False
        self.name = name

    @property
    def disposed(self):
        return self._disposed

    def __call__(self):
        with self._lock:
            if self._disposed:
                return False
            self._disposed = True
            cleanup, self._cleanup = self._cleanup, None

        if cleanup is not None:
            cleanup()
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self()
        return False


class PollingScheduler:
    """Owns periodic tasks and guarantees they can be torn down."""

    def __init__(self, scheduler=None, timezone='UTC'):
        self._scheduler = scheduler
        self._timezone = timezone
        self._lock = threading.Lock()
        self._disposers = {}
        self._shutdown_hooks = []

    @property
    def scheduler(self):
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(
                executors={'default': ThreadPoolExecutor(max_workers=1)},
                job_defaults={'coalesce': True, 'max_instances': 1},
                timezone=self._timezone,
            )
        return self._scheduler

    @property
    def running(self):
        return self._scheduler is not None and self._scheduler.running

    @property
    def task_names(self):
        with self._lock:
            return sorted(d.name for d in self._disposers.values())

    def every(self, seconds, func, name=None, run_immediately=False):
        """Run ``func`` every ``seconds`` seconds until the returned disposer is called."""
        return self._register(
            func,
            name=name,
            trigger='interval',
            trigger_args={'seconds': seconds},
            run_immediately=run_immediately,
        )

    def daily(self, func, hour=0, minute=0, timezone=None, name=None):
        """Run ``func`` once a day at the given local wall-clock time."""
        trigger_args = {'hour': hour, 'minute': minute}
        if timezone is not None:
            trigger_args['timezone'] = timezone
        return self._register(func, name=name, trigger='cron', trigger_args=trigger_args)

    def _register(self, func, name, trigger, trigger_args, run_immediately=False):
        job_id = f"{name or getattr(func, '__name__', 'task')}-{uuid.uuid4().hex[:8]}"
        disposer = Disposer(name=name or job_id)

        def run():
            if disposer.disposed:
                return
            func()

        def cleanup():
            with self._lock:
                self._disposers.pop(job_id, None)
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                logger.debug("Task %s was already removed", job_id)
            logger.info("Stopped periodic task %s", disposer.name)

        disposer._cleanup = cleanup

        job_kwargs = {}
        if run_immediately:
            job_kwargs['next_run_time'] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            func=run,
            trigger=trigger,
            id=job_id,
            name=disposer.name,
            replace_existing=True,
            **trigger_args,
            **job_kwargs,
        )
        with self._lock:
            self._disposers[job_id] = disposer

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("Registered periodic task %s (%s %s)", disposer.name, trigger, trigger_args)
        return disposer

    def on_shutdown(self, hook):
        """Run ``hook`` (a callable or ``Disposer``) before tasks are disposed on shutdown."""
        with self._lock:
            self._shutdown_hooks.append(hook)
        return hook

    def shutdown(self, wait=False):
        """Run shutdown hooks, dispose every outstanding task and stop the scheduler."""
        with self._lock:
            hooks, self._shutdown_hooks = self._shutdown_hooks, []
            disposers = list(self._disposers.values())
        for hook in hooks:
            hook()
        for disposer in disposers:
            disposer()

        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False


class SnapshotPoller:
    """
    Holds the latest snapshot of one data set.

    Each successful refresh replaces the previous snapshot wholesale. A
    failed fetch is logged and leaves the last-known snapshot in place, so
    consumers cannot tell "nothing there" from "fetch failed".
    """

    def __init__(self, fetch, name='snapshot', initial=None):
        self._fetch = fetch
        self.name = name
        self._snapshot = list(initial or [])
        self.last_refreshed = None
        self.last_error = None

    @property
    def snapshot(self):
        return self._snapshot

    def refresh(self, now=None):
        try:
            result = self._fetch()
        except Exception as e:
            self.last_error = e
            logger.warning(f"Poll for {self.name} failed, keeping last snapshot: {e}", exc_info=True)
            return self._snapshot

        self._snapshot = list(result or [])
        self.last_refreshed = now
        self.last_error = None
        return self._snapshot
