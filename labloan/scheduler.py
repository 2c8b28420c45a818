# Overview: In-process background scheduler for the expiry and cleanup sweeps.

"""
SweepScheduler

- tick() runs every job whose interval has elapsed (public for testing).
- start() / stop() run tick() on a daemon thread every tick_interval seconds.
- All times come from the injected Clock, so jobs can be driven in tests
  without real waits.
- A failing job is logged and rescheduled; it never stops the loop or the
  other jobs.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, ContextManager, Optional

from .time_utils import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class SweepJob:
    name: str
    interval: timedelta
    run: Callable  # (session, now) -> SweepReport
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def is_due(self, now: datetime) -> bool:
        return self.next_run_at is None or now >= self.next_run_at


class SweepScheduler:
    """
    Runs SweepJobs on fixed intervals, independent of request traffic.

    session_scope is a zero-argument callable returning a context manager that
    yields a session (and cleans it up afterwards); each job gets its own.
    """

    def __init__(
        self,
        session_scope: Callable[[], ContextManager],
        jobs: list[SweepJob],
        *,
        clock: Clock | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._session_scope = session_scope
        self._jobs = {job.name: job for job in jobs}
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        # Serializes tick() and run_job() so a sweep never runs twice at once
        self._run_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def jobs(self) -> dict[str, SweepJob]:
        return dict(self._jobs)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> list[str]:
        """Run every due job once. Returns the names of jobs that ran."""
        now = self._clock.now()
        ran = []
        for job in self._jobs.values():
            if self._stop_event.is_set():
                break
            with self._run_lock:
                if not job.is_due(now):
                    continue
                self._execute(job, now)
            ran.append(job.name)
        return ran

    def run_job(self, name: str, *, session=None):
        """
        Run one job immediately, regardless of its schedule.

        With session given, the job runs on it instead of a fresh scope.
        """
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(name)
        with self._run_lock:
            return self._execute(job, self._clock.now(), session=session)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="labloan-sweeps",
            daemon=True,
        )
        self._thread.start()
        logger.info("Sweep scheduler started (tick every %ss)", self._tick_interval)

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the running tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("Sweep scheduler stopped")

    def _execute(self, job: SweepJob, now: datetime, *, session=None):
        job.last_run_at = now
        job.next_run_at = now + job.interval
        scope = nullcontext(session) if session is not None else self._session_scope()
        try:
            with scope as session:
                report = job.run(session, now)
        except Exception as exc:
            job.last_error = str(exc)
            logger.exception("Sweep job %s failed", job.name)
            return None
        job.last_error = None
        if report is not None and report.count:
            logger.info("Sweep job %s processed %d request(s)", job.name, report.count)
        return report

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Sweep scheduler tick failed")
            self._stop_event.wait(timeout=self._tick_interval)


def app_session_scope(app):
    """session_scope factory bound to a Flask app's db.session."""
    from .extensions import db

    @contextmanager
    def scope():
        with app.app_context():
            try:
                yield db.session
            finally:
                db.session.remove()

    return scope


def build_default_jobs(config, *, notifier=None) -> list[SweepJob]:
    """The three periodic jobs, with intervals and windows taken from app config."""
    from .services import expiry_service

    retention_days = config.get("REQUEST_RETENTION_DAYS", expiry_service.DEFAULT_RETENTION_DAYS)
    grace_days = config.get("EXPIRED_GRACE_DAYS", expiry_service.DEFAULT_EXPIRED_GRACE_DAYS)

    return [
        SweepJob(
            name="expiry",
            interval=timedelta(seconds=config.get("EXPIRY_SWEEP_INTERVAL_SECONDS", 3600)),
            run=lambda session, now: expiry_service.run_expiry_cycle(
                session, now=now, notifier=notifier
            ),
        ),
        SweepJob(
            name="stale",
            interval=timedelta(seconds=config.get("STALE_SWEEP_INTERVAL_SECONDS", 86400)),
            run=lambda session, now: expiry_service.purge_stale_requests(
                session, now=now, retention_days=retention_days, expired_grace_days=grace_days
            ),
        ),
        SweepJob(
            name="return-reminders",
            interval=timedelta(seconds=config.get("REMINDER_SWEEP_INTERVAL_SECONDS", 86400)),
            run=lambda session, now: expiry_service.send_return_reminders(
                session, now=now, notifier=notifier
            ),
        ),
    ]
