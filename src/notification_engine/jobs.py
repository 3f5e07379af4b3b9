"""
Named periodic jobs driven by a single time source.

``JobRunner`` can be driven two ways:

- virtually, by calling ``run_pending`` / ``advance`` against a FakeClock
  (tests, simulations);
- in the background, through an APScheduler ``BackgroundScheduler`` that
  fires each job on its interval.

A job never overlaps itself and all jobs run under the engine-wide lock, so
two different jobs never execute at the same time either. A handler that
raises is logged and retried at its next interval.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    name: str
    interval: timedelta
    handler: Callable[[datetime], Any]
    next_run: datetime
    last_run: Optional[datetime] = None
    run_count: int = 0
    running: bool = False


class JobRunner:
    """Registry and driver for the engine's periodic jobs."""

    def __init__(self, clock, lock=None):
        self.clock = clock
        self.lock = lock or threading.RLock()
        self.jobs: Dict[str, PeriodicJob] = {}
        self._scheduler: Optional[BackgroundScheduler] = None
        self._guard = threading.Lock()

    def add(self, name: str, interval_seconds: float, handler: Callable[[datetime], Any]) -> PeriodicJob:
        """Register ``handler`` to run every ``interval_seconds``; the first run is one interval from now."""
        interval = timedelta(seconds=interval_seconds)
        job = PeriodicJob(name=name, interval=interval, handler=handler, next_run=self.clock.now() + interval)
        self.jobs[name] = job
        return job

    def run_job(self, name: str) -> bool:
        """
        Run one job immediately.

        Returns:
            False when the job is already running (the run is skipped)
        """
        job = self.jobs[name]
        with self._guard:
            if job.running:
                logger.debug(f"Job {name} still running; skipping overlapping run")
                return False
            job.running = True

        with self.lock:
            now = self.clock.now()
            try:
                job.handler(now)
            except Exception as e:
                logger.error(f"Job {name} failed: {e}", exc_info=True)
            finally:
                job.running = False
                job.last_run = now
                job.run_count += 1
        return True

    def run_pending(self) -> List[str]:
        """
        Run every job whose next run time has come.

        Missed intervals are coalesced into a single run.

        Returns:
            Names of the jobs that ran
        """
        now = self.clock.now()
        ran = []
        for job in list(self.jobs.values()):
            if job.next_run > now:
                continue
            if self.run_job(job.name):
                ran.append(job.name)
            while job.next_run <= now:
                job.next_run += job.interval
        return ran

    def advance(self, delta: timedelta) -> List[str]:
        """
        Move a FakeClock forward by ``delta``, running each job at its due time.

        Returns:
            Names of the jobs run, in execution order
        """
        target = self.clock.now() + delta
        ran = []
        while self.jobs:
            next_due = min(job.next_run for job in self.jobs.values())
            if next_due > target:
                break
            self.clock.set(max(next_due, self.clock.now()))
            ran.extend(self.run_pending())
        self.clock.set(target)
        return ran

    # Background mode

    def start_background(self) -> None:
        """Start firing jobs on wall-clock intervals in a background thread."""
        if self._scheduler is not None and self._scheduler.running:
            return

        self._scheduler = BackgroundScheduler()
        for job in self.jobs.values():
            self._scheduler.add_job(
                self.run_job,
                "interval",
                seconds=job.interval.total_seconds(),
                args=[job.name],
                id=job.name,
                name=job.name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        self._scheduler.start()
        logger.info("Notification job scheduler started")
        for job in self._scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Notification job scheduler stopped")
        self._scheduler = None
