"""
Monitor Scheduler -- Fixed-Interval Jobs on a Monotonic Clock.

Each job's next fire time is computed explicitly from ``time.monotonic()``,
so wall-clock changes (DST, NTP corrections, timezone settings) can neither
skip nor double-fire a run.

A job never overlaps with itself.  If a tick arrives while the previous run
is still going, that tick is skipped rather than queued, so a slow run can
never cause a pile-up of work behind it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    """A named callable that runs every ``interval_seconds``."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], Any],
        run_immediately: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.run_immediately = run_immediately
        self.next_run_at: Optional[float] = None
        self.last_result: Any = None
        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self._running = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def schedule_from(self, now: float) -> None:
        self.next_run_at = now if self.run_immediately else now + self.interval_seconds

    def is_due(self, now: float) -> bool:
        return self.next_run_at is not None and now >= self.next_run_at

    def advance(self, now: float) -> None:
        """Move the next fire time past ``now`` on the job's fixed grid."""
        if self.next_run_at is None:
            self.next_run_at = now
        while self.next_run_at <= now:
            self.next_run_at += self.interval_seconds

    def try_run(self) -> bool:
        """Run the job unless a previous run is still active.

        Returns:
            True if the job ran, False if this tick was skipped.
        """
        if not self._running.acquire(blocking=False):
            self.skipped += 1
            logger.warning("Job %s still running; skipping this tick", self.name)
            return False
        try:
            self.last_result = self.func()
            self.runs += 1
        except Exception:
            self.failures += 1
            logger.exception("Job %s failed", self.name)
        finally:
            self._running.release()
        return True

    def __repr__(self) -> str:
        return (
            f"PeriodicJob(name='{self.name}', interval={self.interval_seconds}s, "
            f"runs={self.runs}, skipped={self.skipped})"
        )


class MonitorScheduler:
    """Runs periodic jobs, each on its own worker thread when due.

    ``run_pending()`` performs a single scheduling pass and is what tests
    drive directly; ``start()`` runs passes on a background loop until
    ``stop()``.
    """

    def __init__(
        self,
        jobs: Optional[list[PeriodicJob]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        poll_seconds: float = 1.0,
    ) -> None:
        self._jobs: list[PeriodicJob] = []
        self._monotonic = monotonic
        self._poll_seconds = poll_seconds
        self._stop = threading.Event()
        self._loop: Optional[threading.Thread] = None
        for job in jobs or []:
            self.add_job(job)

    @property
    def jobs(self) -> list[PeriodicJob]:
        return list(self._jobs)

    def add_job(self, job: PeriodicJob) -> None:
        if any(j.name == job.name for j in self._jobs):
            raise ValueError(f"Job '{job.name}' already scheduled")
        job.schedule_from(self._monotonic())
        self._jobs.append(job)

    def run_pending(self, wait: bool = True) -> list[str]:
        """Start every due job.

        Args:
            wait: Block until the jobs started in this pass have finished.

        Returns:
            Names of the jobs that were due in this pass.
        """
        now = self._monotonic()
        due = [job for job in self._jobs if job.is_due(now)]
        threads = []
        for job in due:
            job.advance(now)
            thread = threading.Thread(target=job.try_run, name=f"job-{job.name}", daemon=True)
            thread.start()
            threads.append(thread)
        if wait:
            for thread in threads:
                thread.join()
        return [job.name for job in due]

    def seconds_until_next(self) -> Optional[float]:
        pending = [j.next_run_at for j in self._jobs if j.next_run_at is not None]
        if not pending:
            return None
        return max(0.0, min(pending) - self._monotonic())

    def start(self) -> None:
        if self._loop is not None and self._loop.is_alive():
            return
        self._stop.clear()
        self._loop = threading.Thread(target=self._run_loop, name="monitor-scheduler", daemon=True)
        self._loop.start()
        logger.info("Scheduler started with jobs: %s", [j.name for j in self._jobs])

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._loop is not None:
            self._loop.join(timeout)
        logger.info("Scheduler stopped")

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            self.run_pending(wait=False)
            delay = self.seconds_until_next()
            wait_for = self._poll_seconds if delay is None else min(delay, self._poll_seconds)
            self._stop.wait(wait_for)
