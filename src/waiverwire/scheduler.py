"""In-process scheduler for recurring waiver jobs."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Protocol

from waiverwire.clock import Clock, SystemClock
from waiverwire.config import DEFAULT_TIMEZONE, next_daily_occurrence, next_weekly_occurrence, parse_day


logger = logging.getLogger(__name__)

# Any Monday works as an anchor for weekday arithmetic.
_MONDAY = date(2024, 1, 1)


class Cadence(Protocol):
    def next_after(self, moment: datetime) -> datetime: ...


@dataclass(frozen=True)
class Weekly:
    day: str | int
    at: time
    tz: Optional[str] = DEFAULT_TIMEZONE

    @property
    def weekday(self) -> int:
        return parse_day(self.day)

    def next_after(self, moment: datetime) -> datetime:
        return next_weekly_occurrence(moment, self.weekday, self.at, self.tz)

    def before(self, delta: timedelta) -> "Weekly":
        """The weekly slot ``delta`` earlier in local time (may cross days)."""

        anchor = datetime.combine(_MONDAY + timedelta(days=self.weekday), self.at) - delta
        return Weekly(day=anchor.weekday(), at=anchor.time(), tz=self.tz)


@dataclass(frozen=True)
class Daily:
    at: time
    tz: Optional[str] = DEFAULT_TIMEZONE

    def next_after(self, moment: datetime) -> datetime:
        return next_daily_occurrence(moment, self.at, self.tz)


@dataclass
class ScheduledJob:
    name: str
    cadence: Cadence
    action: Callable[[], object]
    key: str
    next_run: datetime
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    runs: int = 0
    failures: int = 0


class Scheduler:
    """Fires registered jobs when their cadence comes due.

    Jobs sharing a ``key`` run one after another in fire-time order; jobs
    with different keys run in parallel on a thread pool. A failing job is
    logged and rescheduled and never blocks the others. Missed slots are
    coalesced: a job that fell several occurrences behind runs once.
    """

    def __init__(self, clock: Clock | None = None, *, max_workers: int = 4, poll_interval: float = 30.0):
        self.clock = clock or SystemClock()
        self.max_workers = max(1, max_workers)
        self.poll_interval = poll_interval
        self._jobs: Dict[str, ScheduledJob] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register(self, name: str, cadence: Cadence, action: Callable[[], object], *, key: str | None = None) -> ScheduledJob:
        """Add or refresh a job; an unchanged cadence keeps its next fire time."""

        with self._lock:
            existing = self._jobs.get(name)
            if existing is not None and existing.cadence == cadence:
                existing.action = action
                existing.key = key or name
                return existing
            job = ScheduledJob(
                name=name,
                cadence=cadence,
                action=action,
                key=key or name,
                next_run=cadence.next_after(self.clock.now()),
            )
            self._jobs[name] = job
        logger.info("Scheduled %s; next run %s", name, job.next_run.isoformat())
        return job

    def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(name, None)
        if removed is not None:
            logger.info("Unscheduled %s", name)
        return removed is not None

    def jobs(self) -> List[ScheduledJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: (job.next_run, job.name))

    def job_names(self) -> List[str]:
        return [job.name for job in self.jobs()]

    def get(self, name: str) -> Optional[ScheduledJob]:
        with self._lock:
            return self._jobs.get(name)

    def run_pending(self) -> List[str]:
        """Run every job that is due and return their names in fire order."""

        fired_at = self.clock.now()
        due = [job for job in self.jobs() if job.next_run <= fired_at]
        if not due:
            return []
        groups: Dict[str, List[ScheduledJob]] = defaultdict(list)
        for job in due:
            groups[job.key].append(job)

        if len(groups) == 1 or self.max_workers == 1:
            for group in groups.values():
                self._run_group(group, fired_at)
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(groups))) as pool:
                futures = [pool.submit(self._run_group, group, fired_at) for group in groups.values()]
                for future in futures:
                    future.result()
        return [job.name for job in due]

    def _run_group(self, jobs: List[ScheduledJob], fired_at: datetime) -> None:
        for job in jobs:
            self._run_job(job, fired_at)

    def _run_job(self, job: ScheduledJob, fired_at: datetime) -> None:
        logger.info("Running scheduled job %s", job.name)
        try:
            job.action()
        except Exception as exc:
            job.failures += 1
            job.last_error = str(exc)
            logger.exception("Scheduled job %s failed", job.name)
        else:
            job.last_error = None
        finally:
            job.runs += 1
            job.last_run = fired_at
            job.next_run = job.cadence.next_after(fired_at)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="waiverwire-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started with %d job(s)", len(self.jobs()))

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(self.poll_interval)


__all__ = ["Cadence", "Daily", "ScheduledJob", "Scheduler", "Weekly"]
