"""
Purpose: Periodic job runner for the sweeps and the reliability pass.
What it does:
- Owns every job's state (schedule, status, timings, last error/result, counters)
- tick(now): starts every job that is due, on a small thread pool
- start()/stop(): a polling thread that calls tick() with the injected clock
- run_job(name): run one job now on the calling thread (admin trigger, tests)
- status(): snapshot for a health endpoint

Rules:
- A job never overlaps itself. If it is still running when it falls due again,
  that run is skipped and counted.
- A run that goes over its time budget is marked timed_out. Runs are not killed;
  the handlers themselves stop early (see the sweep's time budget).
- Handler exceptions are recorded on the job; they never stop the scheduler.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from common.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"
TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class IntervalSchedule:
    seconds: float

    def next_run(self, after: datetime) -> datetime:
        return after + timedelta(seconds=self.seconds)

    def describe(self) -> str:
        return f"every {self.seconds:g}s"


@dataclass(frozen=True)
class DailySchedule:
    hour: int = 0
    minute: int = 0

    def __post_init__(self):
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid daily schedule {self.hour:02d}:{self.minute:02d}")

    def next_run(self, after: datetime) -> datetime:
        candidate = after.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= after:
            candidate += timedelta(days=1)
        return candidate

    def describe(self) -> str:
        return f"daily at {self.hour:02d}:{self.minute:02d}"


@dataclass
class JobState:
    name: str
    schedule: Any
    handler: Callable[[], Any]
    timeout_seconds: Optional[float] = None

    status: str = IDLE
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_duration_seconds: Optional[float] = None
    last_error: Optional[str] = None
    last_result: Any = None
    run_count: int = 0
    skipped_count: int = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "schedule": self.schedule.describe(),
            "status": self.status,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_duration_seconds": self.last_duration_seconds,
            "last_error": self.last_error,
            "last_result": self.last_result,
            "run_count": self.run_count,
            "skipped_count": self.skipped_count,
        }


class JobScheduler:

    def __init__(self, clock: Optional[Clock] = None, poll_seconds: float = 1.0, max_workers: int = 4):
        self.clock = clock or SystemClock()
        self.poll_seconds = poll_seconds
        self.max_workers = max_workers
        self._jobs: Dict[str, JobState] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def register(
        self,
        name: str,
        schedule,
        handler: Callable[[], Any],
        *,
        timeout_seconds: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> JobState:
        now = now or self.clock.now()
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job {name!r} is already registered")
            job = JobState(
                name=name,
                schedule=schedule,
                handler=handler,
                timeout_seconds=timeout_seconds,
                next_run_at=schedule.next_run(now),
            )
            self._jobs[name] = job
        logger.info(f"Scheduler: registered {name} ({schedule.describe()})")
        return job

    def job(self, name: str) -> JobState:
        with self._lock:
            if name not in self._jobs:
                raise KeyError(f"Unknown job {name!r}")
            return self._jobs[name]

    # --- triggering ---

    def tick(self, now: Optional[datetime] = None) -> List[Future]:
        """
        Start every job that is due at `now`. Returns the futures of the runs started.
        """
        now = now or self.clock.now()
        to_start: List[JobState] = []

        with self._lock:
            for job in self._jobs.values():
                if job.next_run_at is None or job.next_run_at > now:
                    continue
                job.next_run_at = job.schedule.next_run(now)
                if job.status == RUNNING:
                    job.skipped_count += 1
                    logger.warning(f"Scheduler: {job.name} still running, skipping this run")
                    continue
                job.status = RUNNING
                to_start.append(job)

        if not to_start:
            return []

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="job")
        return [self._executor.submit(self._execute, job) for job in to_start]

    def run_job(self, name: str) -> Dict[str, Any]:
        """
        Run a job immediately on the calling thread. Returns its status snapshot.
        """
        job = self.job(name)
        with self._lock:
            if job.status == RUNNING:
                job.skipped_count += 1
                logger.warning(f"Scheduler: {name} already running, not starting another run")
                return job.snapshot()
            job.status = RUNNING
        self._execute(job)
        with self._lock:
            return job.snapshot()

    def _execute(self, job: JobState) -> None:
        started = self.clock.now()
        logger.info(f"Scheduler: {job.name} started")

        result = None
        error = None
        try:
            result = job.handler()
        except Exception as e:
            error = e
            logger.error(f"Scheduler: {job.name} failed: {e}", exc_info=True)

        duration = (self.clock.now() - started).total_seconds()

        with self._lock:
            job.last_run_at = started
            job.last_duration_seconds = duration
            job.run_count += 1
            if error is not None:
                job.status = FAILED
                job.last_error = str(error)
                job.last_result = None
            else:
                job.last_error = None
                job.last_result = _summarize_result(result)
                if job.timeout_seconds is not None and duration > job.timeout_seconds:
                    job.status = TIMED_OUT
                else:
                    job.status = SUCCEEDED

        if job.status == TIMED_OUT:
            logger.warning(f"Scheduler: {job.name} took {duration:.1f}s, over its {job.timeout_seconds:g}s budget")
        elif error is None:
            logger.info(f"Scheduler: {job.name} finished in {duration:.1f}s")

    # --- lifecycle ---

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="job-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler: started with {len(self._jobs)} jobs")

    def stop(self, wait: bool = True) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("Scheduler: stopped")

    def _loop(self) -> None:
        while not self._stop_event.wait(self.poll_seconds):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler: tick failed: {e}", exc_info=True)

    def status(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: job.snapshot() for name, job in self._jobs.items()}


def _summarize_result(result: Any) -> Any:
    # Sweep results expose to_dict(); keep the status snapshot plain data.
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result
