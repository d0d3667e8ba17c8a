"""Injected registry of periodic jobs.

Each registered job runs on its own background thread at a fixed cadence.
A job never overlaps itself: if a run is still in progress when the next
one is due (or when ``run_now`` is called), the new run is skipped.

Usage:
    registry = build_default_registry(scanner, router.handle)
    registry.start()
    ...
    registry.stop()
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from irb_compliance.scheduler.scanner import ComplianceScanner, TriggerEvent

logger = logging.getLogger(__name__)


class Cadence(str, Enum):
    """How often a job runs."""

    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"

    @property
    def seconds(self) -> int:
        return {
            Cadence.HOURLY: 60 * 60,
            Cadence.DAILY: 24 * 60 * 60,
            Cadence.WEEKLY: 7 * 24 * 60 * 60,
        }[self]


@dataclass
class ScheduledJob:
    """A named job and its run statistics."""

    name: str
    cadence: Cadence
    func: Callable[[], None]
    interval_seconds: float
    runs_completed: int = 0
    runs_failed: int = 0
    runs_skipped: int = 0
    last_run_time: datetime | None = None
    last_error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()


class JobRegistry:
    """Lifecycle owner for periodic jobs."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._threads: list[threading.Thread] = []
        self._stop_event = threading.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def register(
        self,
        name: str,
        cadence: Cadence,
        func: Callable[[], None],
        interval_seconds: float | None = None,
    ) -> ScheduledJob:
        """Add a job.

        Args:
            name: Unique job name.
            cadence: Nominal cadence tier.
            func: Work to run.
            interval_seconds: Override for the cadence interval.

        Raises:
            ValueError: If a job with the same name exists.
            RuntimeError: If the registry is already running.
        """
        if self._running:
            raise RuntimeError("Cannot register jobs while the registry is running")
        if name in self._jobs:
            raise ValueError(f"Job {name} is already registered")
        job = ScheduledJob(
            name=name,
            cadence=cadence,
            func=func,
            interval_seconds=interval_seconds or cadence.seconds,
        )
        self._jobs[name] = job
        return job

    def get(self, name: str) -> ScheduledJob:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"No job named {name}") from None

    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def run_now(self, name: str) -> bool:
        """Run a job immediately on the calling thread.

        Returns:
            True if the job ran, False if it was skipped because a previous
            run is still in progress.
        """
        job = self.get(name)
        if not job._lock.acquire(blocking=False):
            job.runs_skipped += 1
            logger.warning("Job %s still running; skipping this run", name)
            return False

        try:
            logger.info("Running job %s", name)
            job.func()
            job.runs_completed += 1
            job.last_error = None
        except Exception as e:
            job.runs_failed += 1
            job.last_error = str(e)
            logger.error("Job %s failed: %s", name, e, exc_info=True)
        finally:
            job.last_run_time = datetime.now(UTC)
            job._lock.release()
        return True

    def _run_loop(self, job: ScheduledJob) -> None:
        while not self._stop_event.wait(timeout=job.interval_seconds):
            self.run_now(job.name)

    def start(self) -> bool:
        """Start a background thread per job."""
        if self._running:
            logger.warning("Job registry already running")
            return False

        self._running = True
        self._stop_event.clear()
        self._threads = []
        for job in self._jobs.values():
            thread = threading.Thread(
                target=self._run_loop, args=(job,), name=f"job-{job.name}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

        logger.info("Job registry started with %d jobs", len(self._jobs))
        return True

    def stop(self, timeout: float = 30.0) -> bool:
        """Signal every job thread to stop and wait for them."""
        if not self._running:
            return True

        self._stop_event.set()
        clean = True
        for thread in self._threads:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Job thread %s did not stop cleanly", thread.name)
                clean = False
        self._threads = []
        self._running = False

        logger.info("Job registry stopped")
        return clean


def build_default_registry(
    scanner: ComplianceScanner, handle: Callable[[TriggerEvent], None]
) -> JobRegistry:
    """Register the standard compliance jobs.

    Jobs:
        daily-notifications: continuing reviews, document expirations and
            overdue reviews.
        hourly-compliance-alerts: metrics flagged in the look-back window.
        weekly-compliance-summary: roll-up of outstanding work.
    """

    def feed(triggers: list[TriggerEvent]) -> None:
        for trigger in triggers:
            try:
                handle(trigger)
            except Exception as e:
                logger.error(
                    "Handling %s for %s failed: %s", trigger.kind.value, trigger.entity_id, e
                )

    def daily_notifications() -> None:
        feed(
            [
                *scanner.continuing_reviews_due(),
                *scanner.documents_expiring(),
                *scanner.overdue_reviews(),
            ]
        )

    registry = JobRegistry()
    registry.register("daily-notifications", Cadence.DAILY, daily_notifications)
    registry.register(
        "hourly-compliance-alerts",
        Cadence.HOURLY,
        lambda: feed(scanner.compliance_alerts()),
    )
    registry.register(
        "weekly-compliance-summary",
        Cadence.WEEKLY,
        lambda: feed([scanner.compliance_summary()]),
    )
    return registry
