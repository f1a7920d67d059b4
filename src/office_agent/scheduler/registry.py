"""In-process registry of cron-scheduled asynchronous tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from croniter import croniter

LOGGER = logging.getLogger(__name__)

JobTask = Callable[[], Awaitable[object]]
Sleeper = Callable[[float], Awaitable[object]]
Clock = Callable[[], datetime]


class InvalidScheduleError(ValueError):
    """Raised when a schedule is not valid cron syntax."""


def is_valid_schedule(schedule: str) -> bool:
    """Return ``True`` for a well-formed five-field cron expression."""
    if not isinstance(schedule, str) or len(schedule.split()) != 5:
        return False
    return croniter.is_valid(schedule)


def validate_schedule(schedule: str) -> str:
    """Return ``schedule`` unchanged or raise :class:`InvalidScheduleError`."""
    if not is_valid_schedule(schedule):
        raise InvalidScheduleError(f"Invalid cron schedule: {schedule}")
    return schedule


@dataclass(slots=True)
class ScheduledJob:
    """A registered job and its timer, if one is live."""

    identifier: str
    schedule: str
    task: JobTask = field(repr=False)
    enabled: bool = True
    runner: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self.runner is not None and not self.runner.done()


class SchedulerRegistry:
    """Owns at most one live timer per job identifier.

    Every mutation happens under a single :class:`asyncio.Lock`; each live job
    is one asyncio task that sleeps until the next cron occurrence and then
    awaits the job's callback.
    """

    def __init__(
        self, *, sleep: Sleeper = asyncio.sleep, clock: Clock | None = None
    ) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._lock = asyncio.Lock()
        self._sleep = sleep
        self._clock = clock or _local_now

    async def schedule_job(
        self, identifier: str, schedule: str, task: JobTask, *, enabled: bool = True
    ) -> ScheduledJob:
        """Register ``task`` under ``identifier``, replacing any previous job."""
        validate_schedule(schedule)
        async with self._lock:
            previous = self._jobs.pop(identifier, None)
            if previous is not None:
                LOGGER.warning("Job %s already exists. Stopping old job.", identifier)
                self._cancel(previous)
            job = ScheduledJob(identifier, schedule, task, enabled)
            self._jobs[identifier] = job
            if enabled:
                self._launch(job)
        LOGGER.info("Scheduled job: %s (%s, enabled=%s)", identifier, schedule, enabled)
        return job

    async def start_job(self, identifier: str) -> bool:
        """Start a registered but stopped job; ``False`` when unknown."""
        async with self._lock:
            job = self._jobs.get(identifier)
            if job is None:
                return False
            job.enabled = True
            if not job.active:
                self._launch(job)
        LOGGER.info("Started job: %s", identifier)
        return True

    async def stop_job(self, identifier: str) -> bool:
        """Stop the timer for ``identifier`` and keep its registration."""
        async with self._lock:
            job = self._jobs.get(identifier)
            if job is None:
                return False
            job.enabled = False
            self._cancel(job)
        LOGGER.info("Stopped job: %s", identifier)
        return True

    async def remove_job(self, identifier: str) -> bool:
        """Stop and forget ``identifier``."""
        async with self._lock:
            job = self._jobs.pop(identifier, None)
            if job is None:
                return False
            self._cancel(job)
        LOGGER.info("Removed job: %s", identifier)
        return True

    async def stop_all_jobs(self) -> None:
        """Stop every timer and clear the registry."""
        async with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
            runners = [job.runner for job in jobs if job.runner is not None]
            for job in jobs:
                self._cancel(job)
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        LOGGER.info("Stopped %d job(s)", len(jobs))

    def list_active(self) -> list[str]:
        """Return identifiers whose timer is currently live."""
        return [identifier for identifier, job in self._jobs.items() if job.active]

    def list_registered(self) -> list[str]:
        return list(self._jobs)

    def get(self, identifier: str) -> ScheduledJob | None:
        return self._jobs.get(identifier)

    # Internal helpers ---------------------------------------------------------
    def _launch(self, job: ScheduledJob) -> None:
        job.runner = asyncio.create_task(
            self._run(job), name=f"cron:{job.identifier}"
        )

    @staticmethod
    def _cancel(job: ScheduledJob) -> None:
        if job.runner is not None and not job.runner.done():
            job.runner.cancel()
        job.runner = None

    async def _run(self, job: ScheduledJob) -> None:
        last_fire: datetime | None = None
        while True:
            # Slots that passed while the previous run was busy are skipped.
            now = self._clock()
            base = now if last_fire is None or now > last_fire else last_fire
            next_fire = croniter(job.schedule, base).get_next(datetime)
            await self._sleep(max((next_fire - now).total_seconds(), 0.0))
            last_fire = next_fire
            await self._fire(job)

    async def _fire(self, job: ScheduledJob) -> None:
        LOGGER.info("Running scheduled job: %s", job.identifier)
        try:
            await job.task()
        except asyncio.CancelledError:
            raise
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Job %s failed", job.identifier)
        else:
            LOGGER.info("Job %s completed", job.identifier)


def _local_now() -> datetime:
    return datetime.now().astimezone()


__all__ = [
    "InvalidScheduleError",
    "JobTask",
    "ScheduledJob",
    "SchedulerRegistry",
    "is_valid_schedule",
    "validate_schedule",
]
