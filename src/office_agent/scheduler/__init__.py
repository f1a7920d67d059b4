"""Cron scheduling for recurring agent tasks."""

from .registry import (
    InvalidScheduleError,
    ScheduledJob,
    SchedulerRegistry,
    is_valid_schedule,
    validate_schedule,
)
from .jobs import CronJobNotFoundError, CronJobService, job_identifier

__all__ = [
    "CronJobNotFoundError",
    "CronJobService",
    "InvalidScheduleError",
    "ScheduledJob",
    "SchedulerRegistry",
    "is_valid_schedule",
    "job_identifier",
    "validate_schedule",
]
