"""Persisted cron jobs kept in step with the in-process registry."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from office_agent.agent.catalog import GENERATE_PDF, SCRAPE_WEBSITE, SEND_EMAIL
from office_agent.agent.executor import FAILURE_PREFIX
from office_agent.core.datetime_utils import utc_now_iso
from office_agent.core.interfaces import Row, StoreGateway
from office_agent.core.models import AgentAction

from .registry import SchedulerRegistry, validate_schedule

LOGGER = logging.getLogger(__name__)

CRON_TABLE = "cron_jobs"

TASK_TOOLS: Mapping[str, str] = {
    "email": SEND_EMAIL,
    "pdf": GENERATE_PDF,
    "scraper": SCRAPE_WEBSITE,
}

JobRunner = Callable[[AgentAction, str | None], Awaitable[str]]


class CronJobNotFoundError(LookupError):
    """Raised when a cron job does not exist for the caller."""


def job_identifier(user_id: str, job_id: Any) -> str:
    """Registry identifier combining the owner and the persisted job id."""
    return f"{user_id}_{job_id}"


class CronJobService:
    """Create, toggle, update and remove cron jobs for users."""

    def __init__(
        self,
        registry: SchedulerRegistry,
        stores: StoreGateway,
        runner: JobRunner | None = None,
    ) -> None:
        self._registry = registry
        self._stores = stores
        self._runner = runner

    @property
    def registry(self) -> SchedulerRegistry:
        return self._registry

    def bind_runner(self, runner: JobRunner) -> None:
        """Attach the callable that replays tool tasks on each tick."""
        self._runner = runner

    async def create_job(
        self,
        user_id: str,
        *,
        name: str,
        schedule: str,
        task_type: str,
        task_config: Mapping[str, Any] | None = None,
        enabled: bool = True,
    ) -> Row:
        """Validate, persist and register a job; invalid schedules persist nothing."""
        validate_schedule(schedule)
        row = await self._stores.admin.insert(
            CRON_TABLE,
            {
                "user_id": user_id,
                "name": name,
                "schedule": schedule,
                "task_type": task_type,
                "task_config": dict(task_config or {}),
                "enabled": enabled,
                "status": "pending",
                "execution_count": 0,
                "last_run": None,
            },
        )
        await self._register(row)
        status = "active" if enabled else "stopped"
        updated = await self._stores.admin.update(
            CRON_TABLE, {"id": row["id"]}, {"status": status}
        )
        LOGGER.info("Created cron job %s for user %s", row["id"], user_id)
        return updated or {**row, "status": status}

    async def list_jobs(self, user_id: str, *, enabled: bool | None = None) -> list[Row]:
        filters: dict[str, Any] = {"user_id": user_id}
        if enabled is not None:
            filters["enabled"] = enabled
        return await self._stores.admin.select(
            CRON_TABLE, filters, order_by="created_at", descending=True
        )

    async def get_job(self, job_id: Any, user_id: str) -> Row:
        rows = await self._stores.admin.select(
            CRON_TABLE, {"id": job_id, "user_id": user_id}, limit=1
        )
        if not rows:
            raise CronJobNotFoundError(f"Cron job {job_id} not found")
        return rows[0]

    async def start_job(self, job_id: Any, user_id: str) -> Row:
        row = await self.get_job(job_id, user_id)
        row = await self._patch(row, {"enabled": True, "status": "active"})
        if not await self._registry.start_job(job_identifier(user_id, job_id)):
            await self._register(row)
        return row

    async def stop_job(self, job_id: Any, user_id: str) -> Row:
        row = await self.get_job(job_id, user_id)
        await self._registry.stop_job(job_identifier(user_id, job_id))
        return await self._patch(row, {"enabled": False, "status": "stopped"})

    async def update_job(
        self, job_id: Any, user_id: str, changes: Mapping[str, Any]
    ) -> Row:
        """Apply ``changes``; a new schedule or enabled flag re-registers the job."""
        allowed = {"name", "schedule", "task_type", "task_config", "enabled"}
        patch = {key: value for key, value in changes.items() if key in allowed}
        if "schedule" in patch:
            validate_schedule(patch["schedule"])
        row = await self.get_job(job_id, user_id)
        patch["updated_at"] = utc_now_iso()
        if "enabled" in patch:
            patch["status"] = "active" if patch["enabled"] else "stopped"
        row = await self._patch(row, patch)
        if "schedule" in changes or "enabled" in changes:
            await self._registry.remove_job(job_identifier(user_id, job_id))
            if row.get("enabled"):
                await self._register(row)
        return row

    async def delete_job(self, job_id: Any, user_id: str) -> None:
        await self.get_job(job_id, user_id)
        await self._registry.remove_job(job_identifier(user_id, job_id))
        await self._stores.admin.delete(CRON_TABLE, {"id": job_id, "user_id": user_id})
        LOGGER.info("Deleted cron job %s for user %s", job_id, user_id)

    async def restore(self) -> int:
        """Re-register every enabled persisted job; returns how many."""
        rows = await self._stores.admin.select(CRON_TABLE, {"enabled": True})
        restored = 0
        for row in rows:
            try:
                await self._register(row)
            except ValueError as exc:
                LOGGER.warning("Skipping cron job %s: %s", row.get("id"), exc)
                continue
            restored += 1
        LOGGER.info("Restored %d cron job(s)", restored)
        return restored

    async def run_job(self, job_id: Any) -> str | None:
        """Execute one tick for ``job_id`` with bookkeeping."""
        rows = await self._stores.admin.select(CRON_TABLE, {"id": job_id}, limit=1)
        if not rows:
            LOGGER.warning("Cron job %s disappeared; skipping tick", job_id)
            return None
        row = rows[0]
        admin = self._stores.admin
        await admin.update(
            CRON_TABLE,
            {"id": job_id},
            {
                "last_run": utc_now_iso(),
                "execution_count": int(row.get("execution_count") or 0) + 1,
                "status": "running",
            },
        )
        try:
            outcome = await self._execute(row)
        except Exception:
            await admin.update(CRON_TABLE, {"id": job_id}, {"status": "failed"})
            raise
        failed = outcome is not None and outcome.startswith(FAILURE_PREFIX)
        await admin.update(
            CRON_TABLE, {"id": job_id}, {"status": "failed" if failed else "active"}
        )
        return outcome

    # Internal helpers ---------------------------------------------------------
    async def _execute(self, row: Row) -> str | None:
        tool = TASK_TOOLS.get(str(row.get("task_type")))
        if tool is None:
            LOGGER.info(
                "Cron job %s has task type %s with no runnable tool",
                row.get("id"),
                row.get("task_type"),
            )
            return None
        if self._runner is None:
            raise RuntimeError("No job runner bound to the cron job service")
        action = AgentAction(
            tool=tool,
            reasoning=f"Scheduled job {row.get('name')}",
            parameters=dict(row.get("task_config") or {}),
        )
        outcome = await self._runner(action, row.get("user_id"))
        LOGGER.info("Cron job %s outcome: %s", row.get("id"), outcome)
        return outcome

    async def _register(self, row: Row) -> None:
        job_id = row["id"]

        async def task() -> None:
            await self.run_job(job_id)

        await self._registry.schedule_job(
            job_identifier(row["user_id"], job_id),
            row["schedule"],
            task,
            enabled=bool(row.get("enabled", True)),
        )

    async def _patch(self, row: Row, patch: Mapping[str, Any]) -> Row:
        updated = await self._stores.admin.update(
            CRON_TABLE, {"id": row["id"], "user_id": row["user_id"]}, patch
        )
        return updated or {**row, **patch}


__all__ = [
    "CRON_TABLE",
    "CronJobNotFoundError",
    "CronJobService",
    "JobRunner",
    "TASK_TOOLS",
    "job_identifier",
]
