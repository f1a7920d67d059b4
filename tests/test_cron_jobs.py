"""Tests for persisted cron jobs."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from office_agent.core.config import StorageSettings
from office_agent.core.models import AgentAction
from office_agent.scheduler import (
    CronJobNotFoundError,
    CronJobService,
    InvalidScheduleError,
    SchedulerRegistry,
    job_identifier,
)
from office_agent.storage import SqliteGateway, SqliteRowStore


async def _never(delay: float) -> None:
    await asyncio.Event().wait()


class RecordingRunner:
    """Job runner stub returning a fixed outcome."""

    def __init__(self, outcome: str = "✅ done") -> None:
        self.outcome = outcome
        self.actions: list[tuple[AgentAction, str | None]] = []

    async def __call__(self, action: AgentAction, user_id: str | None = None) -> str:
        self.actions.append((action, user_id))
        return self.outcome


@pytest.fixture
def gateway(tmp_path: Path):
    store = SqliteRowStore(StorageSettings(backend="sqlite", db_path=tmp_path / "cron.db"))
    yield SqliteGateway(store)
    store.close()


def _service(gateway: SqliteGateway, runner: RecordingRunner | None = None) -> CronJobService:
    return CronJobService(SchedulerRegistry(sleep=_never), gateway, runner)


def test_create_job_persists_and_registers(gateway) -> None:
    async def scenario():
        service = _service(gateway)
        job = await service.create_job(
            "u1",
            name="Daily Report",
            schedule="0 9 * * *",
            task_type="pdf",
            task_config={"title": "Daily Report", "content": "Numbers"},
        )
        active = service.registry.list_active()
        await service.registry.stop_all_jobs()
        return job, active

    job, active = asyncio.run(scenario())

    assert job["status"] == "active"
    assert job["execution_count"] == 0
    assert job["user_id"] == "u1"
    assert active == [job_identifier("u1", job["id"])]
    stored = asyncio.run(gateway.admin.select("cron_jobs"))
    assert stored[0]["task_config"] == {"title": "Daily Report", "content": "Numbers"}


def test_invalid_schedule_persists_nothing(gateway) -> None:
    async def scenario():
        service = _service(gateway)
        with pytest.raises(InvalidScheduleError):
            await service.create_job("u1", name="Bad", schedule="99 99 * *", task_type="email")
        return service.registry.list_registered()

    assert asyncio.run(scenario()) == []
    assert asyncio.run(gateway.admin.select("cron_jobs")) == []


def test_disabled_job_is_registered_but_stopped(gateway) -> None:
    async def scenario():
        service = _service(gateway)
        job = await service.create_job(
            "u1", name="Later", schedule="*/5 * * * *", task_type="scraper", enabled=False
        )
        return job, service.registry.list_active(), service.registry.list_registered()

    job, active, registered = asyncio.run(scenario())

    assert job["status"] == "stopped"
    assert active == []
    assert registered == [job_identifier("u1", job["id"])]


def test_stop_start_and_delete(gateway) -> None:
    async def scenario():
        service = _service(gateway)
        job = await service.create_job("u1", name="J", schedule="* * * * *", task_type="email")
        job_id = str(job["id"])
        stopped = await service.stop_job(job_id, "u1")
        after_stop = service.registry.list_active()
        started = await service.start_job(job_id, "u1")
        after_start = service.registry.list_active()
        with pytest.raises(CronJobNotFoundError):
            await service.stop_job(job_id, "someone-else")
        await service.delete_job(job_id, "u1")
        remaining = await service.list_jobs("u1")
        registered = service.registry.list_registered()
        return stopped, after_stop, started, after_start, remaining, registered

    stopped, after_stop, started, after_start, remaining, registered = asyncio.run(scenario())

    assert stopped["status"] == "stopped" and stopped["enabled"] is False
    assert after_stop == []
    assert started["status"] == "active" and started["enabled"] is True
    assert len(after_start) == 1
    assert remaining == []
    assert registered == []


def test_update_schedule_reregisters(gateway) -> None:
    async def scenario():
        service = _service(gateway)
        job = await service.create_job("u1", name="J", schedule="* * * * *", task_type="email")
        with pytest.raises(InvalidScheduleError):
            await service.update_job(job["id"], "u1", {"schedule": "bogus"})
        updated = await service.update_job(job["id"], "u1", {"schedule": "0 8 * * 1"})
        live = service.registry.get(job_identifier("u1", job["id"]))
        await service.registry.stop_all_jobs()
        return updated, live

    updated, live = asyncio.run(scenario())

    assert updated["schedule"] == "0 8 * * 1"
    assert live is not None and live.schedule == "0 8 * * 1"


def test_run_job_tracks_executions(gateway) -> None:
    runner = RecordingRunner()

    async def scenario():
        service = _service(gateway, runner)
        job = await service.create_job(
            "u1",
            name="Mail",
            schedule="0 9 * * *",
            task_type="email",
            task_config={"to": ["a@b.com"], "subject": "Hi", "body": "Hello"},
        )
        await service.run_job(job["id"])
        await service.run_job(job["id"])
        await service.registry.stop_all_jobs()
        return await service.get_job(job["id"], "u1")

    row = asyncio.run(scenario())

    assert row["execution_count"] == 2
    assert row["last_run"]
    assert row["status"] == "active"
    action, user_id = runner.actions[0]
    assert action.tool == "send_email"
    assert action.parameters["to"] == ["a@b.com"]
    assert user_id == "u1"


def test_failed_outcome_marks_job_failed(gateway) -> None:
    runner = RecordingRunner("❌ Failed to send email: no config")

    async def scenario():
        service = _service(gateway, runner)
        job = await service.create_job("u1", name="Mail", schedule="0 9 * * *", task_type="email")
        await service.run_job(job["id"])
        await service.registry.stop_all_jobs()
        return await service.get_job(job["id"], "u1")

    assert asyncio.run(scenario())["status"] == "failed"


def test_restore_registers_enabled_jobs(gateway) -> None:
    async def scenario():
        first = _service(gateway)
        await first.create_job("u1", name="On", schedule="* * * * *", task_type="email")
        await first.create_job(
            "u2", name="Off", schedule="* * * * *", task_type="email", enabled=False
        )
        await first.registry.stop_all_jobs()

        second = _service(gateway)
        restored = await second.restore()
        active = second.registry.list_active()
        await second.registry.stop_all_jobs()
        return restored, active

    restored, active = asyncio.run(scenario())

    assert restored == 1
    assert len(active) == 1 and active[0].startswith("u1_")
