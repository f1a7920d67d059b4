"""Integration tests for the FastAPI web application."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from office_agent.agent.executor import LOGIN_REQUIRED
from office_agent.bootstrap import build_container
from office_agent.core.config import (
    AppSettings,
    ScraperSettings,
    SecuritySettings,
    StorageSettings,
)
from office_agent.core.crypto import generate_encryption_key
from office_agent.core.models import (
    ChatTurn,
    Completion,
    MailCredential,
    OutgoingMail,
    SendReceipt,
)
from office_agent.services import Mailer, WebScraper
from office_agent.web import create_app

AUTH = {"Authorization": "Bearer u1"}
SEND_INTENT = (
    '{"tool": "send_email", "reasoning": "User wants to send an email", '
    '"parameters": {"to": ["a@b.com"], "subject": "Hello", "body": "hello"}}'
)


class StubLLM:
    """LLM stub answering intent prompts with a fixed action."""

    provider_id = "stub-llm"

    def __init__(self, intent: str = SEND_INTENT) -> None:
        self.intent = intent
        self.chats: list[tuple[str, tuple[ChatTurn, ...]]] = []

    async def complete(self, prompt: str, config: object = None) -> Completion:
        if prompt.endswith("Your JSON response:"):
            return Completion(text=self.intent)
        return Completion(text="")

    async def chat(self, message: str, history: Sequence[ChatTurn] = ()) -> str:
        self.chats.append((message, tuple(history)))
        return "Hi there"


class RecordingTransport:
    """SMTP stub that refuses one address and records the rest."""

    refused = "bounce@b.com"

    def __init__(self) -> None:
        self.sent: list[OutgoingMail] = []
        self.verified: list[MailCredential] = []

    async def send(self, credential: MailCredential, message: OutgoingMail) -> SendReceipt:
        if self.refused in message.to:
            raise OSError("550 mailbox unavailable")
        self.sent.append(message)
        return SendReceipt(message_id=f"<{len(self.sent)}@smtp.test>")

    async def verify(self, credential: MailCredential) -> None:
        if credential.password != "secret":
            raise OSError("535 authentication failed")
        self.verified.append(credential)


def _pages(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/missing":
        return httpx.Response(404)
    return httpx.Response(200, text="<html><body><h1>Title</h1></body></html>")


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def container(tmp_path: Path, llm: StubLLM, transport: RecordingTransport):
    settings = AppSettings(
        storage=StorageSettings(backend="sqlite", db_path=tmp_path / "web.db"),
        security=SecuritySettings(encryption_key=generate_encryption_key()),
    )
    services = build_container(settings)
    services.register_instance("llm", llm)
    services.register_instance("mailer", Mailer(transport))
    services.register_instance(
        "scraper",
        WebScraper(ScraperSettings(), transport=httpx.MockTransport(_pages)),
    )
    return services


@pytest.fixture
def client(container):
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


def _seed(container, table: str, row: dict) -> dict:
    return asyncio.run(container.resolve("stores").for_user("u1").insert(table, row))


def test_chat_requires_message(client: TestClient) -> None:
    response = client.post("/chat", json={"message": "  "})

    assert response.status_code == 400


def test_anonymous_chat_cannot_trigger_tools(client: TestClient) -> None:
    response = client.post(
        "/chat", json={"message": "Send an email to a@b.com saying hello", "history": []}
    )

    assert response.status_code == 200
    assert response.json() == {"content": LOGIN_REQUIRED["send_email"]}


def test_conversation_chat_forwards_history(client: TestClient, llm: StubLLM) -> None:
    llm.intent = '{"tool": "conversation", "reasoning": "chat", "parameters": {}}'

    response = client.post(
        "/chat",
        json={"message": "hello", "history": [{"role": "assistant", "content": "Welcome"}]},
        headers=AUTH,
    )

    assert response.json() == {"content": "Hi there"}
    assert llm.chats == [("hello", (ChatTurn(role="assistant", text="Welcome"),))]


def test_authenticated_chat_without_smtp_config(client: TestClient) -> None:
    response = client.post("/chat", json={"message": "email a@b.com"}, headers=AUTH)

    assert "configur" in response.json()["content"].lower()


def test_inbox_routes_require_authentication(client: TestClient) -> None:
    assert client.get("/email-inbox/stats").status_code == 401
    assert client.post("/email-inbox/scan").status_code == 401
    assert client.get("/cron/jobs").status_code == 401


def test_scan_without_configuration_reports_error(client: TestClient) -> None:
    response = client.post("/email-inbox/scan", headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "No active IMAP configuration found",
    }


def test_email_listing_flags_and_stats(client: TestClient, container) -> None:
    email = _seed(
        container,
        "emails_inbox",
        {
            "message_id": "<1@example.com>",
            "subject": "Report",
            "received_at": "2025-10-24T15:00:00+00:00",
            "is_read": False,
            "is_starred": False,
            "is_archived": False,
            "ai_priority": "urgent",
        },
    )

    listing = client.get("/email-inbox/emails", params={"unread_only": True}, headers=AUTH)
    patched = client.patch(
        f"/email-inbox/emails/{email['id']}", json={"is_read": True}, headers=AUTH
    )
    stats = client.get("/email-inbox/stats", headers=AUTH)
    missing = client.patch("/email-inbox/emails/999", json={"is_read": True}, headers=AUTH)

    assert [row["subject"] for row in listing.json()["emails"]] == ["Report"]
    assert patched.json()["email"]["is_read"] is True
    assert stats.json() == {"unread": 0, "urgent": 1, "pending_drafts": 0}
    assert missing.status_code == 404


def test_draft_routes(client: TestClient, container) -> None:
    draft = _seed(
        container,
        "ai_email_drafts",
        {"to_address": "a@b.com", "subject": "Re: x", "body": "ok", "status": "pending"},
    )

    pending = client.get("/email-inbox/drafts", headers=AUTH)
    edited = client.patch(
        f"/email-inbox/drafts/{draft['id']}", json={"edited_body": "better"}, headers=AUTH
    )
    unsent = client.post(f"/email-inbox/drafts/{draft['id']}/send", headers=AUTH)
    missing = client.post("/email-inbox/drafts/999/send", headers=AUTH)
    rejected = client.patch(
        f"/email-inbox/drafts/{draft['id']}", json={"status": "rejected"}, headers=AUTH
    )
    conflict = client.post(f"/email-inbox/drafts/{draft['id']}/send", headers=AUTH)
    everything = client.get("/email-inbox/drafts", params={"status": "all"}, headers=AUTH)

    assert [row["id"] for row in pending.json()["drafts"]] == [draft["id"]]
    assert edited.json()["draft"]["status"] == "edited"
    assert unsent.status_code == 500
    assert unsent.json()["error"] == "No SMTP configuration found"
    assert missing.status_code == 404
    assert rejected.json()["draft"]["status"] == "rejected"
    assert conflict.status_code == 409
    assert everything.json()["drafts"][0]["status"] == "rejected"


def test_cron_routes(client: TestClient) -> None:
    created = client.post(
        "/cron/create",
        json={
            "name": "Daily Report",
            "schedule": "0 9 * * *",
            "task_type": "pdf",
            "task_config": {"title": "Daily Report", "content": "Numbers"},
        },
        headers=AUTH,
    )
    job_id = created.json()["job"]["id"]

    invalid = client.post(
        "/cron/create",
        json={"name": "Bad", "schedule": "99 99 * *", "task_type": "email"},
        headers=AUTH,
    )
    incomplete = client.post("/cron/create", json={"name": "No schedule"}, headers=AUTH)
    stopped = client.post(f"/cron/jobs/{job_id}/stop", headers=AUTH)
    started = client.post(f"/cron/jobs/{job_id}/start", headers=AUTH)
    listing = client.get("/cron/jobs", headers=AUTH)
    deleted = client.delete(f"/cron/jobs/{job_id}", headers=AUTH)
    missing = client.post(f"/cron/jobs/{job_id}/start", headers=AUTH)

    assert created.status_code == 200
    assert created.json()["job"]["status"] == "active"
    assert invalid.status_code == 400
    assert invalid.json()["success"] is False
    assert incomplete.status_code == 400
    assert stopped.json()["job"]["status"] == "stopped"
    assert started.json()["job"]["status"] == "active"
    assert [job["name"] for job in listing.json()["jobs"]] == ["Daily Report"]
    assert deleted.json() == {"success": True}
    assert missing.status_code == 404


def test_smtp_config_routes_hide_password(client: TestClient, container, transport) -> None:
    payload = {
        "smtp_host": "smtp.example.com",
        "smtp_port": 587,
        "smtp_user": "me@example.com",
        "smtp_password": "wrong",
    }
    saved = client.post("/email-config", json=payload, headers=AUTH)
    replaced = client.post(
        "/email-config", json={**payload, "smtp_password": "secret"}, headers=AUTH
    )
    listing = client.get("/email-config", headers=AUTH)
    tested = client.post("/email-config/test", json={}, headers=AUTH)
    incomplete = client.post(
        "/email-config", json={"smtp_host": "smtp.example.com"}, headers=AUTH
    )
    rows = asyncio.run(
        container.resolve("stores").for_user("u1").select("user_email_configs")
    )

    assert saved.status_code == 200
    assert saved.json()["message"] == "Email configuration saved successfully"
    assert "smtp_password" not in saved.json()["config"]
    assert replaced.json()["config"]["id"] == saved.json()["config"]["id"]
    assert [config["config_name"] for config in listing.json()["configs"]] == ["Default"]
    assert all("smtp_password" not in config for config in listing.json()["configs"])
    assert len(rows) == 1
    assert rows[0]["smtp_password"] != "secret"
    assert container.resolve("cipher").decrypt(rows[0]["smtp_password"]) == "secret"
    assert tested.json() == {"message": "Email configuration is valid and working"}
    assert [credential.username for credential in transport.verified] == ["me@example.com"]
    assert incomplete.status_code == 400


def test_smtp_config_test_reports_failures(client: TestClient) -> None:
    missing = client.post("/email-config/test", json={"config_name": "Work"}, headers=AUTH)
    client.post(
        "/email-config",
        json={
            "smtp_host": "smtp.example.com",
            "smtp_port": 587,
            "smtp_user": "me@example.com",
            "smtp_password": "wrong",
        },
        headers=AUTH,
    )
    refused = client.post("/email-config/test", json={}, headers=AUTH)

    assert missing.status_code == 404
    assert refused.status_code == 500
    assert "535" in refused.json()["error"]


def test_delete_smtp_config(client: TestClient) -> None:
    saved = client.post(
        "/email-config",
        json={
            "config_name": "Work",
            "smtp_host": "smtp.example.com",
            "smtp_port": 465,
            "smtp_user": "me@example.com",
            "smtp_password": "secret",
        },
        headers=AUTH,
    )
    config_id = saved.json()["config"]["id"]

    other_user = client.delete(
        f"/email-config/{config_id}", headers={"Authorization": "Bearer u2"}
    )
    deleted = client.delete(f"/email-config/{config_id}", headers=AUTH)
    again = client.delete(f"/email-config/{config_id}", headers=AUTH)

    assert other_user.status_code == 404
    assert deleted.json() == {"message": "Email configuration deleted successfully"}
    assert again.status_code == 404
    assert client.get("/email-config", headers=AUTH).json() == {"configs": []}


def test_imap_config_routes(client: TestClient, container) -> None:
    saved = client.post(
        "/email-inbox/imap-config",
        json={
            "imap_host": "imap.example.com",
            "imap_user": "me@example.com",
            "imap_password": "secret",
        },
        headers=AUTH,
    )
    incomplete = client.post(
        "/email-inbox/imap-config", json={"imap_host": "imap.example.com"}, headers=AUTH
    )
    listing = client.get("/email-inbox/imap-config", headers=AUTH)
    rows = asyncio.run(
        container.resolve("stores").for_user("u1").select("user_imap_configs")
    )

    assert saved.json()["success"] is True
    config = saved.json()["config"]
    assert "imap_password" not in config
    assert config["imap_port"] == 993
    assert config["is_active"] is True
    assert incomplete.status_code == 400
    assert [item["imap_host"] for item in listing.json()["configs"]] == ["imap.example.com"]
    assert container.resolve("cipher").decrypt(rows[0]["imap_password"]) == "secret"


def test_send_bulk_reports_each_recipient(client: TestClient, container, transport) -> None:
    empty = client.post("/email/send-bulk", json={"emails": []}, headers=AUTH)
    unconfigured = client.post(
        "/email/send-bulk", json={"emails": [{"to": "a@b.com"}]}, headers=AUTH
    )
    client.post(
        "/email-config",
        json={
            "smtp_host": "smtp.example.com",
            "smtp_port": 587,
            "smtp_user": "me@example.com",
            "smtp_password": "secret",
        },
        headers=AUTH,
    )
    response = client.post(
        "/email/send-bulk",
        json={
            "emails": [
                {"to": "a@b.com", "subject": "One", "body": "first"},
                {"to": "bounce@b.com", "subject": "Two", "body": "second"},
                {"to": "c@b.com", "subject": "Three", "body": "third"},
            ]
        },
        headers=AUTH,
    )
    logged = asyncio.run(container.resolve("stores").for_user("u1").select("emails_sent"))

    assert empty.status_code == 400
    assert unconfigured.status_code == 404
    assert response.json() == {
        "message": "Bulk email operation completed",
        "results": {
            "sent": 2,
            "failed": 1,
            "errors": [{"to": "bounce@b.com", "error": "550 mailbox unavailable"}],
        },
    }
    assert [message.to for message in transport.sent] == [("a@b.com",), ("c@b.com",)]
    assert sorted(row["status"] for row in logged) == ["failed", "sent", "sent"]


def test_scrape_multiple_records_job(client: TestClient, container) -> None:
    response = client.post(
        "/scraper/scrape-multiple",
        json={
            "urls": ["https://example.com/a", "https://example.com/missing"],
            "selectors": {"heading": "h1"},
        },
        headers=AUTH,
    )
    empty = client.post("/scraper/scrape-multiple", json={"urls": []}, headers=AUTH)
    jobs = asyncio.run(container.resolve("stores").for_user("u1").select("scrape_jobs"))

    body = response.json()
    assert response.status_code == 200
    assert [result["success"] for result in body["results"]] == [True, False]
    assert body["results"][0]["detail"] == {"heading": ["Title"]}
    assert empty.status_code == 400
    assert [job["id"] for job in jobs] == [body["jobId"]]
    assert jobs[0]["status"] == "completed"
    assert jobs[0]["url"] == "https://example.com/a, https://example.com/missing"


def test_cron_job_detail_and_update(client: TestClient) -> None:
    created = client.post(
        "/cron/create",
        json={"name": "Report", "schedule": "0 9 * * *", "task_type": "pdf"},
        headers=AUTH,
    )
    job_id = created.json()["job"]["id"]

    fetched = client.get(f"/cron/jobs/{job_id}", headers=AUTH)
    updated = client.put(
        f"/cron/jobs/{job_id}",
        json={"name": "Weekly Report", "schedule": "0 9 * * 1"},
        headers=AUTH,
    )
    disabled = client.put(f"/cron/jobs/{job_id}", json={"enabled": False}, headers=AUTH)
    invalid = client.put(f"/cron/jobs/{job_id}", json={"schedule": "bad"}, headers=AUTH)
    missing = client.get("/cron/jobs/999", headers=AUTH)
    missing_update = client.put("/cron/jobs/999", json={"name": "x"}, headers=AUTH)

    assert fetched.json()["job"]["name"] == "Report"
    assert updated.json()["success"] is True
    assert updated.json()["job"]["name"] == "Weekly Report"
    assert updated.json()["job"]["schedule"] == "0 9 * * 1"
    assert disabled.json()["job"]["status"] == "stopped"
    assert invalid.status_code == 400
    assert missing.status_code == 404
    assert missing_update.status_code == 404
