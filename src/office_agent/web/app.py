"""FastAPI application exposing the office agent over JSON."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, status as http_status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from office_agent.bootstrap import build_container
from office_agent.core import AppSettings, ServiceContainer, load_app_settings
from office_agent.core.crypto import CredentialError
from office_agent.core.models import BulkMessage, ChatTurn
from office_agent.inbox import DraftNotFoundError, DraftStateError, InboxError
from office_agent.scheduler import CronJobNotFoundError, InvalidScheduleError
from office_agent.services import (
    MailAccountError,
    MailAccountNotFoundError,
    ScrapeError,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_DEFAULT_ENV_FILE = _PROJECT_ROOT / ".env"
_ENV_FILE_OVERRIDE_VAR = "OFFICE_AGENT_ENV_FILE"


class HistoryItem(BaseModel):
    role: str = "user"
    content: str = ""


class ChatRequest(BaseModel):
    message: str | None = None
    history: list[HistoryItem] = Field(default_factory=list)


class MessageFlagsRequest(BaseModel):
    is_read: bool | None = None
    is_starred: bool | None = None
    is_archived: bool | None = None


class DraftUpdateRequest(BaseModel):
    edited_body: str | None = None
    status: str | None = None


class CronCreateRequest(BaseModel):
    name: str | None = None
    schedule: str | None = None
    task_type: str | None = None
    task_config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


class CronUpdateRequest(BaseModel):
    name: str | None = None
    schedule: str | None = None
    task_type: str | None = None
    task_config: dict[str, Any] | None = None
    enabled: bool | None = None


class SmtpConfigRequest(BaseModel):
    config_name: str | None = None
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_user: str | None = None
    smtp_password: str | None = None


class ImapConfigRequest(BaseModel):
    config_name: str | None = None
    imap_host: str | None = None
    imap_port: int | None = None
    imap_user: str | None = None
    imap_password: str | None = None
    use_ssl: bool = True


class ConfigTestRequest(BaseModel):
    config_name: str | None = None


class BulkEmailItem(BaseModel):
    to: str
    subject: str = ""
    body: str = ""


class BulkEmailRequest(BaseModel):
    emails: list[BulkEmailItem] = Field(default_factory=list)
    config_name: str | None = None


class ScrapeMultipleRequest(BaseModel):
    urls: list[str] = Field(default_factory=list)
    selectors: dict[str, str] | None = None


def _resolve_env_file() -> Path:
    override = os.getenv(_ENV_FILE_OVERRIDE_VAR)
    if override:
        return Path(override)
    return _DEFAULT_ENV_FILE


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_LIMIT))


def _failure(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "error": str(exc)}
    )


def _account_failure(exc: Exception) -> JSONResponse:
    if isinstance(exc, MailAccountNotFoundError):
        return _failure(http_status.HTTP_404_NOT_FOUND, exc)
    if isinstance(exc, MailAccountError):
        return _failure(http_status.HTTP_400_BAD_REQUEST, exc)
    return _failure(http_status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


def _inbox_failure(exc: InboxError) -> JSONResponse:
    if isinstance(exc, DraftNotFoundError):
        return _failure(http_status.HTTP_404_NOT_FOUND, exc)
    if isinstance(exc, DraftStateError):
        return _failure(http_status.HTTP_409_CONFLICT, exc)
    return _failure(http_status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


def create_app(
    settings: AppSettings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if container is None:
        app_settings = settings or load_app_settings(env_file=_resolve_env_file())
        container = build_container(app_settings)
    services = container
    app = FastAPI(title="Office Agent")
    app.state.container = services

    async def current_user(
        authorization: str | None = Header(default=None),  # noqa: B008
    ) -> str | None:
        token = _bearer_token(authorization)
        if token is None:
            return None
        return await services.resolve("auth").authenticate(token)

    async def require_user(
        user_id: str | None = Depends(current_user),  # noqa: B008
    ) -> str:
        if user_id is None:
            raise HTTPException(
                status_code=http_status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
            )
        return user_id

    @app.on_event("startup")
    async def startup_event() -> None:
        """Bring persisted cron jobs back under the registry."""
        # The executor binds itself as the cron runner when it is built.
        services.resolve("executor")
        try:
            await services.resolve("cron_jobs").restore()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Failed to restore cron jobs: %s", exc)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop every timer and release clients."""
        await services.resolve("scheduler").stop_all_jobs()
        await services.aclose()
        LOGGER.info("Office agent shut down")

    # Agent ----------------------------------------------------------------------
    @app.post("/chat")
    async def chat(
        payload: ChatRequest,
        user_id: str | None = Depends(current_user),  # noqa: B008
    ) -> dict[str, Any]:
        if not payload.message or not payload.message.strip():
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="Message is required",
            )
        history = [ChatTurn(role=item.role, text=item.content) for item in payload.history]
        reply = await services.resolve("orchestrator").process_message(
            payload.message, user_id=user_id, history=history
        )
        return {"content": reply}

    # Inbox ----------------------------------------------------------------------
    @app.post("/email-inbox/scan", response_model=None)
    async def scan_inbox(
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            result = await services.resolve("triage").scan_inbox(user_id)
        except InboxError as exc:
            return _inbox_failure(exc)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Inbox scan failed for %s: %s", user_id, exc)
            return _failure(http_status.HTTP_500_INTERNAL_SERVER_ERROR, exc)
        return {
            "success": result.success,
            "emailsFound": result.emails_found,
            "emailsNew": result.emails_new,
            "draftsCreated": result.drafts_created,
        }

    @app.get("/email-inbox/emails")
    async def list_emails(
        unread_only: bool = False,
        priority: str | None = None,
        limit: int = DEFAULT_LIMIT,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any]:
        emails = await services.resolve("triage").list_messages(
            user_id, unread_only=unread_only, priority=priority, limit=_clamp_limit(limit)
        )
        return {"emails": emails}

    @app.patch("/email-inbox/emails/{email_id}", response_model=None)
    async def update_email(
        email_id: str,
        payload: MessageFlagsRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            email = await services.resolve("triage").update_message_flags(
                email_id,
                user_id,
                is_read=payload.is_read,
                is_starred=payload.is_starred,
                is_archived=payload.is_archived,
            )
        except InboxError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        return {"email": email}

    @app.get("/email-inbox/stats")
    async def inbox_stats(
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, int]:
        return await services.resolve("triage").stats(user_id)

    @app.get("/email-inbox/drafts")
    async def list_drafts(
        status: str = "pending",
        limit: int = DEFAULT_LIMIT,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any]:
        # "all" lifts the status filter.
        drafts = await services.resolve("triage").list_drafts(
            user_id,
            status=None if status == "all" else status,
            limit=_clamp_limit(limit),
        )
        return {"drafts": drafts}

    @app.patch("/email-inbox/drafts/{draft_id}", response_model=None)
    async def update_draft(
        draft_id: str,
        payload: DraftUpdateRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            draft = await services.resolve("triage").update_draft(
                draft_id,
                user_id,
                edited_body=payload.edited_body,
                status=payload.status,
            )
        except DraftNotFoundError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        except InboxError as exc:
            return _failure(http_status.HTTP_400_BAD_REQUEST, exc)
        return {"draft": draft}

    @app.post("/email-inbox/drafts/{draft_id}/send", response_model=None)
    async def send_draft(
        draft_id: str,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            sent = await services.resolve("triage").send_approved_draft(draft_id, user_id)
        except InboxError as exc:
            return _inbox_failure(exc)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Sending draft %s failed: %s", draft_id, exc)
            return _failure(http_status.HTTP_500_INTERNAL_SERVER_ERROR, exc)
        return {"success": sent, "message": "Email sent successfully"}

    # Mail accounts --------------------------------------------------------------
    @app.get("/email-config")
    async def list_smtp_configs(
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any]:
        configs = await services.resolve("accounts").list_smtp_configs(user_id)
        return {"configs": configs}

    @app.post("/email-config", response_model=None)
    async def save_smtp_config(
        payload: SmtpConfigRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            config = await services.resolve("accounts").save_smtp_config(
                user_id,
                config_name=payload.config_name,
                smtp_host=payload.smtp_host or "",
                smtp_port=payload.smtp_port or 0,
                smtp_user=payload.smtp_user or "",
                smtp_password=payload.smtp_password or "",
            )
        except (MailAccountError, CredentialError) as exc:
            return _account_failure(exc)
        return {"message": "Email configuration saved successfully", "config": config}

    @app.delete("/email-config/{config_id}", response_model=None)
    async def delete_smtp_config(
        config_id: str,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            await services.resolve("accounts").delete_smtp_config(config_id, user_id)
        except MailAccountError as exc:
            return _account_failure(exc)
        return {"message": "Email configuration deleted successfully"}

    @app.post("/email-config/test", response_model=None)
    async def test_smtp_config(
        payload: ConfigTestRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            await services.resolve("accounts").verify_smtp_config(
                user_id, payload.config_name
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("SMTP check failed for %s: %s", user_id, exc)
            return _account_failure(exc)
        return {"message": "Email configuration is valid and working"}

    @app.post("/email-inbox/imap-config", response_model=None)
    async def save_imap_config(
        payload: ImapConfigRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            config = await services.resolve("accounts").save_imap_config(
                user_id,
                config_name=payload.config_name,
                imap_host=payload.imap_host or "",
                imap_port=payload.imap_port,
                imap_user=payload.imap_user or "",
                imap_password=payload.imap_password or "",
                use_ssl=payload.use_ssl,
            )
        except (MailAccountError, CredentialError) as exc:
            return _account_failure(exc)
        return {"success": True, "config": config}

    @app.get("/email-inbox/imap-config")
    async def list_imap_configs(
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any]:
        configs = await services.resolve("accounts").list_imap_configs(user_id)
        return {"configs": configs}

    # Batch tools ----------------------------------------------------------------
    @app.post("/email/send-bulk", response_model=None)
    async def send_bulk_email(
        payload: BulkEmailRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        messages = [
            BulkMessage(to=item.to, subject=item.subject, body=item.body)
            for item in payload.emails
        ]
        try:
            outcomes = await services.resolve("accounts").send_bulk(
                user_id, messages, payload.config_name
            )
        except (MailAccountError, CredentialError) as exc:
            return _account_failure(exc)
        failures = [outcome for outcome in outcomes if not outcome.success]
        return {
            "message": "Bulk email operation completed",
            "results": {
                "sent": len(outcomes) - len(failures),
                "failed": len(failures),
                "errors": [{"to": item.target, "error": item.error} for item in failures],
            },
        }

    @app.post("/scraper/scrape-multiple", response_model=None)
    async def scrape_multiple(
        payload: ScrapeMultipleRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        if not payload.urls:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="urls must contain at least one URL",
            )
        try:
            job, outcomes = await services.resolve("scrape_jobs").scrape_multiple(
                user_id, payload.urls, payload.selectors
            )
        except ScrapeError as exc:
            return _failure(http_status.HTTP_500_INTERNAL_SERVER_ERROR, exc)
        return {
            "message": "Multiple page scraping completed successfully",
            "jobId": job["id"],
            "results": [asdict(outcome) for outcome in outcomes],
        }

    # Cron -----------------------------------------------------------------------
    @app.post("/cron/create", response_model=None)
    async def create_cron_job(
        payload: CronCreateRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        if not payload.name or not payload.schedule or not payload.task_type:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="Missing required fields: name, schedule, task_type",
            )
        try:
            job = await services.resolve("cron_jobs").create_job(
                user_id,
                name=payload.name,
                schedule=payload.schedule,
                task_type=payload.task_type,
                task_config=payload.task_config,
                enabled=payload.enabled,
            )
        except InvalidScheduleError as exc:
            return _failure(http_status.HTTP_400_BAD_REQUEST, exc)
        return {"success": True, "job": job}

    @app.get("/cron/jobs")
    async def list_cron_jobs(
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any]:
        jobs = await services.resolve("cron_jobs").list_jobs(user_id)
        return {"jobs": jobs}

    @app.get("/cron/jobs/{job_id}", response_model=None)
    async def get_cron_job(
        job_id: str,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            job = await services.resolve("cron_jobs").get_job(job_id, user_id)
        except CronJobNotFoundError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        return {"job": job}

    @app.put("/cron/jobs/{job_id}", response_model=None)
    async def update_cron_job(
        job_id: str,
        payload: CronUpdateRequest,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            job = await services.resolve("cron_jobs").update_job(
                job_id, user_id, payload.model_dump(exclude_none=True)
            )
        except CronJobNotFoundError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        except InvalidScheduleError as exc:
            return _failure(http_status.HTTP_400_BAD_REQUEST, exc)
        return {"success": True, "job": job}

    @app.post("/cron/jobs/{job_id}/start", response_model=None)
    async def start_cron_job(
        job_id: str,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            job = await services.resolve("cron_jobs").start_job(job_id, user_id)
        except CronJobNotFoundError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        return {"success": True, "job": job}

    @app.post("/cron/jobs/{job_id}/stop", response_model=None)
    async def stop_cron_job(
        job_id: str,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            job = await services.resolve("cron_jobs").stop_job(job_id, user_id)
        except CronJobNotFoundError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        return {"success": True, "job": job}

    @app.delete("/cron/jobs/{job_id}", response_model=None)
    async def delete_cron_job(
        job_id: str,
        user_id: str = Depends(require_user),  # noqa: B008
    ) -> dict[str, Any] | JSONResponse:
        try:
            await services.resolve("cron_jobs").delete_job(job_id, user_id)
        except CronJobNotFoundError as exc:
            return _failure(http_status.HTTP_404_NOT_FOUND, exc)
        return {"success": True}

    return app


__all__ = ["create_app"]
