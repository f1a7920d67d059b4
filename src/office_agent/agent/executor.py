"""Run exactly one tool for a resolved agent action."""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from office_agent.core.config import DocumentSettings, ScraperSettings
from office_agent.core.crypto import CredentialCipher, CredentialError
from office_agent.core.interfaces import (
    DocumentRenderer,
    PageScraper,
    RowStore,
    StoreGateway,
)
from office_agent.core.models import (
    AgentAction,
    ConversationParams,
    CreateCronJobParams,
    GeneratePdfParams,
    ScrapeWebsiteParams,
    SendEmailParams,
    ToolParams,
)
from office_agent.services.mail_accounts import EMAIL_CONFIG_TABLE, SENT_TABLE
from office_agent.services.mailer import Mailer
from office_agent.services.scraper import SCRAPE_TABLE

from . import catalog
from .catalog import (
    CONVERSATION,
    CREATE_CRON_JOB,
    GENERATE_PDF,
    SCRAPE_WEBSITE,
    SEND_EMAIL,
    TOOL_NAMES,
)

if TYPE_CHECKING:
    from office_agent.scheduler.jobs import CronJobService

LOGGER = logging.getLogger(__name__)

SUCCESS_PREFIX = "✅"
FAILURE_PREFIX = "❌"

PDF_TABLE = "pdf_files"

NO_EMAIL_CONFIG = (
    "No email configuration found. Please configure your SMTP settings in "
    "Settings > Email first."
)

LOGIN_REQUIRED: Mapping[str, str] = {
    SEND_EMAIL: "You need to be logged in to send emails. Please log in first.",
    GENERATE_PDF: "You need to be logged in to generate PDFs.",
    SCRAPE_WEBSITE: "You need to be logged in to scrape websites.",
    CREATE_CRON_JOB: "You need to be logged in to create scheduled tasks.",
}

_FAILURE_VERBS: Mapping[str, str] = {
    SEND_EMAIL: "send email",
    GENERATE_PDF: "generate PDF",
    SCRAPE_WEBSITE: "scrape website",
    CREATE_CRON_JOB: "create scheduled task",
}

CONVERSATION_REPLY = (
    "I'm here to help! You can ask me to:\n\n"
    "✉️ Send emails\n"
    "📄 Generate PDF documents\n"
    "🕷️ Scrape websites for data\n"
    "⏰ Schedule recurring tasks\n\n"
    "What would you like to do?"
)

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9]")


class ToolParameterError(ValueError):
    """Raised when a tool is missing a required parameter."""


def bind_parameters(action: AgentAction) -> ToolParams:
    """Turn the model's raw parameter map into the tool's typed record."""
    raw = action.parameters or {}
    match action.tool:
        case catalog.SEND_EMAIL:
            return SendEmailParams(
                to=_recipients(raw.get("to")),
                subject=_required_text(raw, "subject"),
                body=_text(raw, "body", required=True),
            )
        case catalog.GENERATE_PDF:
            return GeneratePdfParams(
                title=_required_text(raw, "title"),
                content=_text(raw, "content", required=True),
            )
        case catalog.SCRAPE_WEBSITE:
            url = _required_text(raw, "url")
            if urlparse(url).scheme not in ("http", "https"):
                raise ToolParameterError(f"Unsupported URL: {url}")
            return ScrapeWebsiteParams(url=url, selectors=_selectors(raw.get("selectors")))
        case catalog.CREATE_CRON_JOB:
            task_config = raw.get("task_config") or {}
            if not isinstance(task_config, dict):
                raise ToolParameterError("'task_config' must be an object")
            return CreateCronJobParams(
                name=_required_text(raw, "name"),
                schedule=_required_text(raw, "schedule"),
                task_type=_required_text(raw, "task_type"),
                task_config=task_config,
            )
        case catalog.CONVERSATION:
            return ConversationParams()
        case _:
            raise ToolParameterError(f"Unknown tool: {action.tool}")


class ActionExecutor:
    """Dispatch agent actions to the side-effecting services."""

    def __init__(
        self,
        *,
        stores: StoreGateway,
        cipher: CredentialCipher | None,
        mailer: Mailer,
        renderer: DocumentRenderer,
        scraper: PageScraper,
        cron_jobs: CronJobService,
        documents: DocumentSettings,
        scraping: ScraperSettings,
    ) -> None:
        self._stores = stores
        self._cipher = cipher
        self._mailer = mailer
        self._renderer = renderer
        self._scraper = scraper
        self._cron_jobs = cron_jobs
        self._documents = documents
        self._scraping = scraping

    async def execute(self, action: AgentAction, user_id: str | None = None) -> str:
        """Run ``action`` and describe the outcome; never raises."""
        if action.tool not in TOOL_NAMES:
            LOGGER.warning("Rejected unknown tool %s", action.tool)
            return f"Unknown tool: {action.tool}"
        if action.tool != CONVERSATION and not user_id:
            return LOGIN_REQUIRED[action.tool]

        verb = _FAILURE_VERBS.get(action.tool, "execute action")
        try:
            params = bind_parameters(action)
            match params:
                case SendEmailParams():
                    return await self._send_email(params, user_id)
                case GeneratePdfParams():
                    return await self._generate_pdf(params, user_id)
                case ScrapeWebsiteParams():
                    return await self._scrape_website(params, user_id)
                case CreateCronJobParams():
                    return await self._create_cron_job(params, user_id)
                case ConversationParams():
                    return CONVERSATION_REPLY
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Tool %s failed for user %s: %s", action.tool, user_id, exc)
            return f"{FAILURE_PREFIX} Failed to {verb}: {exc}"
        return f"Unknown tool: {action.tool}"

    # Tool branches ------------------------------------------------------------
    async def _send_email(self, params: SendEmailParams, user_id: str) -> str:
        store = self._stores.for_user(user_id)
        configs = await store.select(EMAIL_CONFIG_TABLE, limit=1)
        if not configs:
            return NO_EMAIL_CONFIG

        recipients = ", ".join(params.to)
        try:
            with self._require_cipher().credential(configs[0], prefix="smtp") as credential:
                receipt = await self._mailer.send(
                    credential, params.to, params.subject, params.body
                )
        except Exception as exc:
            await _log_sent(store, recipients, params, status="failed", error=str(exc))
            raise
        await _log_sent(
            store, recipients, params, status="sent", message_id=receipt.message_id
        )
        LOGGER.info("Sent email for user %s to %s", user_id, recipients)
        return (
            f"{SUCCESS_PREFIX} Email sent successfully to {recipients}! "
            f"Message ID: {receipt.message_id}"
        )

    async def _generate_pdf(self, params: GeneratePdfParams, user_id: str) -> str:
        output_dir = Path(self._documents.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{time.time_ns() // 1_000_000}_{_UNSAFE_FILENAME.sub('_', params.title)}.pdf"
        path = await self._renderer.render(
            params.content,
            output_dir / filename,
            title=params.title,
            author=self._documents.author,
        )
        await self._stores.for_user(user_id).insert(
            PDF_TABLE,
            {
                "title": params.title,
                "filename": filename,
                "file_path": str(path),
                "file_size": path.stat().st_size,
            },
        )
        LOGGER.info("Generated PDF %s for user %s", filename, user_id)
        return f"{SUCCESS_PREFIX} PDF generated successfully: {params.title} ({filename})"

    async def _scrape_website(self, params: ScrapeWebsiteParams, user_id: str) -> str:
        result = await self._scraper.scrape(params.url, params.selectors)
        await self._stores.for_user(user_id).insert(
            SCRAPE_TABLE,
            {
                "url": params.url,
                "selectors": params.selectors,
                "status": "completed",
                "result_data": result,
            },
        )
        rendered = json.dumps(result, indent=2, ensure_ascii=False)
        limit = self._scraping.preview_chars
        preview = rendered[:limit] + ("..." if len(rendered) > limit else "")
        return (
            f"{SUCCESS_PREFIX} Website scraped successfully!\n\n"
            f"URL: {params.url}\n\nData preview:\n{preview}"
        )

    async def _create_cron_job(self, params: CreateCronJobParams, user_id: str) -> str:
        await self._cron_jobs.create_job(
            user_id,
            name=params.name,
            schedule=params.schedule,
            task_type=params.task_type,
            task_config=params.task_config,
        )
        return (
            f"{SUCCESS_PREFIX} Scheduled task created: {params.name}\n"
            f"Schedule: {params.schedule}\n"
            "Task will run automatically according to the schedule."
        )

    def _require_cipher(self) -> CredentialCipher:
        if self._cipher is None:
            raise CredentialError(
                "Encryption key is not configured; set OFFICE_AGENT_SECURITY__ENCRYPTION_KEY"
            )
        return self._cipher


async def _log_sent(
    store: RowStore,
    recipients: str,
    params: SendEmailParams,
    *,
    status: str,
    message_id: str | None = None,
    error: str | None = None,
) -> None:
    row: dict[str, Any] = {
        "recipient": recipients,
        "subject": params.subject,
        "body": params.body,
        "status": status,
        "message_id": message_id,
    }
    if error is not None:
        row["error_message"] = error
    try:
        await store.insert(SENT_TABLE, row)
    except Exception:  # pylint: disable=broad-except
        LOGGER.exception("Failed to record sent-mail log for %s", recipients)


def _recipients(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        candidates = value.split(",")
    elif isinstance(value, (list, tuple)):
        candidates = [str(item) for item in value]
    else:
        candidates = []
    recipients = tuple(item.strip() for item in candidates if item and item.strip())
    if not recipients:
        raise ToolParameterError("Missing required parameter 'to'")
    return recipients


def _text(raw: Mapping[str, Any], key: str, *, required: bool = False) -> str:
    value = raw.get(key)
    if value is None:
        if required:
            raise ToolParameterError(f"Missing required parameter '{key}'")
        return ""
    return str(value)


def _required_text(raw: Mapping[str, Any], key: str) -> str:
    value = _text(raw, key, required=True).strip()
    if not value:
        raise ToolParameterError(f"Missing required parameter '{key}'")
    return value


def _selectors(value: object) -> dict[str, str] | None:
    if value in (None, {}):
        return None
    if not isinstance(value, dict):
        raise ToolParameterError("'selectors' must be an object")
    return {str(key): str(selector) for key, selector in value.items()}


__all__ = [
    "ActionExecutor",
    "CONVERSATION_REPLY",
    "FAILURE_PREFIX",
    "LOGIN_REQUIRED",
    "NO_EMAIL_CONFIG",
    "SUCCESS_PREFIX",
    "ToolParameterError",
    "bind_parameters",
]
