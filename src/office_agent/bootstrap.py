"""Composition root: builds every long-lived service for one process."""

from __future__ import annotations

import logging

from .agent import ActionExecutor, AgentOrchestrator, IntentResolver
from .core.config import AppSettings
from .core.container import ServiceContainer
from .core.crypto import CredentialCipher
from .inbox import InboxTriagePipeline
from .ingestion import EmailParser
from .intelligence import ClassificationService, DraftingService, build_llm_client
from .scheduler import CronJobService, SchedulerRegistry
from .services import (
    MailAccountService,
    Mailer,
    PdfRenderer,
    ScrapeJobService,
    WebScraper,
)
from .storage import build_authenticator, build_store_gateway
from .transport import ImapMailboxReader, SmtpTransport

LOGGER = logging.getLogger(__name__)


def _cipher(container: ServiceContainer) -> CredentialCipher | None:
    settings: AppSettings = container.resolve("settings")
    key = settings.security.encryption_key
    if not key:
        LOGGER.warning("No encryption key configured; mail credentials are unavailable")
        return None
    return CredentialCipher(key)


def _executor(container: ServiceContainer) -> ActionExecutor:
    settings: AppSettings = container.resolve("settings")
    cron_jobs: CronJobService = container.resolve("cron_jobs")
    executor = ActionExecutor(
        stores=container.resolve("stores"),
        cipher=container.resolve("cipher"),
        mailer=container.resolve("mailer"),
        renderer=container.resolve("renderer"),
        scraper=container.resolve("scraper"),
        cron_jobs=cron_jobs,
        documents=settings.documents,
        scraping=settings.scraper,
    )
    # Scheduled jobs replay their tool through the same executor.
    cron_jobs.bind_runner(executor.execute)
    return executor


def _triage(container: ServiceContainer) -> InboxTriagePipeline:
    settings: AppSettings = container.resolve("settings")
    llm = container.resolve("llm")
    return InboxTriagePipeline(
        stores=container.resolve("stores"),
        cipher=container.resolve("cipher"),
        reader=ImapMailboxReader(timeout=settings.inbox.timeout_seconds),
        parser=EmailParser(),
        classifier=ClassificationService(
            llm, body_chars=settings.inbox.classify_body_chars
        ),
        drafter=DraftingService(llm, body_chars=settings.inbox.draft_body_chars),
        mailer=container.resolve("mailer"),
        settings=settings.inbox,
    )


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register factories for every service keyed by its role."""
    container = ServiceContainer()
    container.register_instance("settings", settings)
    container.register("cipher", _cipher)
    container.register("stores", lambda c: build_store_gateway(settings.storage))
    container.register("auth", lambda c: build_authenticator(c.resolve("stores")))
    container.register("llm", lambda c: build_llm_client(settings.llm))
    container.register(
        "mailer",
        lambda c: Mailer(SmtpTransport(timeout=settings.inbox.timeout_seconds)),
    )
    container.register("renderer", lambda c: PdfRenderer())
    container.register("scraper", lambda c: WebScraper(settings.scraper))
    container.register(
        "accounts",
        lambda c: MailAccountService(
            stores=c.resolve("stores"),
            cipher=c.resolve("cipher"),
            mailer=c.resolve("mailer"),
        ),
    )
    container.register(
        "scrape_jobs",
        lambda c: ScrapeJobService(c.resolve("scraper"), c.resolve("stores")),
    )
    container.register("scheduler", lambda c: SchedulerRegistry())
    container.register(
        "cron_jobs",
        lambda c: CronJobService(c.resolve("scheduler"), c.resolve("stores")),
    )
    container.register("resolver", lambda c: IntentResolver(c.resolve("llm")))
    container.register("executor", _executor)
    container.register(
        "orchestrator",
        lambda c: AgentOrchestrator(
            c.resolve("llm"), c.resolve("resolver"), c.resolve("executor")
        ),
    )
    container.register("triage", _triage)
    return container


__all__ = ["build_container"]
