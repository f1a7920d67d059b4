"""Inbox triage: fetch, classify, store and draft, with human-gated sending."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from office_agent.core.config import InboxSettings
from office_agent.core.crypto import CredentialCipher, CredentialError
from office_agent.core.datetime_utils import serialize_datetime, utc_now_iso
from office_agent.core.interfaces import MailboxReader, Row, RowStore, StoreGateway
from office_agent.core.models import ParsedEmail, ScanResult
from office_agent.ingestion import EmailParser
from office_agent.intelligence.classifier import ClassificationService
from office_agent.intelligence.drafter import DraftingError, DraftingService
from office_agent.services.mail_accounts import (
    EMAIL_CONFIG_TABLE,
    IMAP_CONFIG_TABLE,
    SENT_TABLE,
)
from office_agent.services.mailer import Mailer

LOGGER = logging.getLogger(__name__)

SCAN_LOG_TABLE = "email_scan_logs"
INBOX_TABLE = "emails_inbox"
DRAFTS_TABLE = "ai_email_drafts"

DRAFT_STATUSES = ("pending", "edited", "approved", "rejected", "sent")
# Transient status held while a send is in flight.
SENDING_STATUS = "sending"

DRAFT_TRANSITIONS: Mapping[str, frozenset[str]] = {
    "pending": frozenset({"edited", "approved", "rejected", "sent"}),
    "edited": frozenset({"approved", "rejected", "sent"}),
    "approved": frozenset({"sent"}),
    "rejected": frozenset(),
    "sent": frozenset(),
}

MESSAGE_FLAGS = ("is_read", "is_starred", "is_archived")


class InboxError(RuntimeError):
    """Raised when a scan or send precondition does not hold."""


class DraftNotFoundError(InboxError):
    """Raised when a draft does not exist for the caller."""


class DraftStateError(InboxError):
    """Raised when a draft cannot move to the requested status."""


class InboxTriagePipeline:
    """Scan a user's mailbox and manage the resulting drafts."""

    def __init__(
        self,
        *,
        stores: StoreGateway,
        cipher: CredentialCipher | None,
        reader: MailboxReader,
        parser: EmailParser,
        classifier: ClassificationService,
        drafter: DraftingService,
        mailer: Mailer,
        settings: InboxSettings,
    ) -> None:
        self._stores = stores
        self._cipher = cipher
        self._reader = reader
        self._parser = parser
        self._classifier = classifier
        self._drafter = drafter
        self._mailer = mailer
        self._settings = settings

    # Scanning -----------------------------------------------------------------
    async def scan_inbox(self, user_id: str) -> ScanResult:
        """Fetch the newest messages and triage those not seen before.

        Raises :class:`InboxError` when the user has no active mailbox
        credential; mailbox and credential failures propagate after the scan
        log is marked failed.
        """
        store = self._stores.for_user(user_id)
        configs = await store.select(IMAP_CONFIG_TABLE, {"is_active": True}, limit=1)
        if not configs:
            raise InboxError("No active IMAP configuration found")
        config = configs[0]

        admin = self._stores.admin
        scan_log = await admin.insert(
            SCAN_LOG_TABLE,
            {
                "user_id": user_id,
                "imap_config_id": config.get("id"),
                "scan_started_at": utc_now_iso(),
                "status": "running",
            },
        )

        try:
            with self._require_cipher().credential(config, prefix="imap") as credential:
                payloads = await self._reader.fetch_recent(
                    credential, self._settings.mailbox, self._settings.scan_limit
                )
        except Exception as exc:
            LOGGER.error("Inbox scan failed for user %s: %s", user_id, exc)
            await admin.update(
                SCAN_LOG_TABLE,
                {"id": scan_log["id"]},
                {
                    "scan_completed_at": utc_now_iso(),
                    "status": "failed",
                    "error_message": str(exc),
                },
            )
            raise

        processed = new = drafts = 0
        for payload in payloads:
            try:
                email = self._parser.parse(payload)
                outcome = await self._process_email(store, email)
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Failed to process message for user %s", user_id)
                continue
            processed += 1
            if outcome is not None:
                new += 1
                drafts += int(outcome)

        await admin.update(
            SCAN_LOG_TABLE,
            {"id": scan_log["id"]},
            {
                "scan_completed_at": utc_now_iso(),
                "emails_found": len(payloads),
                "emails_new": new,
                "emails_processed": processed,
                "status": "completed",
            },
        )
        await admin.update(
            IMAP_CONFIG_TABLE, {"id": config["id"]}, {"last_scan_at": utc_now_iso()}
        )
        LOGGER.info(
            "Scan for user %s found %d message(s), %d new, %d draft(s)",
            user_id,
            len(payloads),
            new,
            drafts,
        )
        return ScanResult(
            success=True, emails_found=len(payloads), emails_new=new, drafts_created=drafts
        )

    async def _process_email(self, store: RowStore, email: ParsedEmail) -> bool | None:
        """Store one message; ``None`` when already known, else whether drafted."""
        existing = await store.select(
            INBOX_TABLE, {"message_id": email.message_id}, limit=1
        )
        if existing:
            LOGGER.debug("Email already exists: %s", email.message_id)
            return None

        analysis = await self._classifier.classify(email)
        row = await store.insert_ignore(
            INBOX_TABLE,
            {
                "message_id": email.message_id,
                "from_address": email.from_address,
                "from_name": email.from_name,
                "to_address": email.to_address,
                "subject": email.subject,
                "body_text": email.text,
                "body_html": email.html,
                "received_at": serialize_datetime(email.received_at),
                "has_attachments": email.has_attachments,
                "attachments_count": email.attachments_count,
                "is_read": False,
                "is_starred": False,
                "is_archived": False,
                "ai_analyzed": True,
                "ai_priority": analysis.priority,
                "ai_category": analysis.category,
                "ai_sentiment": analysis.sentiment,
                "ai_summary": analysis.summary,
                "ai_suggested_action": analysis.suggested_action,
            },
            ("message_id",),
        )
        if row is None:
            LOGGER.debug("Concurrent scan stored %s first", email.message_id)
            return None
        if analysis.suggested_action != "reply":
            return False
        return await self._create_draft(store, row, email)

    async def _create_draft(self, store: RowStore, row: Row, email: ParsedEmail) -> bool:
        try:
            draft = await self._drafter.generate_draft(email)
            await store.insert(
                DRAFTS_TABLE,
                {
                    "inbox_email_id": row["id"],
                    "to_address": email.from_address,
                    "subject": draft.subject,
                    "body": draft.body,
                    "ai_confidence": draft.confidence,
                    "ai_reasoning": draft.reasoning,
                    "tone": draft.tone,
                    "status": "pending",
                    "user_edited": False,
                    "edited_body": None,
                },
            )
        except DraftingError as exc:
            LOGGER.warning("No draft for %s: %s", email.message_id, exc)
            return False
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Failed to store draft for %s", email.message_id)
            return False
        LOGGER.info("AI draft generated for email: %s", email.subject)
        return True

    # Drafts -------------------------------------------------------------------
    async def send_approved_draft(self, draft_id: Any, user_id: str) -> bool:
        """Dispatch a draft; never re-sends a draft that was already sent."""
        store = self._stores.for_user(user_id)
        draft = await self._get_draft(store, draft_id)
        status = draft.get("status", "pending")
        if status == "sent":
            raise DraftStateError("Draft has already been sent")
        if "sent" not in DRAFT_TRANSITIONS.get(status, frozenset()):
            raise DraftStateError(f"Draft is {status} and cannot be sent")

        configs = await store.select(EMAIL_CONFIG_TABLE, limit=1)
        if not configs:
            raise InboxError("No SMTP configuration found")

        # Claim the draft so a concurrent send of the same draft finds it taken.
        claimed = await store.update(
            DRAFTS_TABLE,
            {"id": draft_id, "status": draft.get("status")},
            {"status": SENDING_STATUS},
        )
        if claimed is None:
            raise DraftStateError("Draft is already being sent")

        body = draft.get("edited_body") if draft.get("user_edited") else None
        body = body or draft["body"]
        try:
            in_reply_to = await self._original_message_id(store, draft)
            with self._require_cipher().credential(configs[0], prefix="smtp") as credential:
                receipt = await self._mailer.send(
                    credential,
                    [draft["to_address"]],
                    draft["subject"],
                    body,
                    cc=draft.get("cc_addresses") or (),
                    in_reply_to=in_reply_to,
                )
        except Exception as exc:
            LOGGER.error("Send of draft %s failed: %s", draft_id, exc)
            await store.update(DRAFTS_TABLE, {"id": draft_id}, {"status": status})
            await self._log_sent(store, draft, body, status="failed", error=str(exc))
            raise

        await store.update(
            DRAFTS_TABLE,
            {"id": draft_id},
            {
                "status": "sent",
                "sent_at": utc_now_iso(),
                "sent_message_id": receipt.message_id,
            },
        )
        await self._log_sent(store, draft, body, status="sent", message_id=receipt.message_id)
        LOGGER.info("Sent draft %s for user %s", draft_id, user_id)
        return True

    async def update_draft(
        self,
        draft_id: Any,
        user_id: str,
        *,
        edited_body: str | None = None,
        status: str | None = None,
    ) -> Row:
        """Edit, approve or reject a draft along the allowed transitions."""
        store = self._stores.for_user(user_id)
        draft = await self._get_draft(store, draft_id)
        current = draft.get("status", "pending")

        patch: dict[str, Any] = {}
        target = status
        if edited_body:
            patch["edited_body"] = edited_body
            patch["user_edited"] = True
            target = status or "edited"
        if target is None:
            raise InboxError("Nothing to update")
        if target not in DRAFT_STATUSES:
            raise DraftStateError(f"Unknown draft status: {target}")
        if target == "sent":
            raise DraftStateError("Drafts are sent with the send action")
        if target != current and target not in DRAFT_TRANSITIONS.get(current, frozenset()):
            raise DraftStateError(f"Cannot move draft from {current} to {target}")
        if target == current and current not in ("pending", "edited"):
            raise DraftStateError(f"Draft is already {current}")

        patch["status"] = target
        patch["updated_at"] = utc_now_iso()
        updated = await store.update(DRAFTS_TABLE, {"id": draft_id}, patch)
        return updated or {**draft, **patch}

    async def list_drafts(
        self, user_id: str, *, status: str | None = "pending", limit: int = 50
    ) -> list[Row]:
        filters = {"status": status} if status else {}
        return await self._stores.for_user(user_id).select(
            DRAFTS_TABLE, filters, order_by="created_at", descending=True, limit=limit
        )

    # Inbox messages -----------------------------------------------------------
    async def list_messages(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        priority: str | None = None,
        limit: int = 50,
    ) -> list[Row]:
        filters: dict[str, Any] = {}
        if unread_only:
            filters["is_read"] = False
        if priority:
            filters["ai_priority"] = priority
        return await self._stores.for_user(user_id).select(
            INBOX_TABLE, filters, order_by="received_at", descending=True, limit=limit
        )

    async def update_message_flags(
        self,
        message_id: Any,
        user_id: str,
        *,
        is_read: bool | None = None,
        is_starred: bool | None = None,
        is_archived: bool | None = None,
    ) -> Row:
        """Set read/starred/archived flags; omitted flags are left untouched."""
        requested = {"is_read": is_read, "is_starred": is_starred, "is_archived": is_archived}
        patch = {name: value for name, value in requested.items() if isinstance(value, bool)}
        store = self._stores.for_user(user_id)
        if not patch:
            rows = await store.select(INBOX_TABLE, {"id": message_id}, limit=1)
        else:
            updated = await store.update(INBOX_TABLE, {"id": message_id}, patch)
            rows = [updated] if updated else []
        if not rows:
            raise InboxError(f"Email {message_id} not found")
        return rows[0]

    async def stats(self, user_id: str) -> dict[str, int]:
        store = self._stores.for_user(user_id)
        unread = await store.select(INBOX_TABLE, {"is_read": False})
        urgent = await store.select(INBOX_TABLE, {"ai_priority": "urgent"})
        pending = await store.select(DRAFTS_TABLE, {"status": "pending"})
        return {"unread": len(unread), "urgent": len(urgent), "pending_drafts": len(pending)}

    # Internal helpers ---------------------------------------------------------
    async def _get_draft(self, store: RowStore, draft_id: Any) -> Row:
        rows = await store.select(DRAFTS_TABLE, {"id": draft_id}, limit=1)
        if not rows:
            raise DraftNotFoundError("Draft not found")
        return rows[0]

    async def _original_message_id(self, store: RowStore, draft: Row) -> str | None:
        inbox_id = draft.get("inbox_email_id")
        if inbox_id is None:
            return None
        rows = await store.select(INBOX_TABLE, {"id": inbox_id}, limit=1)
        return rows[0].get("message_id") if rows else None

    async def _log_sent(
        self,
        store: RowStore,
        draft: Row,
        body: str,
        *,
        status: str,
        message_id: str | None = None,
        error: str | None = None,
    ) -> None:
        row: dict[str, Any] = {
            "recipient": draft["to_address"],
            "subject": draft["subject"],
            "body": body,
            "status": status,
            "message_id": message_id,
        }
        if error is not None:
            row["error_message"] = error
        try:
            await store.insert(SENT_TABLE, row)
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Failed to record sent-mail log for draft %s", draft.get("id"))

    def _require_cipher(self) -> CredentialCipher:
        if self._cipher is None:
            raise CredentialError(
                "Encryption key is not configured; set OFFICE_AGENT_SECURITY__ENCRYPTION_KEY"
            )
        return self._cipher


__all__ = [
    "DRAFT_TRANSITIONS",
    "DraftNotFoundError",
    "DraftStateError",
    "InboxError",
    "InboxTriagePipeline",
]
