"""Per-user SMTP and IMAP account settings and bulk sending."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from office_agent.core.crypto import CredentialCipher, CredentialError
from office_agent.core.datetime_utils import utc_now_iso
from office_agent.core.interfaces import Row, RowStore, StoreGateway
from office_agent.core.models import BulkMessage, BulkOutcome

from .mailer import Mailer

LOGGER = logging.getLogger(__name__)

EMAIL_CONFIG_TABLE = "user_email_configs"
IMAP_CONFIG_TABLE = "user_imap_configs"
SENT_TABLE = "emails_sent"

DEFAULT_CONFIG_NAME = "Default"
DEFAULT_IMAP_PORT = 993


class MailAccountError(RuntimeError):
    """Raised when account settings are incomplete or missing."""


class MailAccountNotFoundError(MailAccountError):
    """Raised when no matching account exists for the caller."""


def public_config(row: Row) -> Row:
    """Return ``row`` without its encrypted password column."""
    return {key: value for key, value in row.items() if not key.endswith("_password")}


class MailAccountService:
    """Store encrypted mail credentials and send through them."""

    def __init__(
        self,
        *,
        stores: StoreGateway,
        cipher: CredentialCipher | None,
        mailer: Mailer,
    ) -> None:
        self._stores = stores
        self._cipher = cipher
        self._mailer = mailer

    # SMTP ---------------------------------------------------------------------
    async def save_smtp_config(
        self,
        user_id: str,
        *,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        config_name: str | None = None,
    ) -> Row:
        """Create or replace the named SMTP account; one row per name."""
        if not (smtp_host and smtp_port and smtp_user and smtp_password):
            raise MailAccountError(
                "Missing required fields: smtp_host, smtp_port, smtp_user, smtp_password"
            )
        name = config_name or DEFAULT_CONFIG_NAME
        values = {
            "config_name": name,
            "smtp_host": smtp_host,
            "smtp_port": int(smtp_port),
            "smtp_user": smtp_user,
            "smtp_password": self._require_cipher().encrypt(smtp_password),
            "updated_at": utc_now_iso(),
        }
        store = self._stores.for_user(user_id)
        row = await store.update(EMAIL_CONFIG_TABLE, {"config_name": name}, values)
        if row is None:
            row = await store.insert(EMAIL_CONFIG_TABLE, values)
        LOGGER.info("Saved SMTP account %s for user %s", name, user_id)
        return public_config(row)

    async def list_smtp_configs(self, user_id: str) -> list[Row]:
        rows = await self._stores.for_user(user_id).select(
            EMAIL_CONFIG_TABLE, order_by="created_at", descending=True
        )
        return [public_config(row) for row in rows]

    async def delete_smtp_config(self, config_id: Any, user_id: str) -> None:
        deleted = await self._stores.for_user(user_id).delete(
            EMAIL_CONFIG_TABLE, {"id": config_id}
        )
        if not deleted:
            raise MailAccountNotFoundError("Email configuration not found")

    async def verify_smtp_config(self, user_id: str, config_name: str | None = None) -> None:
        """Log in with the stored account; raises when the server refuses."""
        row = await self._smtp_row(self._stores.for_user(user_id), config_name)
        with self._require_cipher().credential(row, prefix="smtp") as credential:
            await self._mailer.verify(credential)

    async def send_bulk(
        self,
        user_id: str,
        messages: Sequence[BulkMessage],
        config_name: str | None = None,
    ) -> list[BulkOutcome]:
        """Send every message through one account and log each attempt."""
        if not messages:
            raise MailAccountError("emails must contain at least one message")
        store = self._stores.for_user(user_id)
        row = await self._smtp_row(store, config_name)
        with self._require_cipher().credential(row, prefix="smtp") as credential:
            outcomes = await self._mailer.send_bulk(credential, messages)

        for message, outcome in zip(messages, outcomes):
            log: dict[str, Any] = {
                "recipient": message.to,
                "subject": message.subject,
                "body": message.body,
                "status": "sent" if outcome.success else "failed",
                "message_id": outcome.detail,
            }
            if outcome.error is not None:
                log["error_message"] = outcome.error
            await store.insert(SENT_TABLE, log)
        sent = sum(1 for outcome in outcomes if outcome.success)
        LOGGER.info("Bulk send for %s: %d sent, %d failed", user_id, sent, len(outcomes) - sent)
        return outcomes

    # IMAP ---------------------------------------------------------------------
    async def save_imap_config(
        self,
        user_id: str,
        *,
        imap_host: str,
        imap_user: str,
        imap_password: str,
        imap_port: int | None = None,
        use_ssl: bool = True,
        config_name: str | None = None,
    ) -> Row:
        """Store an IMAP account as the active mailbox for scans."""
        if not (imap_host and imap_user and imap_password):
            raise MailAccountError(
                "Missing required fields: imap_host, imap_user, imap_password"
            )
        row = await self._stores.for_user(user_id).insert(
            IMAP_CONFIG_TABLE,
            {
                "config_name": config_name or DEFAULT_CONFIG_NAME,
                "imap_host": imap_host,
                "imap_port": int(imap_port or DEFAULT_IMAP_PORT),
                "imap_user": imap_user,
                "imap_password": self._require_cipher().encrypt(imap_password),
                "use_ssl": use_ssl,
                "is_active": True,
                "last_scan_at": None,
            },
        )
        LOGGER.info("Saved IMAP account for user %s", user_id)
        return public_config(row)

    async def list_imap_configs(self, user_id: str) -> list[Row]:
        rows = await self._stores.for_user(user_id).select(
            IMAP_CONFIG_TABLE, order_by="created_at", descending=True
        )
        return [public_config(row) for row in rows]

    # Internal helpers ---------------------------------------------------------
    async def _smtp_row(self, store: RowStore, config_name: str | None) -> Row:
        rows = await store.select(
            EMAIL_CONFIG_TABLE, {"config_name": config_name or DEFAULT_CONFIG_NAME}, limit=1
        )
        if not rows:
            raise MailAccountNotFoundError("Email configuration not found")
        return rows[0]

    def _require_cipher(self) -> CredentialCipher:
        if self._cipher is None:
            raise CredentialError(
                "Encryption key is not configured; set OFFICE_AGENT_SECURITY__ENCRYPTION_KEY"
            )
        return self._cipher


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "EMAIL_CONFIG_TABLE",
    "IMAP_CONFIG_TABLE",
    "MailAccountError",
    "MailAccountNotFoundError",
    "MailAccountService",
    "SENT_TABLE",
    "public_config",
]
