"""IMAP transport adapter providing mailbox access."""

from __future__ import annotations

import asyncio
import imaplib
import logging
from types import TracebackType

from ..core.models import MailCredential

LOGGER = logging.getLogger(__name__)


class ImapError(RuntimeError):
    """Wrap low level IMAP errors with additional context."""


class ImapClient:
    """Thin wrapper around ``imaplib`` offering typed fetch helpers."""

    def __init__(
        self, credential: MailCredential, mailbox: str, *, timeout: float = 30.0
    ) -> None:
        """Initialise the client with a decrypted credential and mailbox."""
        self._credential = credential
        self._timeout = timeout
        self._connection: imaplib.IMAP4 | imaplib.IMAP4_SSL | None = None
        self.mailbox = mailbox

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapClient:
        """Connect on entering a context manager scope."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure resources are released on context exit."""
        self.close()

    # Public API ---------------------------------------------------------------
    def connect(self) -> None:
        """Establish IMAP connection and select the configured mailbox."""
        if self._connection is not None:
            return

        credential = self._credential
        try:
            if credential.use_ssl:
                LOGGER.debug(
                    "Connecting to IMAP host %s:%s via SSL",
                    credential.host,
                    credential.port,
                )
                connection: imaplib.IMAP4 | imaplib.IMAP4_SSL = imaplib.IMAP4_SSL(
                    credential.host, credential.port, timeout=self._timeout
                )
            else:
                LOGGER.debug(
                    "Connecting to IMAP host %s:%s without SSL",
                    credential.host,
                    credential.port,
                )
                connection = imaplib.IMAP4(
                    credential.host, credential.port, timeout=self._timeout
                )

            LOGGER.debug("Authenticating as %s", credential.username)
            connection.login(credential.username, credential.password)
            # Readonly so fetching does not mark messages as seen.
            status, _ = connection.select(self.mailbox, readonly=True)
            if status != "OK":
                raise ImapError(f"Unable to select mailbox '{self.mailbox}'")
            self._connection = connection
        except imaplib.IMAP4.error as exc:  # pragma: no cover - network dependent
            raise ImapError("Failed to connect to IMAP server") from exc
        except OSError as exc:  # pragma: no cover - network dependent
            raise ImapError(f"Network error: {exc}") from exc

    def fetch_recent(self, limit: int) -> list[bytes]:
        """Return RFC822 payloads of the newest ``limit`` messages, oldest first."""
        connection = self._require_connection()
        status, data = connection.uid("SEARCH", None, "ALL")  # type: ignore[arg-type]
        if status != "OK":
            raise ImapError("Failed to search for message UIDs")

        raw_ids = data[0].split() if data and data[0] else []
        if not raw_ids:
            LOGGER.debug("Mailbox %s is empty", self.mailbox)
            return []

        newest = sorted(raw_ids, key=int)[-limit:] if limit > 0 else []
        payloads: list[bytes] = []
        for uid_bytes in newest:
            uid_str = uid_bytes.decode()
            LOGGER.debug("Fetching RFC822 payload for UID %s", uid_str)
            status_fetch, fetch_data = connection.uid("FETCH", uid_str, "(RFC822)")
            if status_fetch != "OK":
                raise ImapError(f"Failed to fetch message UID {uid_str}")
            payload = _extract_rfc822(fetch_data)
            if payload is None:
                LOGGER.warning("No RFC822 payload returned for UID %s", uid_str)
                continue
            payloads.append(payload)
        return payloads

    def close(self) -> None:
        """Terminate the IMAP session cleanly."""
        if self._connection is None:
            return
        try:
            LOGGER.debug("Closing IMAP connection")
            self._connection.close()
        except imaplib.IMAP4.error:  # pragma: no cover - depends on server state
            LOGGER.debug("IMAP close raised; continuing with logout")
        finally:
            try:
                self._connection.logout()
            except imaplib.IMAP4.error:  # pragma: no cover
                LOGGER.debug("IMAP logout raised; suppressing during shutdown")
            self._connection = None

    # Internal helpers ---------------------------------------------------------
    def _require_connection(self) -> imaplib.IMAP4 | imaplib.IMAP4_SSL:
        if self._connection is None:
            raise ImapError("IMAP connection has not been established")
        return self._connection


class ImapMailboxReader:
    """Mailbox reader opening one IMAP session per scan."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout

    async def fetch_recent(
        self, credential: MailCredential, mailbox: str, limit: int
    ) -> list[bytes]:
        """Fetch the newest ``limit`` messages on a worker thread."""
        return await asyncio.to_thread(self._fetch_blocking, credential, mailbox, limit)

    def _fetch_blocking(
        self, credential: MailCredential, mailbox: str, limit: int
    ) -> list[bytes]:
        with ImapClient(credential, mailbox, timeout=self._timeout) as client:
            return client.fetch_recent(limit)


def _extract_rfc822(fetch_data: list[tuple[bytes, bytes] | bytes]) -> bytes | None:
    """Extract RFC822 payload from ``imaplib`` response chunks."""
    for entry in fetch_data:
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[1]
    return None


__all__ = [
    "ImapClient",
    "ImapError",
    "ImapMailboxReader",
]
