"""SMTP transport for sending emails with per-call credentials."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from ..core.models import MailCredential, OutgoingMail, SendReceipt

LOGGER = logging.getLogger(__name__)


class SmtpError(Exception):
    """Base exception for SMTP operations.

    Raised when SMTP connection, authentication, or sending fails.
    """


class SmtpClient:
    """SMTP client bound to one decrypted credential.

    Provides context manager interface for automatic connection management.
    Port 465 uses implicit SSL; any other port upgrades with STARTTLS whenever
    the server offers it, and insists on it when the credential requires SSL.

    Example:
        >>> with SmtpClient(credential) as client:
        ...     client.send(OutgoingMail(sender="me@example.com", ...))
    """

    def __init__(self, credential: MailCredential, *, timeout: float = 30.0) -> None:
        """Initialize SMTP client for ``credential``."""
        self._credential = credential
        self._timeout = timeout
        self._connection: smtplib.SMTP | None = None

    def __enter__(self) -> SmtpClient:
        """Enter context manager, establishing connection."""
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing connection."""
        self.disconnect()

    def connect(self) -> None:
        """Establish SMTP connection and authenticate.

        Raises:
            SmtpError: If connection or authentication fails
        """
        credential = self._credential
        if not credential.host:
            raise SmtpError("SMTP host not configured")

        LOGGER.info(
            "Attempting SMTP connection to %s:%d", credential.host, credential.port
        )

        try:
            if credential.port == 465:
                LOGGER.debug("Using SSL for SMTP connection")
                self._connection = smtplib.SMTP_SSL(
                    credential.host, credential.port, timeout=self._timeout
                )
            else:
                self._connection = smtplib.SMTP(
                    credential.host, credential.port, timeout=self._timeout
                )
                self._connection.ehlo()
                if self._connection.has_extn("starttls"):
                    LOGGER.debug("Using STARTTLS for SMTP connection")
                    self._connection.starttls()
                    self._connection.ehlo()
                elif credential.use_ssl:
                    raise SmtpError("SMTP server does not offer STARTTLS")

            if credential.username and credential.password:
                LOGGER.debug("Authenticating as %s", credential.username)
                self._connection.login(credential.username, credential.password)

            LOGGER.info("Connected to SMTP server: %s", credential.host)

        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed for %s", credential.username)
            raise SmtpError(f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPConnectError as exc:
            LOGGER.error("SMTP connection failed: %s", exc)
            raise SmtpError(f"Failed to connect to SMTP server: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("SMTP error: %s", exc)
            raise SmtpError(f"SMTP error: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error connecting to SMTP server: %s", exc)
            raise SmtpError(f"Network error: {exc}") from exc

    def disconnect(self) -> None:
        """Close SMTP connection gracefully."""
        if self._connection:
            try:
                self._connection.quit()
                LOGGER.debug("SMTP connection closed")
            except smtplib.SMTPException as exc:
                LOGGER.warning("Error closing SMTP connection: %s", exc)
            finally:
                self._connection = None

    def send(self, message: OutgoingMail) -> SendReceipt:
        """Send an email message and return its Message-ID.

        Raises:
            SmtpError: If sending fails or not connected
        """
        if not self._connection:
            raise SmtpError("Not connected to SMTP server")

        recipients = ", ".join(message.to)
        LOGGER.info("Preparing to send email to %s: %s", recipients, message.subject)

        mime_message = build_mime_message(message)
        try:
            refused = self._connection.send_message(mime_message)
        except smtplib.SMTPRecipientsRefused as exc:
            LOGGER.error("All recipients refused: %s", exc)
            raise SmtpError(f"All recipients refused: {exc}") from exc
        except smtplib.SMTPSenderRefused as exc:
            LOGGER.error("Sender refused: %s", exc)
            raise SmtpError(f"Sender refused: {exc}") from exc
        except smtplib.SMTPDataError as exc:
            LOGGER.error("SMTP data error: %s", exc)
            raise SmtpError(f"SMTP data error: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("Failed to send email: %s", exc)
            raise SmtpError(f"Failed to send email: {exc}") from exc

        if refused:
            LOGGER.warning("Some recipients were refused: %s", refused)
            raise SmtpError(f"Some recipients were refused: {refused}")

        LOGGER.info("Email sent successfully to %s: %s", recipients, message.subject)
        return SendReceipt(message_id=str(mime_message["Message-ID"]))


def build_mime_message(message: OutgoingMail) -> EmailMessage:
    """Build a MIME message with a plain body and optional HTML alternative."""
    mime_msg = EmailMessage()
    mime_msg["From"] = message.sender
    mime_msg["To"] = ", ".join(message.to)
    if message.cc:
        mime_msg["Cc"] = ", ".join(message.cc)
    mime_msg["Subject"] = message.subject
    mime_msg["Message-ID"] = make_msgid()

    # Thread headers for proper email threading
    if message.in_reply_to:
        mime_msg["In-Reply-To"] = message.in_reply_to
        mime_msg["References"] = message.in_reply_to

    mime_msg.set_content(message.text)
    if message.html:
        mime_msg.add_alternative(message.html, subtype="html")
    return mime_msg


class SmtpTransport:
    """Mail transport opening one SMTP session per send."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout

    async def send(
        self, credential: MailCredential, message: OutgoingMail
    ) -> SendReceipt:
        """Submit ``message`` on a worker thread."""
        return await asyncio.to_thread(self._send_blocking, credential, message)

    async def verify(self, credential: MailCredential) -> None:
        """Log in and out again on a worker thread."""
        await asyncio.to_thread(self._verify_blocking, credential)

    def _send_blocking(
        self, credential: MailCredential, message: OutgoingMail
    ) -> SendReceipt:
        with SmtpClient(credential, timeout=self._timeout) as client:
            return client.send(message)

    def _verify_blocking(self, credential: MailCredential) -> None:
        with SmtpClient(credential, timeout=self._timeout):
            LOGGER.info("SMTP credential verified for %s", credential.username)


__all__ = ["SmtpClient", "SmtpError", "SmtpTransport", "build_mime_message"]
