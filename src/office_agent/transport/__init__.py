"""Transport adapters for external mailbox providers."""

from .imap_client import ImapClient, ImapError, ImapMailboxReader
from .smtp_client import SmtpClient, SmtpError, SmtpTransport

__all__ = [
    "ImapClient",
    "ImapError",
    "ImapMailboxReader",
    "SmtpClient",
    "SmtpError",
    "SmtpTransport",
]
