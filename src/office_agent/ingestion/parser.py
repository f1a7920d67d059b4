"""Utilities for parsing raw RFC822 messages into structured models."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime

from ..core.datetime_utils import ensure_utc, utc_now
from ..core.models import ParsedEmail


class EmailParser:
    """Convert raw email payloads into normalized messages."""

    def __init__(self) -> None:
        """Prepare internal parser instance."""
        self._parser = BytesParser(policy=policy.default)

    def parse(self, payload: bytes) -> ParsedEmail:
        """Parse raw RFC822 bytes into a :class:`ParsedEmail`."""
        message = self._parser.parsebytes(payload)
        from_name, from_address = _take_first_address(message.get("From"))
        _, to_address = _take_first_address(message.get("To"))
        text, html = _extract_bodies(message)
        message_id = message.get("Message-ID")
        if not message_id:
            # Rescans of the same message must produce the same key.
            message_id = _content_key(message, text or html)
        received_at = _try_parse_datetime(message.get("Date")) or utc_now()

        return ParsedEmail(
            message_id=str(message_id).strip(),
            from_address=from_address,
            from_name=from_name or None,
            to_address=to_address,
            subject=str(message.get("Subject") or "(No Subject)"),
            text=text,
            html=html,
            received_at=received_at,
            attachments_count=sum(1 for _ in message.iter_attachments()),
        )


def _take_first_address(header_value: str | None) -> tuple[str, str]:
    if header_value is None:
        return "", ""
    for name, email_address in getaddresses([str(header_value)]):
        if email_address:
            return name, email_address
    return "", ""


def _collapse_chunks(chunks: Iterable[str], separator: str) -> str:
    return separator.join(chunk for chunk in chunks if chunk)


def _extract_bodies(message: EmailMessage) -> tuple[str, str]:
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if not isinstance(content_obj, str):
            continue
        content = content_obj.strip()
        content_type = part.get_content_type()
        if content_type == "text/plain":
            plain_chunks.append(content)
        elif content_type == "text/html":
            html_chunks.append(content)

    return _collapse_chunks(plain_chunks, "\n\n"), _collapse_chunks(html_chunks, "\n")


def _content_key(message: EmailMessage, body: str) -> str:
    content = (
        f"{message.get('From') or ''}\n"
        f"{message.get('Date') or ''}\n"
        f"{message.get('Subject') or ''}\n"
        f"{body}"
    )
    return f"<{hashlib.sha256(content.encode('utf-8')).hexdigest()}@local>"


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParser"]
