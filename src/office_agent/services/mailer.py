"""Outbound mail composition on top of a mail transport."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from html import escape

from office_agent.core.interfaces import MailTransport
from office_agent.core.models import (
    BulkMessage,
    BulkOutcome,
    MailCredential,
    OutgoingMail,
    SendReceipt,
)

LOGGER = logging.getLogger(__name__)


def text_to_html(body: str) -> str:
    """Naive plain-text to HTML conversion used for the alternative part."""
    return f"<p>{escape(body).replace(chr(10), '<br>')}</p>"


class Mailer:
    """Compose plain and HTML bodies and hand them to the transport."""

    def __init__(self, transport: MailTransport) -> None:
        self._transport = transport

    async def send(
        self,
        credential: MailCredential,
        to: Sequence[str],
        subject: str,
        body: str,
        *,
        cc: Sequence[str] = (),
        in_reply_to: str | None = None,
    ) -> SendReceipt:
        message = OutgoingMail(
            sender=credential.username,
            to=tuple(to),
            subject=subject,
            text=body,
            html=text_to_html(body),
            cc=tuple(cc),
            in_reply_to=in_reply_to,
        )
        return await self._transport.send(credential, message)

    async def send_bulk(
        self, credential: MailCredential, messages: Iterable[BulkMessage]
    ) -> list[BulkOutcome]:
        """Send each message on its own; failures do not stop the batch."""
        outcomes: list[BulkOutcome] = []
        for message in messages:
            try:
                receipt = await self.send(
                    credential, [message.to], message.subject, message.body
                )
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning("Bulk send to %s failed: %s", message.to, exc)
                outcomes.append(BulkOutcome(target=message.to, success=False, error=str(exc)))
            else:
                outcomes.append(
                    BulkOutcome(target=message.to, success=True, detail=receipt.message_id)
                )
        return outcomes

    async def verify(self, credential: MailCredential) -> None:
        """Open and close a session to prove ``credential`` works."""
        await self._transport.verify(credential)


__all__ = ["Mailer", "text_to_html"]
