"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class ChatTurn:
    """One prior message in a conversation."""

    role: str
    text: str


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    """Per-request overrides for the generative-text provider."""

    temperature: float | None = None
    max_output_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class Completion:
    """Text returned by the generative-text provider."""

    text: str
    token_usage: int | None = None


@dataclass(slots=True)
class AgentAction:
    """Tool selection produced by the intent resolver."""

    tool: str
    reasoning: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SendEmailParams:
    """Parameters for the ``send_email`` tool."""

    to: tuple[str, ...]
    subject: str
    body: str


@dataclass(frozen=True, slots=True)
class GeneratePdfParams:
    """Parameters for the ``generate_pdf`` tool."""

    title: str
    content: str


@dataclass(frozen=True, slots=True)
class ScrapeWebsiteParams:
    """Parameters for the ``scrape_website`` tool."""

    url: str
    selectors: dict[str, str] | None = None


@dataclass(frozen=True, slots=True)
class CreateCronJobParams:
    """Parameters for the ``create_cron_job`` tool."""

    name: str
    schedule: str
    task_type: str
    task_config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ConversationParams:
    """The ``conversation`` tool takes no parameters."""


ToolParams = (
    SendEmailParams
    | GeneratePdfParams
    | ScrapeWebsiteParams
    | CreateCronJobParams
    | ConversationParams
)


@dataclass(frozen=True, slots=True)
class MailCredential:
    """Decrypted mail server credential; lives for a single transport call."""

    host: str
    port: int
    username: str
    password: str = field(repr=False)
    use_ssl: bool = True


@dataclass(frozen=True, slots=True)
class OutgoingMail:
    """Message handed to the SMTP transport."""

    sender: str
    to: tuple[str, ...]
    subject: str
    text: str
    html: str | None = None
    cc: tuple[str, ...] = ()
    in_reply_to: str | None = None


@dataclass(frozen=True, slots=True)
class SendReceipt:
    """Outcome of a successful SMTP submission."""

    message_id: str


@dataclass(frozen=True, slots=True)
class BulkMessage:
    """One message of a bulk send."""

    to: str
    subject: str
    body: str


@dataclass(frozen=True, slots=True)
class BulkOutcome:
    """Per-item result of a multi-item operation."""

    target: str
    success: bool
    detail: Any = None
    error: str | None = None


@dataclass(slots=True)
class ParsedEmail:
    """Normalized inbound message ready for classification."""

    message_id: str
    from_address: str
    from_name: str | None
    to_address: str
    subject: str
    text: str
    html: str
    received_at: datetime
    attachments_count: int = 0

    @property
    def has_attachments(self) -> bool:
        """Return ``True`` when the message carried attachments."""
        return self.attachments_count > 0


@dataclass(frozen=True, slots=True)
class EmailClassification:
    """Triage labels assigned to an inbound message."""

    priority: str
    category: str
    sentiment: str
    summary: str
    suggested_action: str
    used_fallback: bool = False


@dataclass(frozen=True, slots=True)
class DraftReply:
    """Reply proposed for an inbound message, pending human approval."""

    subject: str
    body: str
    tone: str
    reasoning: str | None
    confidence: float


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Outcome summary for one inbox scan."""

    success: bool
    emails_found: int
    emails_new: int = 0
    drafts_created: int = 0


__all__ = [
    "AgentAction",
    "BulkMessage",
    "BulkOutcome",
    "ChatTurn",
    "Completion",
    "ConversationParams",
    "CreateCronJobParams",
    "DraftReply",
    "EmailClassification",
    "GenerationConfig",
    "GeneratePdfParams",
    "MailCredential",
    "OutgoingMail",
    "ParsedEmail",
    "ScanResult",
    "ScrapeWebsiteParams",
    "SendEmailParams",
    "SendReceipt",
    "ToolParams",
]
