"""The fixed set of tools the agent can invoke."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

SEND_EMAIL = "send_email"
GENERATE_PDF = "generate_pdf"
SCRAPE_WEBSITE = "scrape_website"
CREATE_CRON_JOB = "create_cron_job"
CONVERSATION = "conversation"


@dataclass(frozen=True)
class ToolSpec:
    """Name, usage hint and parameter documentation for one tool."""

    name: str
    description: str
    parameters: Mapping[str, str] = field(default_factory=dict)


TOOL_CATALOG: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=SEND_EMAIL,
        description=(
            "Send an email to one or more recipients. "
            "Use when user wants to send/compose/email someone."
        ),
        parameters=MappingProxyType(
            {
                "to": "string[] - recipient email addresses",
                "subject": "string - email subject",
                "body": "string - email body/content",
            }
        ),
    ),
    ToolSpec(
        name=GENERATE_PDF,
        description=(
            "Generate a PDF document. "
            "Use when user wants to create/generate a PDF/document/report."
        ),
        parameters=MappingProxyType(
            {
                "title": "string - document title",
                "content": "string - document content",
            }
        ),
    ),
    ToolSpec(
        name=SCRAPE_WEBSITE,
        description=(
            "Extract data from a website. "
            "Use when user wants to scrape/extract/get data from a URL."
        ),
        parameters=MappingProxyType(
            {
                "url": "string - website URL to scrape",
                "selectors": "object - CSS selectors for data extraction (optional)",
            }
        ),
    ),
    ToolSpec(
        name=CREATE_CRON_JOB,
        description=(
            "Schedule a recurring task. Use when user wants to automate/schedule "
            "something regularly (daily, weekly, etc)."
        ),
        parameters=MappingProxyType(
            {
                "name": "string - job name",
                "schedule": 'string - cron expression (e.g., "0 8 * * *" for daily at 8am)',
                "task_type": "string - email, pdf, or scraper",
                "task_config": "object - configuration for the task",
            }
        ),
    ),
    ToolSpec(
        name=CONVERSATION,
        description=(
            "Just have a conversation, answer questions, or provide information. "
            "Use when no action is needed."
        ),
    ),
)

TOOL_NAMES: frozenset[str] = frozenset(spec.name for spec in TOOL_CATALOG)


__all__ = [
    "CONVERSATION",
    "CREATE_CRON_JOB",
    "GENERATE_PDF",
    "SCRAPE_WEBSITE",
    "SEND_EMAIL",
    "TOOL_CATALOG",
    "TOOL_NAMES",
    "ToolSpec",
]
