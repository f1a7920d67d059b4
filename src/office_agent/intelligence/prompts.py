"""Prompt templates for the agent and inbox triage."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from textwrap import dedent
from typing import TYPE_CHECKING, Any

from office_agent.core.models import ParsedEmail

if TYPE_CHECKING:
    from office_agent.agent.catalog import ToolSpec

_INTENT_EXAMPLES = """
Examples:

User: "Send an email to john@example.com saying the report is ready"
Response: {
  "tool": "send_email",
  "reasoning": "User wants to send an email",
  "parameters": {
    "to": ["john@example.com"],
    "subject": "Report Status",
    "body": "The report is ready."
  }
}

User: "Create a daily report at 9am"
Response: {
  "tool": "create_cron_job",
  "reasoning": "User wants to schedule a recurring task",
  "parameters": {
    "name": "Daily Report",
    "schedule": "0 9 * * *",
    "task_type": "pdf",
    "task_config": { "title": "Daily Report" }
  }
}

User: "What's the weather like?"
Response: {
  "tool": "conversation",
  "reasoning": "User is asking a general question, no automation needed",
  "parameters": {}
}
"""


def build_tool_preamble(catalog: Iterable[ToolSpec]) -> str:
    """Compose the fixed system preamble describing every tool."""
    tools_description = "\n\n".join(
        f"- {tool.name}: {tool.description}\n"
        f"  Parameters: {json.dumps(dict(tool.parameters), indent=2)}"
        for tool in catalog
    )
    return "\n".join(
        [
            "You are an AI office automation agent. "
            "You can help users with various tasks.",
            "",
            "Available Tools:",
            tools_description,
            "",
            "When a user asks you to do something, analyze their request and "
            "respond with a JSON object:",
            "{",
            '  "tool": "tool_name",',
            '  "reasoning": "why you chose this tool",',
            '  "parameters": { /* tool parameters */ }',
            "}",
            "",
            'If user request is ambiguous, use "conversation" tool and ask for '
            "clarification.",
            _INTENT_EXAMPLES,
            "IMPORTANT: Always respond with valid JSON only, no additional text.",
        ]
    )


def build_intent_prompt(preamble: str, message: str) -> str:
    """Append the user's message to the tool preamble."""
    return f'{preamble}\n\nUser message: "{message}"\n\nYour JSON response:'


def build_outcome_prompt(tool: str, parameters: Mapping[str, Any], outcome: str) -> str:
    """Ask the model to phrase a tool outcome for the user."""
    rendered = json.dumps(dict(parameters), default=str)
    prompt = dedent(
        """
    I just executed this action: {tool} with these parameters: {rendered}.
    The result was: {outcome}

    Please formulate a brief, natural response to tell the user what happened.
    Keep it concise and friendly.
    """
    ).format(tool=tool, rendered=rendered, outcome=outcome)
    return prompt.strip()


def build_classification_prompt(email: ParsedEmail, *, body_chars: int) -> str:
    """Compose a JSON-only triage prompt for an inbound message."""
    sender = _format_sender(email)
    body = email.text[:body_chars]

    prompt = dedent(
        """
    Analyze this email and provide a JSON response:

    From: {sender}
    Subject: {subject}
    Body: {body}

    Provide analysis in this exact JSON format:
    {{
      "priority": "urgent|high|normal|low",
      "category": "question|request|complaint|info|spam|other",
      "sentiment": "positive|neutral|negative",
      "summary": "Brief 1-2 sentence summary",
      "suggestedAction": "reply|forward|archive|delete"
    }}

    Respond ONLY with valid JSON, no additional text.
    """
    ).format(sender=sender, subject=email.subject, body=body)
    return prompt.strip()


def build_draft_prompt(email: ParsedEmail, *, body_chars: int) -> str:
    """Compose a prompt instructing the model to draft a reply."""
    sender = _format_sender(email)
    body = email.text[:body_chars]
    reply_subject = json.dumps(f"Re: {email.subject}")

    prompt = dedent(
        """
    Generate a professional email response:

    Original Email:
    From: {sender}
    Subject: {subject}
    Body: {body}

    Generate a response in this JSON format:
    {{
      "subject": {reply_subject},
      "body": "Professional response body",
      "tone": "professional|friendly|formal",
      "reasoning": "Why this response is appropriate",
      "confidence": 0.85
    }}

    Make the response:
    - Professional and courteous
    - Address the sender's concerns
    - Keep it concise (2-3 paragraphs max)
    - Sign off appropriately

    Respond ONLY with valid JSON.
    """
    ).format(
        sender=sender, subject=email.subject, body=body, reply_subject=reply_subject
    )
    return prompt.strip()


def _format_sender(email: ParsedEmail) -> str:
    if email.from_name:
        return f"{email.from_address} ({email.from_name})"
    return email.from_address


__all__ = [
    "build_classification_prompt",
    "build_draft_prompt",
    "build_intent_prompt",
    "build_outcome_prompt",
    "build_tool_preamble",
]
