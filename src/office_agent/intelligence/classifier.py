"""Triage classification for inbound messages with a safe default."""

from __future__ import annotations

import logging
from typing import Any

from office_agent.core.models import EmailClassification, ParsedEmail

from .decoding import decode_json_object
from .llm import LLMClient, LLMError
from .prompts import build_classification_prompt

LOGGER = logging.getLogger(__name__)

PRIORITIES = frozenset({"urgent", "high", "normal", "low"})
CATEGORIES = frozenset({"question", "request", "complaint", "info", "spam", "other"})
SENTIMENTS = frozenset({"positive", "neutral", "negative"})
SUGGESTED_ACTIONS = frozenset({"reply", "forward", "archive", "delete"})

_REQUIRED_KEYS = ("priority", "category", "sentiment", "summary", "suggestedAction")


def default_classification(email: ParsedEmail) -> EmailClassification:
    """Classification used whenever the model reply cannot be trusted."""
    return EmailClassification(
        priority="normal",
        category="other",
        sentiment="neutral",
        summary=email.subject,
        suggested_action="reply",
        used_fallback=True,
    )


class ClassificationService:
    """Assign priority, category, sentiment, summary and next action."""

    def __init__(self, llm_client: LLMClient, *, body_chars: int = 1000) -> None:
        """Prepare the classifier with its model client and prompt budget."""
        self._llm_client = llm_client
        self._body_chars = body_chars

    async def classify(self, email: ParsedEmail) -> EmailClassification:
        """Return the classification for ``email``; never raises for bad output."""
        prompt = build_classification_prompt(email, body_chars=self._body_chars)
        try:
            completion = await self._llm_client.complete(prompt)
        except LLMError as exc:
            LOGGER.warning(
                "Classification request failed for %s: %s", email.message_id, exc
            )
            return default_classification(email)

        payload = decode_json_object(completion.text, _REQUIRED_KEYS)
        if payload is None:
            LOGGER.warning(
                "Unusable classification reply for %s; using defaults",
                email.message_id,
            )
            return default_classification(email)
        return _coerce(payload, email)


def _coerce(payload: dict[str, Any], email: ParsedEmail) -> EmailClassification:
    fallback = default_classification(email)
    summary = payload.get("summary")
    return EmailClassification(
        priority=_pick(payload.get("priority"), PRIORITIES, fallback.priority),
        category=_pick(payload.get("category"), CATEGORIES, fallback.category),
        sentiment=_pick(payload.get("sentiment"), SENTIMENTS, fallback.sentiment),
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else fallback.summary,
        suggested_action=_pick(
            payload.get("suggestedAction"), SUGGESTED_ACTIONS, fallback.suggested_action
        ),
        used_fallback=False,
    )


def _pick(value: object, allowed: frozenset[str], default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return default


__all__ = [
    "CATEGORIES",
    "PRIORITIES",
    "SENTIMENTS",
    "SUGGESTED_ACTIONS",
    "ClassificationService",
    "default_classification",
]
