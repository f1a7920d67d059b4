"""Drafting service that proposes replies to inbound messages."""

from __future__ import annotations

import logging
from typing import Any

from office_agent.core.models import DraftReply, ParsedEmail

from .decoding import decode_json_object
from .llm import LLMClient, LLMError
from .prompts import build_draft_prompt

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
DEFAULT_TONE = "professional"


class DraftingError(RuntimeError):
    """Raised when no usable draft could be produced."""


class DraftingService:
    """Generate reply drafts using the generative-text model."""

    def __init__(self, llm_client: LLMClient, *, body_chars: int = 1500) -> None:
        """Initialise the service with its model client and prompt budget."""
        self._llm_client = llm_client
        self._body_chars = body_chars

    async def generate_draft(self, email: ParsedEmail) -> DraftReply:
        """Return a draft reply for ``email``."""
        prompt = build_draft_prompt(email, body_chars=self._body_chars)
        try:
            completion = await self._llm_client.complete(prompt)
        except LLMError as exc:
            raise DraftingError(f"Draft request failed: {exc}") from exc

        payload = decode_json_object(completion.text, ("body",))
        if payload is None:
            raise DraftingError("Draft output was not a JSON object with a body")
        return _parse_draft(payload, email)


def _parse_draft(payload: dict[str, Any], email: ParsedEmail) -> DraftReply:
    body = payload.get("body")
    if not isinstance(body, str) or not body.strip():
        raise DraftingError("Draft output missing 'body' field")

    subject = payload.get("subject")
    if not isinstance(subject, str) or not subject.strip():
        subject = f"Re: {email.subject}"

    tone = payload.get("tone")
    if not isinstance(tone, str) or not tone.strip():
        tone = DEFAULT_TONE

    reasoning = payload.get("reasoning")
    return DraftReply(
        subject=subject.strip(),
        body=body.strip(),
        tone=tone.strip(),
        reasoning=reasoning if isinstance(reasoning, str) else None,
        confidence=_confidence(payload.get("confidence")),
    )


def _confidence(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if not 0.0 <= float(value) <= 1.0:
        return DEFAULT_CONFIDENCE
    return float(value)


__all__ = ["DraftingError", "DraftingService"]
