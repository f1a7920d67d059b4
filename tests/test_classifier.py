"""Tests for inbound message classification."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from office_agent.core.models import Completion, ParsedEmail
from office_agent.intelligence import ClassificationService, LLMError


class StubLLM:
    """LLM stub returning a predetermined response."""

    provider_id = "stub-llm"

    def __init__(self, response: str) -> None:
        self.response = response
        self.last_prompt: str | None = None

    async def complete(self, prompt: str, config: object = None) -> Completion:
        self.last_prompt = prompt
        return Completion(text=self.response)


class FailingLLM:
    """LLM stub that always raises an error."""

    provider_id = "failing-llm"

    async def complete(self, prompt: str, config: object = None) -> Completion:
        del prompt
        raise LLMError("failure")


def _sample_email(body: str = "Can we meet on Friday?") -> ParsedEmail:
    return ParsedEmail(
        message_id="<101@example.com>",
        from_address="alice@example.com",
        from_name="Alice",
        to_address="team@example.com",
        subject="Meeting",
        text=body,
        html="",
        received_at=datetime(2025, 10, 24, 15, 0, tzinfo=timezone.utc),
    )


def test_classify_uses_model_labels() -> None:
    llm = StubLLM(
        '```json\n{"priority": "HIGH", "category": "question", "sentiment": "positive", '
        '"summary": "Alice asks to meet.", "suggestedAction": "reply"}\n```'
    )

    result = asyncio.run(ClassificationService(llm).classify(_sample_email()))

    assert result.priority == "high"
    assert result.category == "question"
    assert result.sentiment == "positive"
    assert result.summary == "Alice asks to meet."
    assert result.suggested_action == "reply"
    assert not result.used_fallback


def test_non_json_reply_falls_back_to_defaults() -> None:
    result = asyncio.run(
        ClassificationService(StubLLM("sorry I cannot help")).classify(_sample_email())
    )

    assert result.priority == "normal"
    assert result.category == "other"
    assert result.sentiment == "neutral"
    assert result.summary == "Meeting"
    assert result.suggested_action == "reply"
    assert result.used_fallback


def test_provider_failure_falls_back_to_defaults() -> None:
    result = asyncio.run(ClassificationService(FailingLLM()).classify(_sample_email()))

    assert result.used_fallback
    assert result.priority == "normal"


def test_out_of_range_labels_are_replaced_individually() -> None:
    llm = StubLLM(
        '{"priority": "critical", "category": "spam", "sentiment": "angry", '
        '"summary": "", "suggestedAction": "archive"}'
    )

    result = asyncio.run(ClassificationService(llm).classify(_sample_email()))

    assert result.priority == "normal"
    assert result.category == "spam"
    assert result.sentiment == "neutral"
    assert result.summary == "Meeting"
    assert result.suggested_action == "archive"


def test_prompt_truncates_body() -> None:
    llm = StubLLM("{}")

    asyncio.run(ClassificationService(llm, body_chars=10).classify(_sample_email("x" * 50)))

    assert llm.last_prompt is not None
    assert "Body: " + "x" * 10 + "\n" in llm.last_prompt
