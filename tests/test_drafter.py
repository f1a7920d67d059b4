"""Tests for the drafting service implementation."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from office_agent.core.models import Completion, ParsedEmail
from office_agent.intelligence import DraftingError, DraftingService, LLMError
from office_agent.intelligence.drafter import DEFAULT_CONFIDENCE


class StubLLM:
    """LLM stub returning a predetermined response."""

    def __init__(self, response: str) -> None:
        self.response = response
        self.provider_id = "stub-llm"
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


def _sample_email() -> ParsedEmail:
    return ParsedEmail(
        message_id="<101@example.com>",
        from_address="alice@example.com",
        from_name=None,
        to_address="team@example.com",
        subject="Project update",
        text="Could you send the revised projections by Friday?",
        html="",
        received_at=datetime(2025, 10, 24, 15, 0, tzinfo=timezone.utc),
    )


def test_generate_draft_uses_llm_output() -> None:
    llm = StubLLM(
        '{"subject": "Re: Project update", "body": "Thanks, will do.", '
        '"tone": "friendly", "reasoning": "Confirms the request", "confidence": 0.9}'
    )

    draft = asyncio.run(DraftingService(llm).generate_draft(_sample_email()))

    assert draft.subject == "Re: Project update"
    assert draft.body == "Thanks, will do."
    assert draft.tone == "friendly"
    assert draft.reasoning == "Confirms the request"
    assert draft.confidence == 0.9
    assert llm.last_prompt is not None
    assert '"subject": "Re: Project update"' in llm.last_prompt


def test_generate_draft_fills_defaults() -> None:
    llm = StubLLM('{"body": "Thanks!", "confidence": 7}')

    draft = asyncio.run(DraftingService(llm).generate_draft(_sample_email()))

    assert draft.subject == "Re: Project update"
    assert draft.tone == "professional"
    assert draft.reasoning is None
    assert draft.confidence == DEFAULT_CONFIDENCE


@pytest.mark.parametrize(
    "confidence, expected",
    [(0, 0.0), (0.0, 0.0), (1, 1.0), (-0.1, DEFAULT_CONFIDENCE), (1.5, DEFAULT_CONFIDENCE)],
)
def test_generate_draft_confidence_bounds(confidence: float, expected: float) -> None:
    llm = StubLLM(f'{{"body": "Thanks!", "confidence": {confidence}}}')

    draft = asyncio.run(DraftingService(llm).generate_draft(_sample_email()))

    assert draft.confidence == expected


@pytest.mark.parametrize("response", ["no json here", '{"subject": "x"}', '{"body": "  "}'])
def test_generate_draft_rejects_unusable_output(response: str) -> None:
    with pytest.raises(DraftingError):
        asyncio.run(DraftingService(StubLLM(response)).generate_draft(_sample_email()))


def test_generate_draft_raises_when_llm_fails() -> None:
    with pytest.raises(DraftingError):
        asyncio.run(DraftingService(FailingLLM()).generate_draft(_sample_email()))
