"""Tests for decoding JSON objects out of model replies."""

from __future__ import annotations

import pytest

from office_agent.intelligence import decode_json_object, strip_code_fences


def test_strip_code_fences_removes_json_fence() -> None:
    raw = '```json\n{"tool": "conversation"}\n```'

    assert strip_code_fences(raw) == '{"tool": "conversation"}'


def test_decode_json_object_accepts_fenced_reply() -> None:
    raw = '```\n{"tool": "send_email", "reasoning": "r", "parameters": {}}\n```'

    payload = decode_json_object(raw, ("tool", "reasoning", "parameters"))

    assert payload == {"tool": "send_email", "reasoning": "r", "parameters": {}}


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "   ",
        "Sorry, I cannot help with that.",
        "[1, 2, 3]",
        '{"tool": "send_email"}',
    ],
)
def test_decode_json_object_rejects_unusable_replies(raw: str | None) -> None:
    assert decode_json_object(raw, ("tool", "reasoning", "parameters")) is None
