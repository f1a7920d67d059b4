"""Decoder for JSON objects embedded in model replies."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\n?")


def strip_code_fences(raw: str) -> str:
    """Remove Markdown code-fence markers surrounding a reply."""
    return _FENCE_PATTERN.sub("", raw.strip()).strip()


def decode_json_object(
    raw: str | None, required_keys: Iterable[str] = ()
) -> dict[str, Any] | None:
    """Return the JSON object in ``raw`` or ``None`` when it cannot be used.

    ``None`` is returned for empty replies, invalid JSON, non-object
    payloads and objects missing any of ``required_keys``.
    """
    if not raw or not raw.strip():
        return None
    try:
        payload = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    if any(key not in payload for key in required_keys):
        return None
    return payload


__all__ = ["decode_json_object", "strip_code_fences"]
