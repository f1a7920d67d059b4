"""Generative-text client abstractions used by the agent and inbox triage."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from office_agent.core.config import LlmSettings
from office_agent.core.interfaces import LLMClient
from office_agent.core.models import ChatTurn, Completion, GenerationConfig

LOGGER = logging.getLogger(__name__)

_MODEL_ROLES = frozenset({"assistant", "model", "agent", "ai"})


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


@dataclass(slots=True)
class GeminiClient:
    """Async client for the Gemini ``generateContent`` REST endpoint."""

    settings: LlmSettings
    transport: httpx.AsyncBaseTransport | None = None

    async def complete(
        self, prompt: str, config: GenerationConfig | None = None
    ) -> Completion:
        """Send a single-turn prompt and return the candidate text."""
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        return await self._generate(contents, config)

    async def chat(self, message: str, history: Sequence[ChatTurn] = ()) -> str:
        """Send ``message`` after replaying ``history`` as prior turns."""
        contents: list[dict[str, Any]] = [
            {"role": _gemini_role(turn.role), "parts": [{"text": turn.text}]}
            for turn in history
            if turn.text
        ]
        contents.append({"role": "user", "parts": [{"text": message}]})
        completion = await self._generate(contents, None)
        return completion.text

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"gemini:{self.settings.model}"

    async def _generate(
        self, contents: list[dict[str, Any]], config: GenerationConfig | None
    ) -> Completion:
        if not self.settings.api_key:
            raise LLMError(
                "AI API credentials not configured; set OFFICE_AGENT_LLM__API_KEY"
            )
        endpoint = _resolve_endpoint(
            self.settings.base_url,
            f"v1beta/models/{self.settings.model}:generateContent",
        )
        payload = {
            "contents": contents,
            "generationConfig": _generation_config(self.settings, config),
        }
        data = await _post_json(
            endpoint,
            payload,
            headers={"x-goog-api-key": self.settings.api_key},
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
        )

        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            LOGGER.warning("Prompt blocked by provider: %s", feedback["blockReason"])
            return Completion(text="", token_usage=None)

        usage = (data.get("usageMetadata") or {}).get("totalTokenCount")
        candidates = data.get("candidates") or []
        if not candidates:
            return Completion(text="", token_usage=usage)
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(
            part.get("text", "") for part in parts if isinstance(part, dict)
        )
        if not text and candidates[0].get("finishReason") == "SAFETY":
            LOGGER.warning("Completion withheld by provider safety filter")
        return Completion(text=text, token_usage=usage)


@dataclass(slots=True)
class OllamaClient:
    """Async client for the Ollama HTTP API."""

    settings: LlmSettings
    transport: httpx.AsyncBaseTransport | None = None

    async def complete(
        self, prompt: str, config: GenerationConfig | None = None
    ) -> Completion:
        """Send a completion request to the Ollama server."""
        endpoint = _resolve_endpoint(self.settings.base_url, "api/generate")
        payload: dict[str, object] = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "options": _ollama_options(self.settings, config),
        }
        data = await _post_json(
            endpoint,
            payload,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
        )
        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        usage = _sum_counts(data.get("prompt_eval_count"), data.get("eval_count"))
        return Completion(text=result, token_usage=usage)

    async def chat(self, message: str, history: Sequence[ChatTurn] = ()) -> str:
        """Send a chat request replaying ``history`` before ``message``."""
        endpoint = _resolve_endpoint(self.settings.base_url, "api/chat")
        messages = [
            {
                "role": "assistant" if turn.role in _MODEL_ROLES else "user",
                "content": turn.text,
            }
            for turn in history
            if turn.text
        ]
        messages.append({"role": "user", "content": message})
        payload: dict[str, object] = {
            "model": self.settings.model,
            "messages": messages,
            "stream": False,
            "options": _ollama_options(self.settings, None),
        }
        data = await _post_json(
            endpoint,
            payload,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
        )
        content = (data.get("message") or {}).get("content")
        if not isinstance(content, str):
            raise LLMError("LLM response missing 'message.content' field")
        return content

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self.settings.model}"


def build_llm_client(settings: LlmSettings) -> LLMClient:
    """Return the client matching ``settings.provider``."""
    if settings.provider == "ollama":
        return OllamaClient(settings)
    return GeminiClient(settings)


async def _post_json(
    endpoint: str,
    payload: dict[str, Any],
    *,
    timeout: float,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(endpoint, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPError as exc:
        raise LLMError(f"LLM request failed: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise LLMError("LLM returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise LLMError("LLM returned an unexpected payload")
    return data


def _generation_config(
    settings: LlmSettings, config: GenerationConfig | None
) -> dict[str, Any]:
    temperature = settings.temperature
    max_tokens = settings.max_output_tokens
    if config is not None:
        if config.temperature is not None:
            temperature = config.temperature
        if config.max_output_tokens is not None:
            max_tokens = config.max_output_tokens
    result: dict[str, Any] = {"temperature": temperature}
    if max_tokens is not None:
        result["maxOutputTokens"] = max_tokens
    return result


def _ollama_options(
    settings: LlmSettings, config: GenerationConfig | None
) -> dict[str, Any]:
    generation = _generation_config(settings, config)
    options: dict[str, Any] = {"temperature": generation["temperature"]}
    if "maxOutputTokens" in generation:
        options["num_predict"] = generation["maxOutputTokens"]
    return options


def _gemini_role(role: str) -> str:
    return "model" if role.lower() in _MODEL_ROLES else "user"


def _sum_counts(*values: object) -> int | None:
    counts = [value for value in values if isinstance(value, int)]
    return sum(counts) if counts else None


def _resolve_endpoint(base_url: str, path: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    return urljoin(trimmed, path)


__all__ = [
    "GeminiClient",
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "build_llm_client",
]
