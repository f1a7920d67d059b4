"""Tests for the generative-text HTTP clients."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from office_agent.core.config import LlmSettings
from office_agent.core.models import ChatTurn
from office_agent.intelligence import GeminiClient, LLMError, OllamaClient, build_llm_client


def _gemini_reply(text: str) -> dict[str, object]:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"totalTokenCount": 42},
    }


def test_gemini_complete_posts_prompt_and_reads_candidate() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_gemini_reply("hello"))

    settings = LlmSettings(api_key="secret", model="gemini-test")
    client = GeminiClient(settings, transport=httpx.MockTransport(handler))

    completion = asyncio.run(client.complete("Say hello"))

    assert completion.text == "hello"
    assert completion.token_usage == 42
    request = seen[0]
    assert request.url.path.endswith("/v1beta/models/gemini-test:generateContent")
    assert request.headers["x-goog-api-key"] == "secret"
    body = json.loads(request.content)
    assert body["contents"] == [{"role": "user", "parts": [{"text": "Say hello"}]}]
    assert body["generationConfig"]["temperature"] == 0.7


def test_gemini_chat_maps_history_roles() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json=_gemini_reply("sure"))

    client = GeminiClient(
        LlmSettings(api_key="secret"), transport=httpx.MockTransport(handler)
    )
    history = [ChatTurn(role="user", text="hi"), ChatTurn(role="assistant", text="hey")]

    reply = asyncio.run(client.chat("help me", history))

    assert reply == "sure"
    roles = [turn["role"] for turn in captured["contents"]]  # type: ignore[index]
    assert roles == ["user", "model", "user"]


def test_gemini_requires_api_key() -> None:
    client = GeminiClient(LlmSettings(api_key=None))

    with pytest.raises(LLMError):
        asyncio.run(client.complete("anything"))


def test_http_errors_become_llm_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    client = GeminiClient(
        LlmSettings(api_key="secret"), transport=httpx.MockTransport(handler)
    )

    with pytest.raises(LLMError):
        asyncio.run(client.complete("anything"))


def test_ollama_complete_reads_response_field() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/generate"
        payload = json.loads(request.content)
        assert payload["stream"] is False
        return httpx.Response(
            200, json={"response": "ok", "prompt_eval_count": 3, "eval_count": 4}
        )

    settings = LlmSettings(provider="ollama", base_url="http://ollama.test", model="llama3")
    client = OllamaClient(settings, transport=httpx.MockTransport(handler))

    completion = asyncio.run(client.complete("prompt"))

    assert completion.text == "ok"
    assert completion.token_usage == 7


def test_build_llm_client_selects_provider() -> None:
    assert isinstance(build_llm_client(LlmSettings(provider="ollama")), OllamaClient)
    assert isinstance(build_llm_client(LlmSettings()), GeminiClient)
