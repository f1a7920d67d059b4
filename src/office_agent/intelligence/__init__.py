"""Generative-text clients and the services built on them."""

from .classifier import ClassificationService, default_classification
from .decoding import decode_json_object, strip_code_fences
from .drafter import DraftingError, DraftingService
from .llm import GeminiClient, LLMError, OllamaClient, build_llm_client

__all__ = [
    "ClassificationService",
    "DraftingError",
    "DraftingService",
    "GeminiClient",
    "LLMError",
    "OllamaClient",
    "build_llm_client",
    "decode_json_object",
    "default_classification",
    "strip_code_fences",
]
