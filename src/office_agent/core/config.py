"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class LlmSettings(BaseModel):
    """Settings for the generative-text provider."""

    provider: Literal["gemini", "ollama"] = Field(
        default="gemini", description="Backend used for completions"
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Provider base URL",
    )
    api_key: str | None = Field(default=None, description="Provider API key")
    model: str = Field(default="gemini-1.5-flash", description="Model identifier")
    timeout_seconds: int = Field(
        default=30, ge=1, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=1000,
        ge=32,
        description="Maximum tokens to request from the provider",
    )


class InboxSettings(BaseModel):
    """Settings controlling inbox scans."""

    mailbox: str = Field(default="INBOX", description="Mailbox to scan")
    scan_limit: int = Field(
        default=20, ge=1, description="Newest messages inspected per scan"
    )
    classify_body_chars: int = Field(
        default=1000, ge=1, description="Body characters sent for classification"
    )
    draft_body_chars: int = Field(
        default=1500, ge=1, description="Body characters sent for drafting"
    )
    timeout_seconds: int = Field(
        default=30, ge=1, description="Socket timeout for IMAP and SMTP sessions"
    )


class StorageSettings(BaseModel):
    """Settings for persistence."""

    backend: Literal["supabase", "sqlite"] = Field(
        default="supabase", description="Row store backend"
    )
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_anon_key: str | None = Field(
        default=None, description="Anon key used for per-user access"
    )
    supabase_service_key: str | None = Field(
        default=None, description="Service role key bypassing row-level security"
    )
    db_path: Path = Field(
        default=Path("./office_agent.db"), description="SQLite database path"
    )


class SecuritySettings(BaseModel):
    """Settings for credential encryption."""

    encryption_key: str | None = Field(
        default=None, description="64 hex characters (AES-256 key)"
    )


class DocumentSettings(BaseModel):
    """Settings for generated documents."""

    output_dir: Path = Field(
        default=Path("./uploads/pdfs"), description="Directory for generated PDFs"
    )
    author: str = Field(default="Office Agent", description="PDF author metadata")


class ScraperSettings(BaseModel):
    """Settings for web page scraping."""

    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        description="User-Agent header sent with page requests",
    )
    timeout_seconds: int = Field(default=30, ge=1, description="Fetch timeout")
    preview_chars: int = Field(
        default=500, ge=0, description="Result characters echoed back to the user"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    llm: LlmSettings = Field(default_factory=LlmSettings)
    inbox: InboxSettings = Field(default_factory=InboxSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    documents: DocumentSettings = Field(default_factory=DocumentSettings)
    scraper: ScraperSettings = Field(default_factory=ScraperSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "OFFICE_AGENT_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, str] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(
        env_file, include_environment=include_environment
    )
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "DocumentSettings",
    "InboxSettings",
    "LlmSettings",
    "LoggingSettings",
    "ScraperSettings",
    "SecuritySettings",
    "StorageSettings",
    "load_app_settings",
]
