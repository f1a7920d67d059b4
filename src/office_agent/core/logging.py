"""Logging configuration helpers."""

from __future__ import annotations

import logging
import logging.config
import re
from typing import Any

from .config import LoggingSettings

_SECRET_PATTERNS = (
    re.compile(r"(?i)(password\s*[=:]\s*)([^\s,;]+)"),
    re.compile(r'(?i)("(?:\w*_)?password"\s*:\s*")([^"]*)(")'),
)


class SecretRedactingFilter(logging.Filter):
    """Mask password fragments before a record reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern in _SECRET_PATTERNS:
            redacted = pattern.sub(_mask, redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _mask(match: re.Match[str]) -> str:
    groups = match.groups()
    suffix = groups[2] if len(groups) > 2 else ""
    return f"{groups[0]}***{suffix}"


def _structured_formatter() -> dict[str, Any]:
    """Return a dictConfig fragment for structured JSON logs."""
    return {
        "format": "{asctime} {levelname} {name} {message}",
        "style": "{",
    }


def _plain_formatter() -> dict[str, Any]:
    """Return a dictConfig fragment for human readable logs."""
    return {
        "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    formatter = _structured_formatter() if settings.structured else _plain_formatter()

    dict_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact_secrets": {"()": SecretRedactingFilter},
        },
        "formatters": {
            "default": formatter,
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["redact_secrets"],
                "level": settings.level,
            },
        },
        "root": {
            "handlers": ["console"],
            "level": settings.level,
        },
    }

    logging.config.dictConfig(dict_config)


__all__ = ["SecretRedactingFilter", "configure_logging"]
