"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "ensure_utc",
    "serialize_datetime",
    "utc_now",
    "utc_now_iso",
]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def utc_now_iso() -> str:
    """Return the current UTC time in ISO 8601 form for row timestamps."""
    return utc_now().isoformat()


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` converted to UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to ISO 8601 in UTC."""
    normalized = ensure_utc(value)
    if normalized is None:
        return None
    return normalized.isoformat()
