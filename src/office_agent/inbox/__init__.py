"""Inbox triage pipeline."""

from .triage import (
    DRAFT_TRANSITIONS,
    DraftNotFoundError,
    DraftStateError,
    InboxError,
    InboxTriagePipeline,
)

__all__ = [
    "DRAFT_TRANSITIONS",
    "DraftNotFoundError",
    "DraftStateError",
    "InboxError",
    "InboxTriagePipeline",
]
