"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from .models import (
    ChatTurn,
    Completion,
    GenerationConfig,
    MailCredential,
    OutgoingMail,
    SendReceipt,
)

Row = dict[str, Any]


class StoreError(RuntimeError):
    """Raised when the row store rejects a query."""


class LLMClient(Protocol):
    """Minimal generative-text client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    async def complete(
        self, prompt: str, config: GenerationConfig | None = None
    ) -> Completion:
        """Return the completion for ``prompt``."""
        raise NotImplementedError

    async def chat(self, message: str, history: Sequence[ChatTurn] = ()) -> str:
        """Return the model reply to ``message`` given prior turns."""
        raise NotImplementedError


class RowStore(Protocol):
    """Row-oriented persistence used by the core."""

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        """Insert ``row`` and return it with generated columns."""
        raise NotImplementedError

    async def insert_ignore(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Row | None:
        """Insert unless a row with the same ``conflict_keys`` exists."""
        raise NotImplementedError

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows matching every equality filter."""
        raise NotImplementedError

    async def update(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> Row | None:
        """Apply ``patch`` to matching rows and return the first one."""
        raise NotImplementedError

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""
        raise NotImplementedError


class StoreGateway(Protocol):
    """Hands out row stores at the two supported access levels."""

    @property
    def admin(self) -> RowStore:
        """Store bypassing per-user row visibility."""
        raise NotImplementedError

    def for_user(self, user_id: str, access_token: str | None = None) -> RowStore:
        """Store restricted to rows owned by ``user_id``."""
        raise NotImplementedError


class Authenticator(Protocol):
    """Resolves a bearer token into a user identifier."""

    async def authenticate(self, token: str) -> str | None:
        """Return the user id for ``token`` or ``None`` when invalid."""
        raise NotImplementedError


class MailTransport(Protocol):
    """Outbound mail submission."""

    async def send(
        self, credential: MailCredential, message: OutgoingMail
    ) -> SendReceipt:
        """Submit ``message`` using ``credential``."""
        raise NotImplementedError

    async def verify(self, credential: MailCredential) -> None:
        """Connect and authenticate without sending anything."""
        raise NotImplementedError


class MailboxReader(Protocol):
    """Inbound mailbox access."""

    async def fetch_recent(
        self, credential: MailCredential, mailbox: str, limit: int
    ) -> list[bytes]:
        """Return raw RFC822 payloads for the newest ``limit`` messages."""
        raise NotImplementedError


class DocumentRenderer(Protocol):
    """Writes paginated documents to disk."""

    async def render(
        self,
        content: str,
        output_path: Path,
        *,
        title: str | None = None,
        author: str | None = None,
    ) -> Path:
        """Render ``content`` to ``output_path`` and return the path."""
        raise NotImplementedError


class PageScraper(Protocol):
    """Fetches a page and extracts text from it."""

    async def scrape(
        self, url: str, selectors: Mapping[str, str] | None = None
    ) -> dict[str, Any]:
        """Return selector groups, or full text and HTML without selectors."""
        raise NotImplementedError


__all__ = [
    "Authenticator",
    "DocumentRenderer",
    "LLMClient",
    "MailTransport",
    "MailboxReader",
    "PageScraper",
    "Row",
    "RowStore",
    "StoreError",
    "StoreGateway",
]
