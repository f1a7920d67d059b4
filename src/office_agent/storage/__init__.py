"""Row store backends and the gateway handing them out."""

from __future__ import annotations

import logging

from ..core.config import StorageSettings
from ..core.interfaces import Authenticator, RowStore, StoreGateway
from .scoped import ScopedRowStore
from .sqlite import SqliteRowStore
from .supabase_store import SupabaseAuthenticator, SupabaseGateway

LOGGER = logging.getLogger(__name__)


class SqliteGateway:
    """Single local database serving both access levels."""

    def __init__(self, store: SqliteRowStore) -> None:
        self._store = store

    @property
    def admin(self) -> RowStore:
        return self._store

    def for_user(self, user_id: str, access_token: str | None = None) -> RowStore:
        return ScopedRowStore(self._store, user_id)

    def close(self) -> None:
        self._store.close()


class TrustingAuthenticator:
    """Local development authenticator: the bearer token is the user id."""

    async def authenticate(self, token: str) -> str | None:
        token = token.strip()
        return token or None


def build_store_gateway(settings: StorageSettings) -> StoreGateway:
    """Return the gateway for the configured storage backend."""
    if settings.backend == "supabase":
        LOGGER.info("Using Supabase storage at %s", settings.supabase_url)
        return SupabaseGateway(settings)
    LOGGER.info("Using SQLite storage at %s", settings.db_path)
    return SqliteGateway(SqliteRowStore(settings))


def build_authenticator(gateway: StoreGateway) -> Authenticator:
    """Return the authenticator matching ``gateway``'s backend."""
    if isinstance(gateway, SqliteGateway):
        return TrustingAuthenticator()
    if isinstance(gateway, SupabaseGateway):
        return SupabaseAuthenticator(gateway.client)
    raise TypeError(f"No authenticator for {type(gateway).__name__}")


__all__ = [
    "ScopedRowStore",
    "SqliteGateway",
    "SqliteRowStore",
    "SupabaseAuthenticator",
    "SupabaseGateway",
    "TrustingAuthenticator",
    "build_authenticator",
    "build_store_gateway",
]
