"""Row store and authentication backed by a hosted Supabase project."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from supabase import Client, create_client

from ..core.config import StorageSettings
from ..core.interfaces import Row, RowStore, StoreError
from .scoped import ScopedRowStore

LOGGER = logging.getLogger(__name__)


class SupabaseRowStore:
    """PostgREST tables accessed through the Supabase client."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        rows = await self._execute(lambda: self._client.table(table).insert(dict(row)))
        if not rows:
            raise StoreError(f"Insert into {table} returned no row")
        return rows[0]

    async def insert_ignore(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Row | None:
        rows = await self._execute(
            lambda: self._client.table(table).upsert(
                dict(row), on_conflict=",".join(conflict_keys), ignore_duplicates=True
            )
        )
        return rows[0] if rows else None

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        def build() -> Any:
            query = _apply_filters(self._client.table(table).select("*"), filters or {})
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit is not None:
                query = query.limit(limit)
            return query

        return await self._execute(build)

    async def update(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> Row | None:
        rows = await self._execute(
            lambda: _apply_filters(self._client.table(table).update(dict(patch)), filters)
        )
        return rows[0] if rows else None

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        rows = await self._execute(
            lambda: _apply_filters(self._client.table(table).delete(), filters)
        )
        return len(rows)

    async def _execute(self, build: Callable[[], Any]) -> list[Row]:
        def run() -> list[Row]:
            response = build().execute()
            return list(response.data or [])

        try:
            return await asyncio.to_thread(run)
        except Exception as exc:  # pylint: disable=broad-except
            raise StoreError(f"Supabase query failed: {exc}") from exc


def _apply_filters(query: Any, filters: Mapping[str, Any]) -> Any:
    for name, value in filters.items():
        if value is None:
            query = query.is_(name, "null")
        else:
            query = query.eq(name, value)
    return query


class SupabaseGateway:
    """Service-role store for system writes and RLS-scoped stores for users."""

    def __init__(self, settings: StorageSettings) -> None:
        if not settings.supabase_url or not settings.supabase_service_key:
            raise StoreError(
                "Supabase storage requires OFFICE_AGENT_STORAGE__SUPABASE_URL and "
                "OFFICE_AGENT_STORAGE__SUPABASE_SERVICE_KEY"
            )
        self._settings = settings
        self._admin_client = create_client(
            settings.supabase_url, settings.supabase_service_key
        )
        self._admin = SupabaseRowStore(self._admin_client)

    @property
    def admin(self) -> RowStore:
        return self._admin

    @property
    def client(self) -> Client:
        return self._admin_client

    def for_user(self, user_id: str, access_token: str | None = None) -> RowStore:
        """Return a store that only ever sees rows owned by ``user_id``.

        With an access token the caller's JWT is forwarded so row-level
        security applies as well; without one the service-role client is
        filtered explicitly.
        """
        if access_token and self._settings.supabase_anon_key:
            client = create_client(
                self._settings.supabase_url, self._settings.supabase_anon_key
            )
            client.postgrest.auth(access_token)
            return ScopedRowStore(SupabaseRowStore(client), user_id)
        return ScopedRowStore(self._admin, user_id)


class SupabaseAuthenticator:
    """Resolve Supabase JWTs into user ids."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def authenticate(self, token: str) -> str | None:
        try:
            response = await asyncio.to_thread(self._client.auth.get_user, token)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.info("Rejected bearer token: %s", exc)
            return None
        user = getattr(response, "user", None)
        return str(user.id) if user is not None else None


__all__ = ["SupabaseAuthenticator", "SupabaseGateway", "SupabaseRowStore"]
