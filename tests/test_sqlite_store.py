"""Tests for the SQLite row store and per-user scoping."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from office_agent.core.config import StorageSettings
from office_agent.core.interfaces import StoreError
from office_agent.storage import (
    ScopedRowStore,
    SqliteGateway,
    SqliteRowStore,
    TrustingAuthenticator,
    build_authenticator,
    build_store_gateway,
)


@pytest.fixture
def store(tmp_path: Path):
    row_store = SqliteRowStore(StorageSettings(backend="sqlite", db_path=tmp_path / "rows.db"))
    yield row_store
    row_store.close()


def test_insert_select_update_delete(store: SqliteRowStore) -> None:
    async def scenario():
        first = await store.insert("notes", {"title": "a", "done": False, "tags": ["x"]})
        await store.insert("notes", {"title": "b", "done": True})
        await store.insert("other", {"title": "c"})

        pending = await store.select("notes", {"done": False})
        updated = await store.update("notes", {"id": str(first["id"])}, {"done": True})
        remaining = await store.select("notes", {"done": False})
        deleted = await store.delete("notes", {"title": "b"})
        return first, pending, updated, remaining, deleted, await store.select("notes")

    first, pending, updated, remaining, deleted, final = asyncio.run(scenario())

    assert isinstance(first["id"], int)
    assert first["created_at"]
    assert [row["title"] for row in pending] == ["a"]
    assert pending[0]["tags"] == ["x"]
    assert updated is not None and updated["done"] is True and updated["title"] == "a"
    assert remaining == []
    assert deleted == 1
    assert [row["title"] for row in final] == ["a"]


def test_select_orders_and_limits(store: SqliteRowStore) -> None:
    async def scenario():
        for stamp in ("2025-01-02", "2025-01-03", "2025-01-01"):
            await store.insert("mail", {"received_at": stamp})
        return await store.select("mail", order_by="received_at", descending=True, limit=2)

    rows = asyncio.run(scenario())

    assert [row["received_at"] for row in rows] == ["2025-01-03", "2025-01-02"]


def test_insert_ignore_skips_duplicates(store: SqliteRowStore) -> None:
    async def scenario():
        first = await store.insert_ignore(
            "mail", {"user_id": "u1", "message_id": "<1>"}, ("user_id", "message_id")
        )
        second = await store.insert_ignore(
            "mail", {"user_id": "u1", "message_id": "<1>"}, ("user_id", "message_id")
        )
        other_user = await store.insert_ignore(
            "mail", {"user_id": "u2", "message_id": "<1>"}, ("user_id", "message_id")
        )
        return first, second, other_user, await store.select("mail")

    first, second, other_user, rows = asyncio.run(scenario())

    assert first is not None
    assert second is None
    assert other_user is not None
    assert len(rows) == 2


def test_none_filters_match_missing_values(store: SqliteRowStore) -> None:
    async def scenario():
        await store.insert("drafts", {"edited_body": None})
        await store.insert("drafts", {"edited_body": "changed"})
        return await store.select("drafts", {"edited_body": None})

    assert len(asyncio.run(scenario())) == 1


def test_invalid_column_names_are_rejected(store: SqliteRowStore) -> None:
    with pytest.raises(StoreError):
        asyncio.run(store.select("notes", {"title'; DROP TABLE rows; --": "x"}))


def test_scoped_store_isolates_users(store: SqliteRowStore) -> None:
    alice = ScopedRowStore(store, "alice")
    bob = ScopedRowStore(store, "bob")

    async def scenario():
        note = await alice.insert("notes", {"title": "private", "user_id": "bob"})
        hijack = await bob.update("notes", {"id": note["id"]}, {"title": "stolen"})
        moved = await alice.update("notes", {"id": note["id"]}, {"user_id": "bob"})
        removed = await bob.delete("notes", {"id": note["id"]})
        return note, hijack, moved, removed, await alice.select("notes"), await bob.select("notes")

    note, hijack, moved, removed, alice_rows, bob_rows = asyncio.run(scenario())

    assert note["user_id"] == "alice"
    assert hijack is None
    assert moved is not None and moved["user_id"] == "alice"
    assert removed == 0
    assert [row["title"] for row in alice_rows] == ["private"]
    assert bob_rows == []


def test_sqlite_backend_wiring(tmp_path: Path) -> None:
    gateway = build_store_gateway(
        StorageSettings(backend="sqlite", db_path=tmp_path / "wired.db")
    )

    assert isinstance(gateway, SqliteGateway)
    assert isinstance(gateway.for_user("u1"), ScopedRowStore)
    authenticator = build_authenticator(gateway)
    assert isinstance(authenticator, TrustingAuthenticator)
    assert asyncio.run(authenticator.authenticate(" u1 ")) == "u1"
    gateway.close()
