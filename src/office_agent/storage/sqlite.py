"""SQLite-backed row store used for local development and tests."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import TracebackType
from typing import Any

from ..core.config import StorageSettings
from ..core.datetime_utils import utc_now_iso
from ..core.interfaces import Row, StoreError

LOGGER = logging.getLogger(__name__)

_COLUMN_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqliteRowStore:
    """Persist rows as JSON documents in a single SQLite table.

    Every logical table shares the ``rows`` table; ``id`` is the SQLite row id
    and every other column lives inside the JSON document. Blocking calls run
    on worker threads and are serialised by a lock.
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Open the database and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteRowStore:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # RowStore API ------------------------------------------------------------
    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        return await self._run(self._insert, table, row)

    async def insert_ignore(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Row | None:
        return await self._run(self._insert_ignore, table, row, conflict_keys)

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        return await self._run(
            self._select, table, filters or {}, order_by, descending, limit
        )

    async def update(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> Row | None:
        return await self._run(self._update, table, filters, patch)

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        return await self._run(self._delete, table, filters)

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._connection.close()

    async def _run(self, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite query failed: {exc}") from exc

    # Blocking implementations ------------------------------------------------
    def _insert(self, table: str, row: Mapping[str, Any]) -> Row:
        with self._lock, self._connection:
            return self._insert_locked(table, row)

    def _insert_ignore(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Row | None:
        with self._lock, self._connection:
            key = {name: row.get(name) for name in conflict_keys}
            if self._select_locked(table, key, None, False, 1):
                LOGGER.debug("Skipping duplicate %s row for %s", table, key)
                return None
            return self._insert_locked(table, row)

    def _select(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[Row]:
        with self._lock, self._connection:
            return self._select_locked(table, filters, order_by, descending, limit)

    def _update(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> Row | None:
        with self._lock, self._connection:
            matches = self._select_locked(table, filters, None, False, None)
            updated: list[Row] = []
            for current in matches:
                merged = {**current, **dict(patch), "id": current["id"]}
                self._connection.execute(
                    "UPDATE rows SET data = ? WHERE id = ?",
                    (_dump(merged), current["id"]),
                )
                updated.append(merged)
            return updated[0] if updated else None

    def _delete(self, table: str, filters: Mapping[str, Any]) -> int:
        with self._lock, self._connection:
            where, params = _where_clause(table, filters)
            cursor = self._connection.execute(f"DELETE FROM rows WHERE {where}", params)
            return cursor.rowcount

    def _insert_locked(self, table: str, row: Mapping[str, Any]) -> Row:
        data = {key: value for key, value in row.items() if key != "id"}
        data.setdefault("created_at", utc_now_iso())
        cursor = self._connection.execute(
            "INSERT INTO rows (table_name, data, created_at) VALUES (?, ?, ?)",
            (table, _dump(data), data["created_at"]),
        )
        return {"id": cursor.lastrowid, **data}

    def _select_locked(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[Row]:
        where, params = _where_clause(table, filters)
        sql = f"SELECT id, data FROM rows WHERE {where}"
        direction = "DESC" if descending else "ASC"
        if order_by:
            sql += f" ORDER BY {_column_expr(order_by)} {direction}, id {direction}"
        else:
            sql += " ORDER BY id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        cursor = self._connection.execute(sql, params)
        return [{**json.loads(record["data"]), "id": record["id"]} for record in cursor]

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            try:
                with self._connection:
                    self._connection.executescript(script)
            except sqlite3.Error as exc:
                raise StoreError(f"Migration {migration.name} failed: {exc}") from exc


def _dump(data: Mapping[str, Any]) -> str:
    return json.dumps(data, default=str)


def _column_expr(name: str) -> str:
    if not _COLUMN_PATTERN.match(name):
        raise StoreError(f"Invalid column name: {name!r}")
    if name == "id":
        return "id"
    return f"json_extract(data, '$.{name}')"


def _where_clause(table: str, filters: Mapping[str, Any]) -> tuple[str, list[Any]]:
    clauses = ["table_name = ?"]
    params: list[Any] = [table]
    for name, value in filters.items():
        expr = _column_expr(name)
        if value is None:
            clauses.append(f"{expr} IS NULL")
            continue
        if name == "id":
            try:
                value = int(value)
            except (TypeError, ValueError):
                # Non-numeric ids never match.
                clauses.append("0")
                continue
        elif isinstance(value, (dict, list)):
            value = json.dumps(value)
        clauses.append(f"{expr} = ?")
        params.append(value)
    return " AND ".join(clauses), params


__all__ = ["SqliteRowStore"]
