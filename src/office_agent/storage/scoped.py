"""Per-user views over a row store."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..core.interfaces import Row, RowStore


@dataclass(slots=True)
class ScopedRowStore:
    """Filter every query by ``user_id`` and stamp it on every insert."""

    inner: RowStore
    user_id: str

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        return await self.inner.insert(table, self._stamp(row))

    async def insert_ignore(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Row | None:
        keys = tuple(conflict_keys)
        if "user_id" not in keys:
            keys = ("user_id", *keys)
        return await self.inner.insert_ignore(table, self._stamp(row), keys)

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        return await self.inner.select(
            table,
            self._scope(filters),
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    async def update(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> Row | None:
        safe_patch = {key: value for key, value in patch.items() if key != "user_id"}
        return await self.inner.update(table, self._scope(filters), safe_patch)

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        return await self.inner.delete(table, self._scope(filters))

    def _stamp(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return {**dict(row), "user_id": self.user_id}

    def _scope(self, filters: Mapping[str, Any] | None) -> dict[str, Any]:
        return {**dict(filters or {}), "user_id": self.user_id}


__all__ = ["ScopedRowStore"]
