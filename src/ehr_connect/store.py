"""Persistence contract consumed by the integration layer.

The real store (Postgres, Supabase, ...) lives outside this package. What
the integration layer needs from it is small:

- ``insert``/``upsert`` keyed on a caller-supplied unique tuple
- point reads by key and filtered selects
- single-row and predicate (range) deletes

Every operation is atomic at the single-row level. :class:`InMemoryStore`
implements the contract for local development and tests.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from typing import Any, Protocol

from ehr_connect.models import utcnow

Key = tuple[Any, ...]
Row = dict[str, Any]
Predicate = Callable[[Row], bool]

# Table names, shared with the SQL schema of the hosted deployment
CREDENTIALS_TABLE = "epic_tokens"
SNAPSHOTS_TABLE = "epic_patient_data"
AUDIT_TABLE = "epic_audit_log"


class Store(Protocol):
    async def insert(self, table: str, key: Key, record: Row) -> None: ...

    async def upsert(self, table: str, key: Key, record: Row) -> None: ...

    async def get(self, table: str, key: Key) -> Row | None: ...

    async def select(
        self, table: str, predicate: Predicate | None = None
    ) -> list[Row]: ...

    async def delete(self, table: str, key: Key) -> bool: ...

    async def delete_where(self, table: str, predicate: Predicate) -> int: ...


class DuplicateKeyError(Exception):
    """Raised by insert() when the key already exists."""


class InMemoryStore:
    """Dict-backed implementation of :class:`Store`.

    Rows are copied on the way in and out, so callers can never mutate
    stored state by accident. Upserts merge over an existing row (columns
    omitted from *record* keep their stored values) and stamp
    ``created_at`` on first insert, mirroring ``ON CONFLICT DO UPDATE``
    with a ``DEFAULT now()`` column.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[Key, Row]] = {}
        self._lock = asyncio.Lock()

    def _table(self, table: str) -> dict[Key, Row]:
        return self._tables.setdefault(table, {})

    async def insert(self, table: str, key: Key, record: Row) -> None:
        async with self._lock:
            rows = self._table(table)
            if key in rows:
                raise DuplicateKeyError(f"{table}: duplicate key {key!r}")
            rows[key] = {"created_at": utcnow(), **copy.deepcopy(record)}

    async def upsert(self, table: str, key: Key, record: Row) -> None:
        async with self._lock:
            rows = self._table(table)
            existing = rows.get(key)
            if existing is None:
                rows[key] = {"created_at": utcnow(), **copy.deepcopy(record)}
            else:
                rows[key] = {**existing, **copy.deepcopy(record)}

    async def get(self, table: str, key: Key) -> Row | None:
        async with self._lock:
            row = self._table(table).get(key)
            return copy.deepcopy(row) if row is not None else None

    async def select(self, table: str, predicate: Predicate | None = None) -> list[Row]:
        async with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._table(table).values()
                if predicate is None or predicate(row)
            ]

    async def delete(self, table: str, key: Key) -> bool:
        async with self._lock:
            return self._table(table).pop(key, None) is not None

    async def delete_where(self, table: str, predicate: Predicate) -> int:
        async with self._lock:
            rows = self._table(table)
            doomed = [key for key, row in rows.items() if predicate(row)]
            for key in doomed:
                del rows[key]
            return len(doomed)
