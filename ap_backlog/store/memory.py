from __future__ import annotations

import asyncio
import copy
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from ap_backlog.store.base import Filter, Row, matches, sort_rows

T = TypeVar("T")


class MemoryStore:
    """In-process store used by tests and single-node deployments.

    Transactions hold a lock for their whole body and restore a snapshot
    when the body raises.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._lock = asyncio.Lock()
        # Test hook: called with (operation, table) before each write.
        self.before_write: Optional[Callable[[str, str], None]] = None

    def _table(self, table: str) -> Dict[str, Row]:
        return self._tables.setdefault(table, {})

    def _check_write(self, operation: str, table: str) -> None:
        if self.before_write is not None:
            self.before_write(operation, table)

    # -- unlocked primitives -------------------------------------------------

    def _insert_one(self, table: str, row: Row) -> str:
        row = copy.deepcopy(dict(row))
        row_id = str(row.pop("id", None) or uuid.uuid4().hex)
        self._table(table)[row_id] = row
        return row_id

    def _get(self, table: str, row_id: str) -> Optional[Row]:
        row = self._table(table).get(row_id)
        if row is None:
            return None
        return {"id": row_id, **copy.deepcopy(row)}

    def _matching(self, table: str, filter: Optional[Filter]) -> List[Row]:
        return [
            {"id": row_id, **copy.deepcopy(row)}
            for row_id, row in self._table(table).items()
            if matches({"id": row_id, **row}, filter)
        ]

    def _patch(self, table: str, row_id: str, patch: Row) -> None:
        stored = self._table(table).get(row_id)
        if stored is not None:
            stored.update(copy.deepcopy({k: v for k, v in patch.items() if k != "id"}))

    # -- Store ---------------------------------------------------------------

    async def insert(self, table: str, rows: Sequence[Row]) -> List[str]:
        async with self._lock:
            self._check_write("insert", table)
            return [self._insert_one(table, row) for row in rows]

    async def update(self, table: str, patch: Row, filter: Filter) -> int:
        async with self._lock:
            self._check_write("update", table)
            targets = self._matching(table, filter)
            for row in targets:
                self._patch(table, row["id"], patch)
            return len(targets)

    async def delete(self, table: str, filter: Filter) -> int:
        async with self._lock:
            self._check_write("delete", table)
            targets = self._matching(table, filter)
            for row in targets:
                self._table(table).pop(row["id"], None)
            return len(targets)

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        async with self._lock:
            return self._get(table, row_id)

    async def select(
        self,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
        range_start: int = 0,
        range_end: Optional[int] = None,
    ) -> Tuple[List[Row], int]:
        async with self._lock:
            rows = sort_rows(self._matching(table, filter), order)
        total = len(rows)
        stop = None if range_end is None else range_end + 1
        return rows[range_start:stop], total

    async def run_transaction(self, fn: Callable[["MemoryTransaction"], Awaitable[T]]) -> T:
        async with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                return await fn(MemoryTransaction(self))
            except BaseException:
                self._tables = snapshot
                raise


class MemoryTransaction:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        return self._store._get(table, row_id)

    async def select(
        self,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        return sort_rows(self._store._matching(table, filter), order)

    async def insert(self, table: str, row: Row) -> str:
        self._store._check_write("insert", table)
        return self._store._insert_one(table, row)

    async def update(self, table: str, row_id: str, patch: Row) -> None:
        self._store._check_write("update", table)
        self._store._patch(table, row_id, patch)
