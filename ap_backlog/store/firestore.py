from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ap_backlog import config
from ap_backlog.errors import StoreError
from ap_backlog.store.base import BATCHES, INVOICES, Filter, Row, sort_rows
from ap_backlog.store.paging import chunked

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Firestore limits: 30 values per "in" filter, 500 writes per batch.
_IN_LIMIT = 30
_WRITE_LIMIT = 500


def _collection_names() -> Dict[str, str]:
    return {
        BATCHES: config.FIRESTORE_BATCH_COLLECTION,
        INVOICES: config.FIRESTORE_INVOICE_COLLECTION,
    }


def _is_many(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _to_row(snapshot) -> Row:
    return {"id": snapshot.id, **(snapshot.to_dict() or {})}


class FirestoreStore:
    def __init__(self, client: Optional[firestore.AsyncClient] = None) -> None:
        self._client = client or firestore.AsyncClient(database=config.FIRESTORE_DATABASE)
        self._names = _collection_names()

    def _collection(self, table: str):
        return self._client.collection(self._names.get(table, table))

    def _queries(self, table: str, filter: Optional[Filter]) -> Tuple[list, bool]:
        """Build one query per combination of "in" groups; flag whether results need merging."""
        col = self._collection(table)
        base = col
        split_field = None
        split_values: list = []
        for field, value in (filter or {}).items():
            if _is_many(value):
                values = list(value)
                if not values:
                    return [], False
                if split_field is None and len(values) > _IN_LIMIT:
                    split_field, split_values = field, values
                    continue
                base = base.where(filter=self._field_filter(col, field, "in", values))
            else:
                base = base.where(filter=self._field_filter(col, field, "==", value))

        if split_field is None:
            return [base], False
        queries = [
            base.where(filter=self._field_filter(col, split_field, "in", list(group)))
            for group in chunked(split_values, _IN_LIMIT)
        ]
        return queries, True

    @staticmethod
    def _field_filter(col, field: str, op: str, value: Any) -> FieldFilter:
        if field == "id":
            if op == "in":
                return FieldFilter(firestore.FieldPath.document_id(), op, [col.document(v) for v in value])
            return FieldFilter(firestore.FieldPath.document_id(), op, col.document(value))
        return FieldFilter(field, op, value)

    @staticmethod
    def _ordered(query, order: Optional[Sequence[str]]):
        for key in order or ():
            field = key.lstrip("-")
            direction = firestore.Query.DESCENDING if key.startswith("-") else firestore.Query.ASCENDING
            if field == "id":
                field = firestore.FieldPath.document_id()
            query = query.order_by(field, direction=direction)
        return query

    async def insert(self, table: str, rows: Sequence[Row]) -> List[str]:
        col = self._collection(table)
        ids: List[str] = []
        try:
            for group in chunked(list(rows), _WRITE_LIMIT):
                batch = self._client.batch()
                group_ids = []
                for row in group:
                    data = dict(row)
                    row_id = data.pop("id", None)
                    ref = col.document(row_id) if row_id else col.document()
                    batch.set(ref, data)
                    group_ids.append(ref.id)
                await batch.commit()
                ids.extend(group_ids)
        except GoogleAPICallError as exc:
            raise StoreError(f"Firestore insert into {table} failed: {exc}") from exc
        return ids

    async def _matching_refs(self, table: str, filter: Filter) -> list:
        queries, _ = self._queries(table, filter)
        refs = []
        for query in queries:
            async for snapshot in query.stream():
                refs.append(snapshot.reference)
        return refs

    async def update(self, table: str, patch: Row, filter: Filter) -> int:
        patch = {k: v for k, v in patch.items() if k != "id"}
        try:
            refs = await self._matching_refs(table, filter)
            for group in chunked(refs, _WRITE_LIMIT):
                batch = self._client.batch()
                for ref in group:
                    batch.update(ref, patch)
                await batch.commit()
        except GoogleAPICallError as exc:
            raise StoreError(f"Firestore update of {table} failed: {exc}") from exc
        return len(refs)

    async def delete(self, table: str, filter: Filter) -> int:
        try:
            refs = await self._matching_refs(table, filter)
            for group in chunked(refs, _WRITE_LIMIT):
                batch = self._client.batch()
                for ref in group:
                    batch.delete(ref)
                await batch.commit()
        except GoogleAPICallError as exc:
            raise StoreError(f"Firestore delete from {table} failed: {exc}") from exc
        return len(refs)

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        try:
            snapshot = await self._collection(table).document(row_id).get()
        except GoogleAPICallError as exc:
            raise StoreError(f"Firestore read of {table}/{row_id} failed: {exc}") from exc
        if not snapshot.exists:
            return None
        return _to_row(snapshot)

    async def select(
        self,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
        range_start: int = 0,
        range_end: Optional[int] = None,
    ) -> Tuple[List[Row], int]:
        queries, merged = self._queries(table, filter)
        if not queries:
            return [], 0
        try:
            if merged:
                rows: List[Row] = []
                for query in queries:
                    rows.extend(_to_row(s) for s in await query.get())
                rows = sort_rows(rows, order)
                stop = None if range_end is None else range_end + 1
                return rows[range_start:stop], len(rows)

            query = queries[0]
            counted = await query.count(alias="total").get()
            total = int(counted[0][0].value) if counted and counted[0] else 0

            page = self._ordered(query, order)
            if range_start:
                page = page.offset(range_start)
            if range_end is not None:
                page = page.limit(max(0, range_end - range_start + 1))
            return [_to_row(s) for s in await page.get()], total
        except GoogleAPICallError as exc:
            raise StoreError(f"Firestore query on {table} failed: {exc}") from exc

    async def run_transaction(self, fn: Callable[["FirestoreTransaction"], Awaitable[T]]) -> T:
        @firestore.async_transactional
        async def _body(transaction):
            # Retried on contention, so start each attempt with a fresh view.
            view = FirestoreTransaction(self, transaction)
            result = await fn(view)
            view.apply()
            return result

        try:
            return await _body(self._client.transaction())
        except GoogleAPICallError as exc:
            raise StoreError(f"Firestore transaction failed: {exc}") from exc


class FirestoreTransaction:
    """Reads go through the transaction; writes are buffered and applied after the body returns."""

    def __init__(self, store: FirestoreStore, transaction) -> None:
        self._store = store
        self._transaction = transaction
        self._writes: List[Tuple[str, Any, Row]] = []

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        ref = self._store._collection(table).document(row_id)
        snapshot = await ref.get(transaction=self._transaction)
        if not snapshot.exists:
            return None
        return _to_row(snapshot)

    async def select(
        self,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        queries, _ = self._store._queries(table, filter)
        rows: List[Row] = []
        for query in queries:
            rows.extend(_to_row(s) for s in await query.get(transaction=self._transaction))
        return sort_rows(rows, order)

    async def insert(self, table: str, row: Row) -> str:
        data = dict(row)
        row_id = data.pop("id", None)
        col = self._store._collection(table)
        ref = col.document(row_id) if row_id else col.document()
        self._writes.append(("set", ref, data))
        return ref.id

    async def update(self, table: str, row_id: str, patch: Row) -> None:
        ref = self._store._collection(table).document(row_id)
        self._writes.append(("update", ref, {k: v for k, v in patch.items() if k != "id"}))

    def apply(self) -> None:
        for op, ref, data in self._writes:
            if op == "set":
                self._transaction.set(ref, data)
            else:
                self._transaction.update(ref, data)
        self._writes = []
