from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional, Sequence

from ap_backlog import config
from ap_backlog.errors import PartialWriteError, StoreError
from ap_backlog.store.base import Filter, Row, Store

logger = logging.getLogger(__name__)


def chunked(items: Sequence, size: int) -> List[Sequence]:
    return [items[start:start + size] for start in range(0, len(items), size)]


class PageCursor:
    """Walk a filtered table one fixed-size page at a time, strictly in order.

    A page shorter than the page size is the last one.
    """

    def __init__(
        self,
        store: Store,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
        page_size: Optional[int] = None,
    ) -> None:
        self.store = store
        self.table = table
        self.filter = dict(filter or {})
        # Paging needs a total order to be stable.
        self.order = list(order or ["id"])
        self.page_size = page_size or config.PAGE_SIZE
        self._offset = 0
        self._exhausted = False
        self.total: Optional[int] = None

    def has_more(self) -> bool:
        return not self._exhausted

    async def next_page(self) -> List[Row]:
        if self._exhausted:
            return []
        start = self._offset
        rows, total = await self.store.select(
            self.table,
            self.filter,
            self.order,
            range_start=start,
            range_end=start + self.page_size - 1,
        )
        self.total = total
        self._offset += len(rows)
        if len(rows) < self.page_size:
            self._exhausted = True
        return rows

    async def __aiter__(self) -> AsyncIterator[Row]:
        while self.has_more():
            for row in await self.next_page():
                yield row


async def fetch_all(
    store: Store,
    table: str,
    filter: Optional[Filter] = None,
    order: Optional[Sequence[str]] = None,
    page_size: Optional[int] = None,
) -> List[Row]:
    cursor = PageCursor(store, table, filter, order, page_size)
    rows: List[Row] = []
    while cursor.has_more():
        rows.extend(await cursor.next_page())
    return rows


async def insert_chunked(
    store: Store,
    table: str,
    rows: Sequence[Row],
    chunk_size: Optional[int] = None,
) -> List[str]:
    """Insert rows in sequential chunks; a failure leaves earlier chunks committed."""
    chunk_size = chunk_size or config.INSERT_CHUNK_SIZE
    ids: List[str] = []
    for chunk in chunked(rows, chunk_size):
        try:
            ids.extend(await store.insert(table, chunk))
        except StoreError as exc:
            logger.error(
                "Chunked insert into %s stopped after %s of %s rows: %s",
                table,
                len(ids),
                len(rows),
                exc,
            )
            raise PartialWriteError(str(exc), committed=len(ids), pending=len(rows) - len(ids)) from exc
    return ids


async def update_chunked(
    store: Store,
    table: str,
    ids: Sequence[str],
    patch: Row,
    chunk_size: Optional[int] = None,
) -> int:
    chunk_size = chunk_size or config.TOGGLE_CHUNK_SIZE
    done = 0
    for chunk in chunked(list(ids), chunk_size):
        try:
            await store.update(table, patch, {"id": list(chunk)})
        except StoreError as exc:
            logger.error("Chunked update of %s stopped after %s of %s rows: %s", table, done, len(ids), exc)
            raise PartialWriteError(str(exc), committed=done, pending=len(ids) - done) from exc
        done += len(chunk)
    return done


async def delete_chunked(
    store: Store,
    table: str,
    ids: Sequence[str],
    chunk_size: Optional[int] = None,
) -> int:
    chunk_size = chunk_size or config.INSERT_CHUNK_SIZE
    done = 0
    for chunk in chunked(list(ids), chunk_size):
        try:
            await store.delete(table, {"id": list(chunk)})
        except StoreError as exc:
            logger.error("Chunked delete from %s stopped after %s of %s rows: %s", table, done, len(ids), exc)
            raise PartialWriteError(str(exc), committed=done, pending=len(ids) - done) from exc
        done += len(chunk)
    return done
