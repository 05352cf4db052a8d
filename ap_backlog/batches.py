from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ap_backlog.errors import BatchNotFoundError, BatchOrderError, NoCurrentBatchError, PartialWriteError
from ap_backlog.events import BatchDeleted, EventBus
from ap_backlog.models import ImportBatch, ImportCounters
from ap_backlog.store.base import BATCHES, INVOICES, Store, Transaction
from ap_backlog.store.paging import delete_chunked, fetch_all

logger = logging.getLogger(__name__)

_ACTIVE = {"is_deleted": False}
_NEWEST_FIRST = ["-imported_at"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BatchDeletion:
    batch_id: str
    promoted_id: Optional[str]
    purged: int


class BatchManager:
    """Owns the import batch lifecycle.

    At most one non-deleted batch is current, and exactly one whenever any
    non-deleted batch exists. Only the newest non-deleted batch can be deleted.
    """

    def __init__(
        self,
        store: Store,
        events: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.events = events or EventBus()
        self._clock = clock or _utcnow

    async def create_batch(
        self,
        filename: str,
        imported_by: Optional[str] = None,
        format_profile: Optional[str] = None,
    ) -> ImportBatch:
        async def _create(tx: Transaction) -> ImportBatch:
            active = await tx.select(BATCHES, _ACTIVE, _NEWEST_FIRST)
            imported_at = self._clock()
            if active and active[0]["imported_at"] >= imported_at:
                # Recency order must be strict even when the clock is coarse.
                imported_at = active[0]["imported_at"] + timedelta(microseconds=1)

            for row in active:
                if row.get("is_current"):
                    await tx.update(BATCHES, row["id"], {"is_current": False})

            batch = ImportBatch(
                filename=filename,
                imported_at=imported_at,
                imported_by=imported_by,
                format_profile=format_profile,
                is_current=True,
            )
            batch.id = await tx.insert(BATCHES, batch.to_row())
            return batch

        batch = await self.store.run_transaction(_create)
        logger.info("Created batch %s for %s", batch.id, filename, extra={"batch_id": batch.id})
        return batch

    async def finalize(self, batch_id: str, counters: ImportCounters) -> ImportBatch:
        updated = await self.store.update(BATCHES, counters.model_dump(), {"id": batch_id})
        if not updated:
            raise BatchNotFoundError(batch_id)
        return await self.get_batch(batch_id)

    async def get_batch(self, batch_id: str) -> ImportBatch:
        row = await self.store.get(BATCHES, batch_id)
        if row is None or row.get("is_deleted"):
            raise BatchNotFoundError(batch_id)
        return ImportBatch.from_row(row)

    async def get_current_batch(self) -> Optional[ImportBatch]:
        rows, _ = await self.store.select(
            BATCHES,
            {"is_current": True, "is_deleted": False},
            _NEWEST_FIRST,
            range_start=0,
            range_end=0,
        )
        return ImportBatch.from_row(rows[0]) if rows else None

    async def list_batches(self, include_deleted: bool = False) -> List[ImportBatch]:
        rows = await fetch_all(self.store, BATCHES, None if include_deleted else _ACTIVE, _NEWEST_FIRST)
        return [ImportBatch.from_row(row) for row in rows]

    async def recent_batches(self, limit: int) -> List[ImportBatch]:
        """The newest ``limit`` non-deleted batches, oldest first."""
        rows, _ = await self.store.select(BATCHES, _ACTIVE, _NEWEST_FIRST, range_start=0, range_end=limit - 1)
        return [ImportBatch.from_row(row) for row in reversed(rows)]

    async def previous_batch(self, batch: ImportBatch) -> Optional[ImportBatch]:
        for candidate in await self.list_batches():
            if candidate.imported_at < batch.imported_at:
                return candidate
        return None

    async def delete_batch(self, batch_id: str) -> BatchDeletion:
        await self.get_batch(batch_id)
        if await self.get_current_batch() is None:
            raise NoCurrentBatchError()

        async def _delete(tx: Transaction) -> Optional[str]:
            # Re-checked inside the transaction so two concurrent deletes cannot both pass.
            active = await tx.select(BATCHES, _ACTIVE, _NEWEST_FIRST)
            if not active or active[0]["id"] != batch_id:
                raise BatchOrderError(batch_id, active[0]["id"] if active else None)

            target, remaining = active[0], active[1:]
            await tx.update(BATCHES, batch_id, {"is_deleted": True, "is_current": False})
            if not remaining:
                return None
            if not target.get("is_current") and any(row.get("is_current") for row in remaining):
                return None

            promoted = remaining[0]["id"]
            for row in remaining[1:]:
                if row.get("is_current"):
                    await tx.update(BATCHES, row["id"], {"is_current": False})
            await tx.update(BATCHES, promoted, {"is_current": True})
            return promoted

        promoted_id = await self.store.run_transaction(_delete)
        logger.info(
            "Deleted batch %s (promoted %s)",
            batch_id,
            promoted_id,
            extra={"batch_id": batch_id, "promoted_id": promoted_id},
        )

        try:
            purged = await self.purge_invoices(batch_id)
        finally:
            self.events.publish(BatchDeleted(batch_id))
        return BatchDeletion(batch_id=batch_id, promoted_id=promoted_id, purged=purged)

    async def purge_invoices(self, batch_id: str) -> int:
        rows = await fetch_all(self.store, INVOICES, {"import_batch_id": batch_id})
        try:
            purged = await delete_chunked(self.store, INVOICES, [row["id"] for row in rows])
        except PartialWriteError as exc:
            logger.error(
                "Invoice purge for batch %s incomplete: %s deleted, %s left",
                batch_id,
                exc.committed,
                exc.pending,
                extra={"batch_id": batch_id},
            )
            raise
        logger.info("Purged %s invoices for batch %s", purged, batch_id, extra={"batch_id": batch_id})
        return purged
