from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ap_backlog.errors import InvoiceNotFoundError, PartialWriteError
from ap_backlog.events import EventBus, OutlierClassificationChanged
from ap_backlog.models import InvoiceRecord, OutlierSummary
from ap_backlog.store.base import INVOICES, Store
from ap_backlog.store.paging import fetch_all, update_chunked

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkToggleResult:
    matched: int
    updated: int
    failed: int = 0
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.failed == 0


def outlier_summary(records: Iterable[InvoiceRecord]) -> OutlierSummary:
    summary = OutlierSummary()
    for record in records:
        if not record.is_outlier:
            continue
        value = abs(record.amount)
        summary.total += 1
        summary.total_value += value
        if record.outlier_reason == "high_value":
            summary.high_value += 1
        elif record.outlier_reason == "negative":
            summary.negative += 1
        if record.inclusion.counts():
            summary.included += 1
            summary.included_value += value
        else:
            summary.excluded += 1
    return summary


def list_outliers(records: Iterable[InvoiceRecord], reason: Optional[str] = None) -> List[InvoiceRecord]:
    outliers = [r for r in records if r.is_outlier and (reason is None or r.outlier_reason == reason)]
    return sorted(outliers, key=lambda r: abs(r.amount), reverse=True)


async def set_inclusion(
    store: Store,
    invoice_id: str,
    include: bool,
    events: Optional[EventBus] = None,
) -> InvoiceRecord:
    row = await store.get(INVOICES, invoice_id)
    if row is None:
        raise InvoiceNotFoundError(invoice_id)

    await store.update(INVOICES, {"include_in_analysis": include}, {"id": invoice_id})
    row["include_in_analysis"] = include
    record = InvoiceRecord.from_row(row)
    logger.info(
        "Invoice %s %s analysis",
        invoice_id,
        "included in" if include else "excluded from",
        extra={"batch_id": record.import_batch_id},
    )
    if events is not None:
        events.publish(OutlierClassificationChanged(record.import_batch_id, (invoice_id,)))
    return record


async def bulk_set_inclusion(
    store: Store,
    batch_id: str,
    include: bool,
    reason: Optional[str] = None,
    events: Optional[EventBus] = None,
    chunk_size: Optional[int] = None,
) -> BulkToggleResult:
    """Set the inclusion flag on every outlier of a batch, optionally of one reason.

    Chunks are applied in order; a failing chunk stops the run and the
    result reports how many rows were and were not updated.
    """
    filter = {"import_batch_id": batch_id, "is_outlier": True}
    if reason is not None:
        filter["outlier_reason"] = reason
    ids = [row["id"] for row in await fetch_all(store, INVOICES, filter)]

    try:
        updated = await update_chunked(store, INVOICES, ids, {"include_in_analysis": include}, chunk_size)
        result = BulkToggleResult(matched=len(ids), updated=updated)
    except PartialWriteError as exc:
        logger.error(
            "Bulk inclusion update for batch %s stopped: %s updated, %s failed",
            batch_id,
            exc.committed,
            exc.pending,
            extra={"batch_id": batch_id},
        )
        result = BulkToggleResult(matched=len(ids), updated=exc.committed, failed=exc.pending, error=str(exc))

    if result.updated and events is not None:
        events.publish(OutlierClassificationChanged(batch_id, tuple(ids[: result.updated])))
    return result
