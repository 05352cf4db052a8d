from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ap_backlog import config
from ap_backlog.batches import BatchManager
from ap_backlog.errors import NoCurrentBatchError
from ap_backlog.models import (
    BatchComparison,
    BucketSummary,
    DashboardSummary,
    ImportBatch,
    InvoiceRecord,
    OutlierStats,
    PoSummary,
    StateChange,
    StateSummary,
    StateTrend,
    StuckInvoice,
    TrendPoint,
    VendorSummary,
)
from ap_backlog.normalize import is_ready_for_payment, requires_investigation, state_code
from ap_backlog.store.base import INVOICES
from ap_backlog.store.paging import fetch_all

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# (label, min_days inclusive, max_days exclusive)
AGING_BUCKETS: Tuple[Tuple[str, int, Optional[int]], ...] = (
    ("90-120", 90, 120),
    ("120-180", 120, 180),
    ("180-270", 180, 270),
    ("270+", 270, None),
)

MONTHLY_AGING_BUCKETS: Tuple[Tuple[str, int, Optional[int]], ...] = tuple(
    (f"{low}-{low + 30} days", low, low + 30) for low in range(90, 360, 30)
) + (("360+ days", 360, None),)

STUCK_DAYS = 180


def included(records: Iterable[InvoiceRecord]) -> List[InvoiceRecord]:
    """Records that take part in analysis: flag true, or never set."""
    return [record for record in records if record.inclusion.counts()]


def _bucketize(
    records: Iterable[InvoiceRecord],
    today: date,
    buckets: Sequence[Tuple[str, int, Optional[int]]],
) -> List[BucketSummary]:
    summaries = [BucketSummary(label=label) for label, _, _ in buckets]
    for record in included(records):
        age = record.days_old(today)
        if age is None:
            continue
        for summary, (_, low, high) in zip(summaries, buckets):
            if age >= low and (high is None or age < high):
                summary.count += 1
                summary.value += record.amount
                break
    return summaries


def aging_buckets(records: Iterable[InvoiceRecord], today: Optional[date] = None) -> List[BucketSummary]:
    return _bucketize(records, today or date.today(), AGING_BUCKETS)


def monthly_aging(records: Iterable[InvoiceRecord], today: Optional[date] = None) -> List[BucketSummary]:
    return _bucketize(records, today or date.today(), MONTHLY_AGING_BUCKETS)


def process_state_breakdown(records: Iterable[InvoiceRecord]) -> List[StateSummary]:
    groups: Dict[str, StateSummary] = {}
    for record in included(records):
        state = record.overall_process_state or UNKNOWN
        summary = groups.setdefault(state, StateSummary(state=state))
        summary.count += 1
        summary.value += record.amount
    return sorted(groups.values(), key=lambda s: (-s.count, state_code(s.state), s.state))


def top_vendors(records: Iterable[InvoiceRecord], limit: int = 10) -> List[VendorSummary]:
    groups: Dict[str, VendorSummary] = {}
    for record in included(records):
        supplier = record.supplier or UNKNOWN
        summary = groups.setdefault(supplier, VendorSummary(supplier=supplier))
        summary.count += 1
        summary.value += record.amount
    return sorted(groups.values(), key=lambda s: s.value, reverse=True)[:limit]


def po_breakdown(records: Iterable[InvoiceRecord]) -> List[PoSummary]:
    groups: Dict[str, PoSummary] = {}
    for record in included(records):
        summary = groups.setdefault(record.po_type, PoSummary(po_type=record.po_type))
        summary.count += 1
        summary.value += record.amount
    return sorted(groups.values(), key=lambda s: s.value, reverse=True)


def outlier_stats(records: Iterable[InvoiceRecord]) -> OutlierStats:
    stats = OutlierStats()
    for record in records:
        if not record.is_outlier:
            continue
        stats.total += 1
        if record.inclusion.counts():
            stats.included += 1
        else:
            stats.excluded += 1
    return stats


def stuck_invoices(
    records: Iterable[InvoiceRecord],
    today: Optional[date] = None,
    limit: int = 10,
) -> List[StuckInvoice]:
    today = today or date.today()
    stuck = []
    for record in included(records):
        state = (record.overall_process_state or "").lower()
        age = record.days_old(today)
        if requires_investigation(state) or ("progress" in state and (age or 0) > STUCK_DAYS):
            stuck.append(
                StuckInvoice(
                    id=record.id,
                    invoice_number=record.invoice_number,
                    supplier=record.supplier,
                    amount=record.amount,
                    days_old=age,
                    overall_process_state=record.overall_process_state,
                )
            )
    stuck.sort(key=lambda s: s.days_old or 0, reverse=True)
    return stuck[:limit]


def backlog_trend(history: Sequence[Tuple[ImportBatch, List[InvoiceRecord]]]) -> List[TrendPoint]:
    """Per-batch totals for batches given oldest first; empty with fewer than two."""
    if len(history) < 2:
        return []
    points = []
    for batch, records in history:
        counted = included(records)
        ready = sum(1 for r in counted if is_ready_for_payment(r.overall_process_state))
        points.append(
            TrendPoint(
                batch_id=batch.id,
                filename=batch.filename,
                imported_at=batch.imported_at,
                total=len(counted),
                ready_for_payment=ready,
                backlog=len(counted) - ready,
            )
        )
    return points


def process_state_trend(history: Sequence[Tuple[ImportBatch, List[InvoiceRecord]]]) -> List[StateTrend]:
    if len(history) < 2:
        return []
    per_batch = []
    states = set()
    for _, records in history:
        counts: Dict[str, int] = {}
        for record in included(records):
            state = record.overall_process_state or UNKNOWN
            counts[state] = counts.get(state, 0) + 1
        per_batch.append(counts)
        states.update(counts)

    trends = []
    for state in sorted(states, key=lambda s: (state_code(s), s)):
        series = [counts.get(state, 0) for counts in per_batch]
        trends.append(StateTrend(state=state, counts=series, change=series[-1] - series[0]))
    return trends


def _match_key(record: InvoiceRecord) -> Optional[str]:
    return record.invoice_id or record.invoice_number


def compare_batches(
    current: ImportBatch,
    current_records: List[InvoiceRecord],
    previous: ImportBatch,
    previous_records: List[InvoiceRecord],
) -> BatchComparison:
    now = included(current_records)
    before = included(previous_records)
    now_keys = {key for key in map(_match_key, now) if key}
    before_keys = {key for key in map(_match_key, before) if key}

    now_states: Dict[str, int] = {}
    before_states: Dict[str, int] = {}
    for records, counts in ((now, now_states), (before, before_states)):
        for record in records:
            state = record.overall_process_state or UNKNOWN
            counts[state] = counts.get(state, 0) + 1

    changes = [
        StateChange(
            state=state,
            current=now_states.get(state, 0),
            previous=before_states.get(state, 0),
            change=now_states.get(state, 0) - before_states.get(state, 0),
        )
        for state in sorted(set(now_states) | set(before_states), key=lambda s: (state_code(s), s))
    ]

    return BatchComparison(
        current_batch_id=current.id,
        previous_batch_id=previous.id,
        current_count=len(now),
        previous_count=len(before),
        current_value=sum(r.amount for r in now),
        previous_value=sum(r.amount for r in before),
        new_invoices=len(now_keys - before_keys),
        resolved_invoices=len(before_keys - now_keys),
        state_changes=changes,
    )


def summarize(batch: ImportBatch, records: List[InvoiceRecord], today: Optional[date] = None) -> DashboardSummary:
    today = today or date.today()
    counted = included(records)
    ready = [r for r in counted if is_ready_for_payment(r.overall_process_state)]
    investigation = [r for r in counted if requires_investigation(r.overall_process_state)]
    backlog = [r for r in counted if not is_ready_for_payment(r.overall_process_state)]
    ages = [age for age in (r.days_old(today) for r in backlog) if age is not None]

    return DashboardSummary(
        batch_id=batch.id,
        filename=batch.filename,
        imported_at=batch.imported_at,
        total_count=len(counted),
        total_value=sum(r.amount for r in counted),
        ready_for_payment_count=len(ready),
        ready_for_payment_value=sum(r.amount for r in ready),
        investigation_count=len(investigation),
        investigation_value=sum(r.amount for r in investigation),
        backlog_count=len(backlog),
        backlog_value=sum(r.amount for r in backlog),
        average_days_old=round(sum(ages) / len(ages), 1) if ages else 0.0,
        aging=aging_buckets(counted, today),
        monthly_aging=monthly_aging(counted, today),
        process_states=process_state_breakdown(counted),
        top_vendors=top_vendors(counted),
        po_breakdown=po_breakdown(counted),
        outliers=outlier_stats(records),
        stuck=stuck_invoices(counted, today),
    )


class Analytics:
    """Loads batch data through the paging cursor and runs the aggregations over it."""

    def __init__(self, batches: BatchManager) -> None:
        self.batches = batches
        self.store = batches.store

    async def load_records(self, batch_id: str) -> List[InvoiceRecord]:
        rows = await fetch_all(self.store, INVOICES, {"import_batch_id": batch_id})
        return [InvoiceRecord.from_row(row) for row in rows]

    async def current(self) -> Tuple[ImportBatch, List[InvoiceRecord]]:
        batch = await self.batches.get_current_batch()
        if batch is None:
            raise NoCurrentBatchError()
        return batch, await self.load_records(batch.id)

    async def _history(self, limit: Optional[int]) -> List[Tuple[ImportBatch, List[InvoiceRecord]]]:
        batches = await self.batches.recent_batches(limit or config.TREND_BATCH_LIMIT)
        return [(batch, await self.load_records(batch.id)) for batch in batches]

    async def dashboard(self, today: Optional[date] = None) -> DashboardSummary:
        batch, records = await self.current()
        return summarize(batch, records, today)

    async def aging(self, today: Optional[date] = None) -> Dict[str, List[BucketSummary]]:
        _, records = await self.current()
        return {"buckets": aging_buckets(records, today), "monthly": monthly_aging(records, today)}

    async def backlog_trend(self, limit: Optional[int] = None) -> List[TrendPoint]:
        return backlog_trend(await self._history(limit))

    async def process_state_trend(self, limit: Optional[int] = None) -> List[StateTrend]:
        return process_state_trend(await self._history(limit))

    async def compare_batches(self) -> Optional[BatchComparison]:
        current, current_records = await self.current()
        previous = await self.batches.previous_batch(current)
        if previous is None:
            logger.info("No earlier batch to compare with %s", current.id, extra={"batch_id": current.id})
            return None
        return compare_batches(current, current_records, previous, await self.load_records(previous.id))
