from __future__ import annotations

from datetime import date
from typing import Any, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel

from ap_backlog.models import InvoiceRecord

OutlierMode = Literal["default", "exclude", "all"]

SORTABLE = {
    "amount",
    "days_old",
    "invoice_date",
    "invoice_number",
    "supplier",
    "overall_process_state",
}


class InvoiceFilter(BaseModel):
    supplier: Optional[str] = None
    process_state: Optional[str] = None
    min_days: Optional[int] = None
    max_days: Optional[int] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    # default: analysis set; exclude: no outliers at all; all: everything
    outliers: OutlierMode = "default"


def filter_invoices(
    records: Sequence[InvoiceRecord],
    criteria: InvoiceFilter,
    today: Optional[date] = None,
) -> List[InvoiceRecord]:
    today = today or date.today()
    needle = (criteria.supplier or "").strip().lower()
    results = []
    for record in records:
        if criteria.outliers == "default" and not record.inclusion.counts():
            continue
        if criteria.outliers == "exclude" and record.is_outlier:
            continue
        if needle and needle not in (record.supplier or "").lower():
            continue
        if criteria.process_state and record.overall_process_state != criteria.process_state:
            continue
        age = record.days_old(today)
        if criteria.min_days is not None and (age is None or age < criteria.min_days):
            continue
        if criteria.max_days is not None and (age is None or age > criteria.max_days):
            continue
        if criteria.min_amount is not None and record.amount < criteria.min_amount:
            continue
        if criteria.max_amount is not None and record.amount > criteria.max_amount:
            continue
        results.append(record)
    return results


def sort_invoices(
    records: Sequence[InvoiceRecord],
    field: str = "days_old",
    descending: bool = True,
    today: Optional[date] = None,
) -> List[InvoiceRecord]:
    if field not in SORTABLE:
        raise ValueError(f"Cannot sort by {field}")
    today = today or date.today()

    def _key(record: InvoiceRecord) -> Tuple[bool, Any]:
        value = record.days_old(today) if field == "days_old" else getattr(record, field)
        if isinstance(value, str):
            value = value.lower()
        # Missing values always sort last.
        missing = value is None
        if descending:
            missing = not missing
        return missing, value if value is not None else 0

    return sorted(records, key=_key, reverse=descending)


def paginate(records: Sequence[InvoiceRecord], page: int = 1, page_size: int = 50) -> Tuple[List[InvoiceRecord], int]:
    page = max(1, page)
    start = (page - 1) * page_size
    return list(records[start:start + page_size]), len(records)
