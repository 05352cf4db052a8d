# ap_backlog/models.py
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ap_backlog.normalize import days_old as _days_old


PoType = Literal["PO", "Non-PO"]
OutlierReason = Literal["high_value", "negative"]


class Inclusion(str, Enum):
    INCLUDED = "included"
    EXCLUDED = "excluded"
    UNSPECIFIED = "unspecified"

    @classmethod
    def from_flag(cls, flag: Optional[bool]) -> "Inclusion":
        if flag is None:
            return cls.UNSPECIFIED
        return cls.INCLUDED if flag else cls.EXCLUDED

    def counts(self) -> bool:
        # Rows stored before the flag existed carry no value; they count.
        return self is not Inclusion.EXCLUDED


class InvoiceRecord(BaseModel):
    id: Optional[str] = None
    import_batch_id: str

    invoice_number: Optional[str] = None
    invoice_id: Optional[str] = None

    amount: float = 0.0
    payment_amount: Optional[float] = None
    enter_to_payment: Optional[float] = None

    invoice_date: Optional[date] = None
    creation_date: Optional[date] = None
    action_date: Optional[date] = None
    payment_date: Optional[date] = None

    supplier: Optional[str] = None
    supplier_type: Optional[str] = None
    business_unit: Optional[str] = None
    approval_status: Optional[str] = None
    validation_status: Optional[str] = None
    payment_status: Optional[str] = None
    overall_process_state: Optional[str] = None
    po_type: PoType = "Non-PO"
    aging_bucket: Optional[str] = None

    payment_method: Optional[str] = None
    payment_terms: Optional[str] = None
    payment_status_indicator: Optional[str] = None
    routing_attribute: Optional[str] = None
    account_coding_status: Optional[str] = None
    invoice_type: Optional[str] = None
    custom_invoice_status: Optional[str] = None
    identifying_po: Optional[str] = None
    coded_by: Optional[str] = None
    wfapproval_status_code: Optional[str] = None
    wfapproval_status: Optional[str] = None
    invoice_status: Optional[str] = None
    approver_id: Optional[str] = None
    approval_response: Optional[str] = None

    is_outlier: bool = False
    outlier_reason: Optional[OutlierReason] = None
    include_in_analysis: Optional[bool] = None

    @property
    def inclusion(self) -> Inclusion:
        return Inclusion.from_flag(self.include_in_analysis)

    def days_old(self, today: Optional[date] = None) -> Optional[int]:
        return _days_old(self.invoice_date, today)

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json")
        row.pop("id", None)
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "InvoiceRecord":
        return cls.model_validate(row)


class ImportCounters(BaseModel):
    record_count: int = 0
    skipped_count: int = 0
    skipped_zero_value: int = 0
    skipped_fully_paid: int = 0
    outlier_count: int = 0
    outlier_high_value: int = 0
    outlier_negative: int = 0
    error_count: int = 0

    def add_skip(self, reason: str) -> None:
        self.skipped_count += 1
        if reason == "zero_value":
            self.skipped_zero_value += 1
        elif reason == "fully_paid":
            self.skipped_fully_paid += 1

    def add_error(self) -> None:
        self.skipped_count += 1
        self.error_count += 1

    def add_record(self, outlier_reason: Optional[str]) -> None:
        self.record_count += 1
        if outlier_reason is None:
            return
        self.outlier_count += 1
        if outlier_reason == "high_value":
            self.outlier_high_value += 1
        elif outlier_reason == "negative":
            self.outlier_negative += 1

    def merge(self, other: "ImportCounters") -> "ImportCounters":
        merged = self.model_dump()
        for key, value in other.model_dump().items():
            merged[key] += value
        return ImportCounters(**merged)


class ImportBatch(BaseModel):
    id: Optional[str] = None
    filename: str
    imported_at: datetime
    imported_by: Optional[str] = None
    format_profile: Optional[str] = None

    record_count: int = 0
    skipped_count: int = 0
    skipped_zero_value: int = 0
    skipped_fully_paid: int = 0
    outlier_count: int = 0
    outlier_high_value: int = 0
    outlier_negative: int = 0
    error_count: int = 0

    is_current: bool = False
    is_deleted: bool = False

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump()
        row.pop("id", None)
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ImportBatch":
        return cls.model_validate(row)


# ---------------------------------------------------------------------------
# Aggregation results
# ---------------------------------------------------------------------------

class BucketSummary(BaseModel):
    label: str
    count: int = 0
    value: float = 0.0


class StateSummary(BaseModel):
    state: str
    count: int = 0
    value: float = 0.0


class VendorSummary(BaseModel):
    supplier: str
    count: int = 0
    value: float = 0.0


class PoSummary(BaseModel):
    po_type: str
    count: int = 0
    value: float = 0.0


class OutlierStats(BaseModel):
    total: int = 0
    included: int = 0
    excluded: int = 0


class OutlierSummary(BaseModel):
    total: int = 0
    high_value: int = 0
    negative: int = 0
    included: int = 0
    excluded: int = 0
    total_value: float = 0.0
    included_value: float = 0.0


class TrendPoint(BaseModel):
    batch_id: str
    filename: str
    imported_at: datetime
    total: int
    ready_for_payment: int
    backlog: int


class StateTrend(BaseModel):
    state: str
    counts: List[int]
    change: int


class StateChange(BaseModel):
    state: str
    current: int
    previous: int
    change: int


class BatchComparison(BaseModel):
    current_batch_id: str
    previous_batch_id: str
    current_count: int
    previous_count: int
    current_value: float
    previous_value: float
    new_invoices: int
    resolved_invoices: int
    state_changes: List[StateChange] = Field(default_factory=list)


class StuckInvoice(BaseModel):
    id: Optional[str] = None
    invoice_number: Optional[str] = None
    supplier: Optional[str] = None
    amount: float
    days_old: Optional[int] = None
    overall_process_state: Optional[str] = None


class DashboardSummary(BaseModel):
    batch_id: str
    filename: str
    imported_at: datetime
    total_count: int
    total_value: float
    ready_for_payment_count: int
    ready_for_payment_value: float
    investigation_count: int
    investigation_value: float
    backlog_count: int
    backlog_value: float
    average_days_old: float
    aging: List[BucketSummary]
    monthly_aging: List[BucketSummary]
    process_states: List[StateSummary]
    top_vendors: List[VendorSummary]
    po_breakdown: List[PoSummary]
    outliers: OutlierStats
    stuck: List[StuckInvoice]
