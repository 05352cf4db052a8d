from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ap_backlog import config
from ap_backlog.classify import classify
from ap_backlog.dialect import FieldResolver, RowView, read_rows
from ap_backlog.models import ImportCounters, InvoiceRecord
from ap_backlog.normalize import (
    clean_text,
    normalize_po_type,
    parse_amount,
    parse_date,
    parse_number,
)
from ap_backlog.profiles import FormatProfile, get_profile

logger = logging.getLogger(__name__)


_TEXT_FIELDS = (
    "invoice_number",
    "invoice_id",
    "supplier",
    "supplier_type",
    "business_unit",
    "approval_status",
    "validation_status",
    "payment_status",
    "overall_process_state",
    "aging_bucket",
    "payment_method",
    "payment_terms",
    "payment_status_indicator",
    "routing_attribute",
    "account_coding_status",
    "invoice_type",
    "custom_invoice_status",
    "identifying_po",
    "coded_by",
    "wfapproval_status_code",
    "wfapproval_status",
    "invoice_status",
    "approver_id",
    "approval_response",
)

_DATE_FIELDS = ("invoice_date", "creation_date", "action_date", "payment_date")


@dataclass
class IngestResult:
    records: List[InvoiceRecord] = field(default_factory=list)
    counters: ImportCounters = field(default_factory=ImportCounters)
    # First MAX_ROW_ERRORS messages; counters.error_count holds the total.
    details: List[str] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        hidden = self.counters.error_count - len(self.details)
        if hidden > 0:
            return self.details + [f"...and {hidden} more"]
        return list(self.details)

    def note_error(self, message: str, skipped: bool = True) -> None:
        if skipped:
            self.counters.add_error()
        else:
            self.counters.error_count += 1
        if len(self.details) < config.MAX_ROW_ERRORS:
            self.details.append(message)

    def merge(self, other: "IngestResult") -> "IngestResult":
        return IngestResult(
            records=self.records + other.records,
            counters=self.counters.merge(other.counters),
            details=(self.details + other.details)[: config.MAX_ROW_ERRORS],
        )


def build_record(row: RowView, batch_id: str, profile: FormatProfile) -> Tuple[Optional[InvoiceRecord], Optional[str]]:
    """Normalize one row; returns (record, None) or (None, skip_reason)."""
    values = {name: clean_text(row.get(name)) for name in _TEXT_FIELDS}
    amount = parse_amount(row.get("amount"))
    verdict = classify(amount, values["overall_process_state"], values["invoice_status"], profile)
    if verdict.skip is not None:
        return None, verdict.skip

    for name in _DATE_FIELDS:
        values[name] = parse_date(row.get(name))

    record = InvoiceRecord(
        import_batch_id=batch_id,
        amount=amount,
        payment_amount=parse_number(row.get("payment_amount")),
        enter_to_payment=parse_number(row.get("enter_to_payment")),
        po_type=normalize_po_type(row.get("po_type")),
        is_outlier=verdict.is_outlier,
        outlier_reason=verdict.outlier,
        include_in_analysis=verdict.default_inclusion,
        **values,
    )
    return record, None


def ingest_text(text: str, batch_id: str, profile: Optional[FormatProfile] = None) -> IngestResult:
    """Run one extract through dialect detection, resolution, normalization and classification.

    Nothing here touches the store; the caller persists ``result.records``.
    Row failures are collected in ``result.errors`` and counted as skipped.
    """
    profile = profile or get_profile()
    result = IngestResult()

    table = read_rows(text)
    resolver = FieldResolver(profile, table.headers)

    line = 1
    try:
        for cells in table.rows:
            line += 1
            try:
                record, skip = build_record(resolver.view(cells), batch_id, profile)
            except (ValueError, TypeError) as exc:
                # pydantic's ValidationError is a ValueError too.
                logger.warning("Row %s rejected: %s", line, exc, extra={"batch_id": batch_id})
                result.note_error(f"Row {line}: {exc}")
                continue

            if record is None:
                result.counters.add_skip(skip)
                continue
            result.records.append(record)
            result.counters.add_record(record.outlier_reason)
    except csv.Error as exc:
        logger.warning("Extract parse stopped after row %s: %s", line, exc, extra={"batch_id": batch_id})
        result.note_error(f"Row {line + 1}: {exc}", skipped=False)

    logger.info(
        "Ingested %s records (%s skipped, %s outliers)",
        result.counters.record_count,
        result.counters.skipped_count,
        result.counters.outlier_count,
        extra={"batch_id": batch_id, "profile": profile.name},
    )
    return result


def ingest_files(
    files: Iterable[Tuple[str, str]],
    batch_id: str,
    profile: Optional[FormatProfile] = None,
) -> IngestResult:
    """Ingest several named text blobs into one batch and merge the results."""
    profile = profile or get_profile()
    merged = IngestResult()
    for name, text in files:
        part = ingest_text(text, batch_id, profile)
        part.details = [f"{name}: {detail}" for detail in part.details]
        merged = merged.merge(part)
    return merged
