from __future__ import annotations

import csv
import io
from datetime import date
from typing import Any, Callable, Iterable, List, Optional, Tuple

from ap_backlog.models import InvoiceRecord


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def _columns(today: date) -> List[Tuple[str, Callable[[InvoiceRecord], Any]]]:
    return [
        ("Invoice Number", lambda r: r.invoice_number),
        ("Invoice ID", lambda r: r.invoice_id),
        ("Invoice Date", lambda r: r.invoice_date),
        ("Creation Date", lambda r: r.creation_date),
        ("Vendor", lambda r: r.supplier),
        ("Supplier Type", lambda r: r.supplier_type),
        ("Amount", lambda r: r.amount),
        ("Days Old", lambda r: r.days_old(today)),
        ("Aging", lambda r: r.aging_bucket),
        ("Approval Status", lambda r: r.approval_status),
        ("Validation Status", lambda r: r.validation_status),
        ("Payment Status", lambda r: r.payment_status),
        ("Payment Method", lambda r: r.payment_method),
        ("Payment Terms", lambda r: r.payment_terms),
        ("Process State", lambda r: r.overall_process_state),
        ("Custom Status", lambda r: r.custom_invoice_status),
        ("PO Type", lambda r: r.po_type),
        ("PO Number", lambda r: r.identifying_po),
        ("Business Unit", lambda r: r.business_unit),
        ("Account Coding", lambda r: r.account_coding_status),
        ("Routing Attribute", lambda r: r.routing_attribute),
        ("Coded By", lambda r: r.coded_by),
        ("Approver ID", lambda r: r.approver_id),
        ("Approval Response", lambda r: r.approval_response),
        ("Action Date", lambda r: r.action_date),
        ("Invoice Status", lambda r: r.invoice_status),
        ("Payment Amount", lambda r: r.payment_amount),
        ("Payment Date", lambda r: r.payment_date),
        ("Enter to Payment", lambda r: r.enter_to_payment),
    ]


EXPORT_HEADERS = [name for name, _ in _columns(date.today())]


def export_csv(records: Iterable[InvoiceRecord], today: Optional[date] = None) -> str:
    """Render invoices as CSV with every field quoted; it re-imports with the default profile."""
    columns = _columns(today or date.today())
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([name for name, _ in columns])
    for record in records:
        writer.writerow([_text(getter(record)) for _, getter in columns])
    return buffer.getvalue()


def export_filename(batch_filename: str, today: Optional[date] = None) -> str:
    stem = batch_filename.rsplit(".", 1)[0] or "invoices"
    return f"{stem}-export-{(today or date.today()).isoformat()}.csv"
