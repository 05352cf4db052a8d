"""Tests for the CSV export of the current batch."""

import csv
import io
from datetime import date

from ap_backlog.export import EXPORT_HEADERS, export_csv, export_filename
from ap_backlog.ingest import ingest_text
from ap_backlog.models import InvoiceRecord
from ap_backlog.profiles import get_profile

TODAY = date(2025, 12, 1)


def _records():
    return [
        InvoiceRecord(
            import_batch_id="b1",
            invoice_number="INV-1",
            invoice_id="901",
            invoice_date=date(2025, 8, 1),
            supplier='Quote "Co", Ltd',
            amount=1234.5,
            overall_process_state="02 - In Progress",
            po_type="PO",
        ),
        InvoiceRecord(
            import_batch_id="b1",
            invoice_number="INV-2",
            amount=-20.0,
            overall_process_state="03 - Requires Investigation",
            is_outlier=True,
            outlier_reason="negative",
        ),
    ]


def _parse(text: str):
    return list(csv.reader(io.StringIO(text)))


def test_header_row():
    rows = _parse(export_csv([], TODAY))
    assert rows == [EXPORT_HEADERS]
    assert EXPORT_HEADERS[0] == "Invoice Number"
    assert EXPORT_HEADERS[-1] == "Enter to Payment"
    assert "Approval Response" in EXPORT_HEADERS


def test_every_field_is_quoted():
    text = export_csv(_records(), TODAY)
    first_data_line = text.splitlines()[1]
    assert first_data_line.startswith('"INV-1","901","2025-08-01",')
    assert '"Quote ""Co"", Ltd"' in first_data_line


def test_values_are_formatted():
    rows = _parse(export_csv(_records(), TODAY))
    header = rows[0]
    first = dict(zip(header, rows[1]))
    second = dict(zip(header, rows[2]))
    assert first["Amount"] == "1234.50"
    assert first["Days Old"] == "122"
    assert first["PO Type"] == "PO"
    assert second["Invoice Date"] == ""
    assert second["Days Old"] == ""
    assert second["Amount"] == "-20.00"


def test_export_reimports_with_default_profile():
    text = export_csv(_records(), TODAY)
    result = ingest_text(text, "again", get_profile("aging-v3"))
    assert [(r.invoice_number, r.amount, r.overall_process_state) for r in result.records] == [
        ("INV-1", 1234.5, "02 - In Progress"),
        ("INV-2", -20.0, "03 - Requires Investigation"),
    ]
    assert result.records[0].supplier == 'Quote "Co", Ltd'
    assert result.records[1].outlier_reason == "negative"


def test_export_filename():
    assert export_filename("aging.csv", TODAY) == "aging-export-2025-12-01.csv"
    assert export_filename("regions.v2.zip", TODAY) == "regions.v2-export-2025-12-01.csv"
