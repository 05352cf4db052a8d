"""Tests for invoice listing: filters, sorting and pages."""

from datetime import date

import pytest

from ap_backlog.invoices import InvoiceFilter, filter_invoices, paginate, sort_invoices
from ap_backlog.models import InvoiceRecord

TODAY = date(2025, 12, 1)


def _record(number, supplier, amount, invoice_date=None, state="02 - In Progress", reason=None, include=None):
    return InvoiceRecord(
        import_batch_id="b1",
        invoice_number=number,
        supplier=supplier,
        amount=amount,
        invoice_date=invoice_date,
        overall_process_state=state,
        is_outlier=reason is not None,
        outlier_reason=reason,
        include_in_analysis=include,
    )


RECORDS = [
    _record("A", "Acme Supplies", 100.0, date(2025, 8, 1)),
    _record("B", "Globex", 250.0, date(2025, 5, 1), "08 - Ready for Payment"),
    _record("C", "acme east", 40.0, None),
    _record("D", "Globex", -10.0, date(2025, 9, 1), reason="negative", include=False),
    _record("E", "Hooli", 200_000.0, date(2025, 1, 1), reason="high_value", include=True),
]


def _numbers(records):
    return [r.invoice_number for r in records]


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def test_default_view_is_the_analysis_set():
    assert _numbers(filter_invoices(RECORDS, InvoiceFilter(), TODAY)) == ["A", "B", "C", "E"]


def test_outlier_modes():
    assert _numbers(filter_invoices(RECORDS, InvoiceFilter(outliers="exclude"), TODAY)) == ["A", "B", "C"]
    assert len(filter_invoices(RECORDS, InvoiceFilter(outliers="all"), TODAY)) == 5


def test_supplier_match_is_case_insensitive_substring():
    assert _numbers(filter_invoices(RECORDS, InvoiceFilter(supplier=" ACME "), TODAY)) == ["A", "C"]


def test_process_state_and_amount_filters():
    criteria = InvoiceFilter(process_state="02 - In Progress", min_amount=50, max_amount=1000)
    assert _numbers(filter_invoices(RECORDS, criteria, TODAY)) == ["A"]


def test_age_filters_drop_undated_invoices():
    # A: 122 days, B: 214 days, E: 334 days.
    assert _numbers(filter_invoices(RECORDS, InvoiceFilter(min_days=120, max_days=300), TODAY)) == ["A", "B"]


# ---------------------------------------------------------------------------
# Sorting and pages
# ---------------------------------------------------------------------------

def test_sort_by_age_oldest_first_missing_last():
    assert _numbers(sort_invoices(RECORDS, "days_old", True, TODAY)) == ["E", "B", "A", "D", "C"]


def test_sort_ascending_keeps_missing_last():
    assert _numbers(sort_invoices(RECORDS, "days_old", False, TODAY)) == ["D", "A", "B", "E", "C"]


def test_sort_text_ignores_case():
    assert _numbers(sort_invoices(RECORDS, "supplier", False, TODAY)) == ["C", "A", "B", "D", "E"]


def test_sort_rejects_unknown_field():
    with pytest.raises(ValueError):
        sort_invoices(RECORDS, "import_batch_id")


def test_paginate():
    items, total = paginate(RECORDS, page=2, page_size=2)
    assert _numbers(items) == ["C", "D"]
    assert total == 5
    assert paginate(RECORDS, page=0, page_size=2)[0] == RECORDS[:2]
    assert paginate(RECORDS, page=9, page_size=2)[0] == []
