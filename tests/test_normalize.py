"""Tests for extract value normalizers."""

from datetime import date, timedelta

import pytest

from ap_backlog.normalize import (
    days_old,
    is_paid_status,
    is_ready_for_payment,
    normalize_po_type,
    parse_amount,
    parse_date,
    parse_number,
    requires_investigation,
    state_code,
    state_label,
)


# ---------------------------------------------------------------------------
# parse_amount
# ---------------------------------------------------------------------------

def test_parse_amount_currency_and_thousands():
    assert parse_amount("$1,234.56") == pytest.approx(1234.56)


def test_parse_amount_accounting_negative():
    assert parse_amount("(500.00)") == pytest.approx(-500.0)


def test_parse_amount_accounting_negative_with_symbol():
    assert parse_amount("($2,500.10)") == pytest.approx(-2500.10)


def test_parse_amount_plain_negative():
    assert parse_amount("-42.5") == pytest.approx(-42.5)


def test_parse_amount_quoted():
    assert parse_amount('"1,000"') == pytest.approx(1000.0)


def test_parse_amount_empty_is_zero():
    assert parse_amount("") == 0
    assert parse_amount(None) == 0


def test_parse_amount_garbage_is_zero():
    assert parse_amount("n/a") == 0
    assert parse_amount("1.2.3") == 0


def test_parse_amount_negative_zero_is_zero():
    assert str(parse_amount("(0.00)")) == "0.0"


# ---------------------------------------------------------------------------
# parse_date
# ---------------------------------------------------------------------------

def test_parse_date_iso_with_offset_keeps_calendar_date():
    assert parse_date("2025-11-30T18:00:00.000-06:00") == date(2025, 11, 30)


def test_parse_date_iso_with_utc_suffix():
    assert parse_date("2025-01-31T23:59:59Z") == date(2025, 1, 31)


def test_parse_date_plain_iso():
    assert parse_date("2025-11-30") == date(2025, 11, 30)


def test_parse_date_two_digit_year():
    assert parse_date("11-30-25") == date(2025, 11, 30)


def test_parse_date_four_digit_year():
    assert parse_date("11-30-2025") == date(2025, 11, 30)


def test_parse_date_single_digit_month_and_day():
    assert parse_date("1-5-25") == date(2025, 1, 5)


def test_parse_date_invalid_calendar_date():
    assert parse_date("02-30-25") is None
    assert parse_date("2025-13-01") is None


def test_parse_date_unparseable():
    assert parse_date("") is None
    assert parse_date(None) is None
    assert parse_date("yesterday") is None
    assert parse_date("30 November 2025") is None


# ---------------------------------------------------------------------------
# parse_number / normalize_po_type
# ---------------------------------------------------------------------------

def test_parse_number():
    assert parse_number("12") == pytest.approx(12.0)
    assert parse_number("1,250.75") == pytest.approx(1250.75)
    assert parse_number("") is None
    assert parse_number("abc") is None


@pytest.mark.parametrize("raw", ["Yes", "yes", " PO ", "po"])
def test_po_type_po(raw):
    assert normalize_po_type(raw) == "PO"


@pytest.mark.parametrize("raw", ["No", "Non-PO", "", None, "maybe"])
def test_po_type_non_po(raw):
    assert normalize_po_type(raw) == "Non-PO"


# ---------------------------------------------------------------------------
# days_old
# ---------------------------------------------------------------------------

def test_days_old_counts_calendar_days():
    assert days_old(date(2025, 9, 1), today=date(2025, 12, 1)) == 91


def test_days_old_future_date_clamped_to_zero():
    assert days_old(date(2026, 1, 1), today=date(2025, 12, 1)) == 0


def test_days_old_missing_date():
    assert days_old(None, today=date(2025, 12, 1)) is None


def test_days_old_monotone_in_evaluation_date():
    invoice_date = date(2025, 6, 1)
    ages = [days_old(invoice_date, today=date(2025, 5, 1) + timedelta(days=n)) for n in range(0, 120, 7)]
    assert ages == sorted(ages)
    assert min(ages) == 0


# ---------------------------------------------------------------------------
# State helpers
# ---------------------------------------------------------------------------

def test_paid_status_phrases():
    assert is_paid_status("Paid")
    assert is_paid_status(" fully paid ")
    assert not is_paid_status("Not Paid")
    assert not is_paid_status("Partially Paid")
    assert not is_paid_status(None)


def test_paid_status_leading_a_longer_status():
    assert is_paid_status("Fully Paid - Closed")
    assert is_paid_status("Paid (cleared)")
    assert not is_paid_status("Unpaid")
    assert not is_paid_status("Paidout Pending")
    assert not is_paid_status("Invoice Not Paid")


def test_ready_for_payment():
    assert is_ready_for_payment("08 - Ready for Payment")
    assert is_ready_for_payment("Invoice ready for payment")
    assert not is_ready_for_payment("02 - In Progress")
    assert not is_ready_for_payment(None)


def test_requires_investigation():
    assert requires_investigation("03 - Requires Investigation")
    assert not requires_investigation("02 - In Progress")


def test_state_code_and_label():
    assert state_code("08 - Ready for Payment") == 8
    assert state_code("Unknown") == 999
    assert state_label("08 - Ready for Payment") == "Ready for Payment"
    assert state_label("Unknown") == "Unknown"
