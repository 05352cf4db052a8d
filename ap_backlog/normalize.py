from __future__ import annotations

import math
import re
from datetime import date
from typing import Iterable, Optional

from dateutil import parser as date_parser


_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEGACY_DATE_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{2}|\d{4})$")
_STATE_CODE_RE = re.compile(r"^\s*(\d+)")
_STATE_LABEL_RE = re.compile(r"^\s*\d+\s*-\s*")

_AMOUNT_STRIP = str.maketrans("", "", "$£€,\"() \t\r\n")

NO_STATE_CODE = 999


def parse_date(value: str | None) -> Optional[date]:
    """Parse an extract date: ISO-8601 (time and offset ignored), or MM-DD-YY(YY)."""
    if not value:
        return None

    cleaned = value.strip().strip('"')
    if not cleaned:
        return None

    if "T" in cleaned:
        # Keep the calendar date as written; the offset must not shift it.
        head = cleaned.split("T", 1)[0]
        if _ISO_DATE_RE.match(head):
            return _isoparse_date(head)
        return None

    if _ISO_DATE_RE.match(cleaned):
        return _isoparse_date(cleaned)

    match = _LEGACY_DATE_RE.match(cleaned)
    if not match:
        return None

    month, day, year = match.groups()
    if len(year) == 2:
        year = f"20{year}"
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def _isoparse_date(value: str) -> Optional[date]:
    try:
        return date_parser.isoparse(value).date()
    except (ValueError, OverflowError):
        return None


def parse_amount(value: str | None) -> float:
    """Signed amount; accounting parentheses mean negative, junk means zero."""
    if not value:
        return 0.0

    negative = "(" in value and ")" in value
    cleaned = value.translate(_AMOUNT_STRIP)
    if not cleaned:
        return 0.0

    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0

    if not math.isfinite(amount):
        return 0.0
    if negative:
        amount = -abs(amount)
    # Avoid -0.0 leaking into totals and exports.
    return amount + 0.0


def parse_number(value: str | None) -> Optional[float]:
    if not value:
        return None
    cleaned = value.strip().replace(",", "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def normalize_po_type(value: str | None) -> str:
    cleaned = (value or "").strip().lower()
    if cleaned in {"yes", "po"}:
        return "PO"
    return "Non-PO"


def days_old(invoice_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if invoice_date is None:
        return None
    today = today or date.today()
    return max(0, (today - invoice_date).days)


def is_paid_status(status: str | None, phrases: Iterable[str] = ("paid", "fully paid")) -> bool:
    """True when the status is a paid phrase, alone or leading a longer status ("Paid - Closed").

    "Not Paid" and "Partially Paid" do not match.
    """
    cleaned = (status or "").strip().lower()
    if not cleaned:
        return False
    return any(re.match(rf"{re.escape(phrase.lower())}\b", cleaned) for phrase in phrases)


def is_ready_for_payment(state: str | None) -> bool:
    cleaned = (state or "").strip()
    return cleaned.startswith("08") or "ready for payment" in cleaned.lower()


def requires_investigation(state: str | None) -> bool:
    return "investigation" in (state or "").lower()


def state_code(state: str | None) -> int:
    match = _STATE_CODE_RE.match(state or "")
    if not match:
        return NO_STATE_CODE
    return int(match.group(1))


def state_label(state: str | None) -> str:
    return _STATE_LABEL_RE.sub("", state or "").strip()


def clean_text(value: str | None) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None
