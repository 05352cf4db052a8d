from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from ap_backlog.normalize import is_paid_status
from ap_backlog.profiles import FormatProfile

SkipReason = Literal["zero_value", "fully_paid"]
OutlierReason = Literal["high_value", "negative"]


@dataclass(frozen=True)
class Classification:
    skip: Optional[SkipReason] = None
    outlier: Optional[OutlierReason] = None

    @property
    def is_outlier(self) -> bool:
        return self.outlier is not None

    @property
    def default_inclusion(self) -> bool:
        return self.outlier is None


KEEP = Classification()


def is_fully_paid(invoice_status: Optional[str], process_state: Optional[str], profile: FormatProfile) -> bool:
    if is_paid_status(invoice_status, profile.paid_statuses):
        return True
    state = (process_state or "").strip()
    if any(state.startswith(prefix) for prefix in profile.terminal_state_prefixes):
        return True
    return "fully paid" in state.lower()


def classify(
    amount: float,
    process_state: Optional[str],
    invoice_status: Optional[str],
    profile: FormatProfile,
) -> Classification:
    """Decide whether a normalized row is skipped, kept, or kept as an outlier.

    Skip rules run first, so a skipped row never carries an outlier reason.
    """
    if profile.skip_zero_value and amount == 0:
        return Classification(skip="zero_value")
    if is_fully_paid(invoice_status, process_state, profile):
        return Classification(skip="fully_paid")

    if amount > profile.high_value_threshold:
        state = (process_state or "").strip()
        if profile.high_value_state is None or state == profile.high_value_state:
            return Classification(outlier="high_value")
    if amount < 0:
        return Classification(outlier="negative")
    return KEEP
