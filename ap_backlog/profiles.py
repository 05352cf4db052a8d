from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ap_backlog import config
from ap_backlog.errors import UnknownProfileError


ResolutionMode = Literal["headers", "positional"]

HEADER_TO_BE_VERIFIED = "01 - Header To Be Verified"


# Semantic field -> accepted header names, most specific first.
DEFAULT_ALIASES: Dict[str, List[str]] = {
    "invoice_number": ["INVOICE_NUM", "Invoice Number", "Invoice #"],
    "invoice_date": ["INVOICE_DATE", "Invoice Date"],
    "invoice_id": ["INVOICE_ID", "Invoice ID", "Invoices"],
    "creation_date": ["CREATION_DATE", "Invoice Creation Date", "Creation Date"],
    "business_unit": ["BUSINESS_UNIT", "Business Unit Name", "Business Unit"],
    "approval_status": ["APPROVAL_STATUS", "Approval Status"],
    "supplier": ["SUPPLIER_NAME", "Supplier", "Vendor"],
    "supplier_type": ["VENDOR_TYPE", "Supplier Type"],
    "amount": ["INVOICE_AMOUNT", "Invoice Amount", "Amount"],
    "validation_status": ["VALIDATION_STATUS", "Validation Status"],
    "payment_method": ["PAYMENT_METHOD_CODE", "Payment Method"],
    "payment_terms": ["PAYMENT_TERMS", "Payment Terms Name", "Payment Terms"],
    "payment_status": ["PAYMENT_STATUS", "Payment Status Name", "Payment Status"],
    "payment_status_indicator": ["PAYMENT_STATUS_FLAG", "Payment Status Indicator"],
    "routing_attribute": ["ROUTING_ATTRIBUTE3", "Routing Attribute 3", "Routing Attribute"],
    "account_coding_status": ["CODING_STATUS", "Account Coding Status", "Account Coding"],
    "aging_bucket": ["AGING", "Aging"],
    "invoice_type": ["INVOICE_TYPE", "Invoice Type Name", "Invoice Type"],
    "custom_invoice_status": ["Custom Invoice Status", "Custom Status"],
    "overall_process_state": ["INVOICE_PROCESS_STATUS", "Overall Process State", "Process State"],
    "po_type": ["PO_NONPO", "PO/Non-PO", "PO Type"],
    "identifying_po": ["PO_NUMBER", "Identifying PO", "PO Number"],
    "coded_by": ["CODED_BY", "Coded By"],
    "wfapproval_status_code": ["WFAPPROVAL_STATUS_CODE", "WF Approval Status Code"],
    "wfapproval_status": ["WFAPPROVAL_STATUS", "WF Approval Status"],
    "invoice_status": ["INVOICE_STATUS", "Invoice Status"],
    "approver_id": ["APPROVER_ID", "Approver ID", "Approver"],
    "approval_response": ["RESPONSE", "Response", "Approval Response"],
    "action_date": ["ACTION_DATE", "Action Date"],
    "payment_amount": ["PAYMENT_AMOUNT", "Payment Amount"],
    "payment_date": ["PAYMENT_DATE", "Payment Date"],
    "enter_to_payment": ["ENTER_TO_PAYMENT", "Days from Initial Entry to Payment", "Enter to Payment"],
}

# Column order of the headerless legacy extract (DAYS_OLD at 14 is ignored).
LEGACY_POSITIONS: Dict[str, int] = {
    "invoice_number": 0,
    "invoice_date": 1,
    "invoice_id": 2,
    "creation_date": 3,
    "business_unit": 4,
    "approval_status": 5,
    "supplier": 6,
    "supplier_type": 7,
    "amount": 8,
    "validation_status": 9,
    "payment_method": 10,
    "payment_terms": 11,
    "payment_status": 12,
    "account_coding_status": 13,
    "invoice_type": 15,
    "po_type": 16,
    "coded_by": 17,
    "payment_status_indicator": 18,
    "wfapproval_status_code": 19,
    "wfapproval_status": 20,
    "aging_bucket": 21,
    "invoice_status": 22,
    "overall_process_state": 23,
    "approver_id": 24,
    "approval_response": 25,
    "action_date": 26,
    "routing_attribute": 27,
    "identifying_po": 28,
    "payment_amount": 29,
    "payment_date": 30,
    "enter_to_payment": 31,
}


class FormatProfile(BaseModel):
    name: str
    mode: ResolutionMode = "headers"
    aliases: Dict[str, List[str]] = Field(default_factory=lambda: dict(DEFAULT_ALIASES))
    positions: Dict[str, int] = Field(default_factory=dict)

    high_value_threshold: float = 100_000
    # None applies the high-value rule regardless of process state.
    high_value_state: Optional[str] = HEADER_TO_BE_VERIFIED

    skip_zero_value: bool = True
    paid_statuses: List[str] = Field(default_factory=lambda: ["paid", "fully paid"])
    terminal_state_prefixes: List[str] = Field(default_factory=lambda: ["09"])

    def with_threshold(self, threshold: Optional[float]) -> "FormatProfile":
        if threshold is None:
            return self
        return self.model_copy(update={"high_value_threshold": threshold})


PROFILES: Dict[str, FormatProfile] = {
    profile.name: profile
    for profile in (
        FormatProfile(name="aging-v3"),
        FormatProfile(name="aging-v2", high_value_threshold=50_000, high_value_state=None),
        FormatProfile(
            name="legacy-positional",
            mode="positional",
            positions=dict(LEGACY_POSITIONS),
            high_value_threshold=50_000,
            high_value_state=None,
        ),
    )
}


def get_profile(name: Optional[str] = None) -> FormatProfile:
    """Look up a built-in profile, applying the HIGH_VALUE_THRESHOLD override."""
    key = (name or config.FORMAT_PROFILE).strip()
    profile = PROFILES.get(key)
    if profile is None:
        raise UnknownProfileError(key)
    return profile.with_threshold(config.HIGH_VALUE_THRESHOLD)


def available_profiles() -> List[str]:
    return sorted(PROFILES)
