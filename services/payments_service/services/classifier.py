"""Derive a player's payment state from their payment record.

``classify`` is the only place the severity thresholds live. List views,
detail views, exports, analytics filters and the escalation worker all
call it on read; no derived state is ever stored.
"""

from typing import Optional

from services.payments_service.models import (
    InstallmentStatus,
    PaymentRecord,
    PaymentType,
    PlayerPaymentState,
    RecordStatus,
)

# Failed installments at which a plan needs escalation (captain contact,
# suspension review) rather than routine follow-up.
CRITICAL_FAILURE_THRESHOLD = 3

# Admin-facing labels
STATE_LABELS = {
    PlayerPaymentState.UNPAID: "Unpaid",
    PlayerPaymentState.PAID: "Paid",
    PlayerPaymentState.ON_TRACK: "In Progress",
    PlayerPaymentState.HAS_ISSUES: "Has Issues",
    PlayerPaymentState.CRITICAL: "Critical",
}


def failed_installment_count(record: Optional[PaymentRecord]) -> int:
    if record is None or record.installment_plan is None:
        return 0
    return sum(
        1
        for slot in record.installment_plan.payments
        if slot.status == InstallmentStatus.FAILED
    )


def succeeded_installment_count(record: Optional[PaymentRecord]) -> int:
    if record is None or record.installment_plan is None:
        return 0
    return sum(
        1
        for slot in record.installment_plan.payments
        if slot.status == InstallmentStatus.SUCCEEDED
    )


def classify(record: Optional[PaymentRecord]) -> PlayerPaymentState:
    """Map a record (or its absence) to a payment state. Never mutates."""
    if record is None:
        return PlayerPaymentState.UNPAID
    if record.status == RecordStatus.COMPLETED:
        return PlayerPaymentState.PAID
    if record.payment_type != PaymentType.INSTALLMENTS:
        return PlayerPaymentState.UNPAID

    failed = failed_installment_count(record)
    if failed == 0:
        return PlayerPaymentState.ON_TRACK
    if failed < CRITICAL_FAILURE_THRESHOLD:
        return PlayerPaymentState.HAS_ISSUES
    return PlayerPaymentState.CRITICAL


def needs_attention(state: PlayerPaymentState) -> bool:
    return state in (PlayerPaymentState.HAS_ISSUES, PlayerPaymentState.CRITICAL)
