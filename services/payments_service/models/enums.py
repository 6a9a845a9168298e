"""Enum definitions for payments service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class PaymentType(str, enum.Enum):
    FULL_PAYMENT = "full_payment"
    INSTALLMENTS = "installments"
    CASH = "cash"
    TERMINAL = "terminal"
    E_TRANSFER = "e_transfer"

    @property
    def is_manual(self) -> bool:
        return self in MANUAL_PAYMENT_TYPES


# Channels an admin records by hand; also the only ones that may be reverted.
MANUAL_PAYMENT_TYPES = frozenset(
    {PaymentType.CASH, PaymentType.TERMINAL, PaymentType.E_TRANSFER}
)


class PricingTier(str, enum.Enum):
    EARLY_BIRD = "early_bird"
    REGULAR = "regular"


class RecordStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


class PlayerPaymentState(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    ON_TRACK = "on_track"
    HAS_ISSUES = "has_issues"
    CRITICAL = "critical"


class SplitMethod(str, enum.Enum):
    EQUAL = "equal"
    BY_PRICING_TIER = "by_pricing_tier"


class AuditAction(str, enum.Enum):
    REVERTED = "reverted"


class ChargeOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"
