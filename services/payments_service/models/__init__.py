"""Payments Service models package."""

from services.payments_service.models.audit import PaymentAuditLog
from services.payments_service.models.core import (
    ETransferPayment,
    InstallmentPlan,
    ManualReceipt,
    PaymentRecord,
    SubscriptionPayment,
)
from services.payments_service.models.enums import (
    MANUAL_PAYMENT_TYPES,
    AuditAction,
    ChargeOutcome,
    InstallmentStatus,
    PaymentType,
    PlayerPaymentState,
    PricingTier,
    RecordStatus,
    SplitMethod,
)
from services.payments_service.models.league import City, Division, Player, Team

__all__ = [
    "MANUAL_PAYMENT_TYPES",
    "AuditAction",
    "ChargeOutcome",
    "City",
    "Division",
    "ETransferPayment",
    "InstallmentPlan",
    "InstallmentStatus",
    "ManualReceipt",
    "PaymentAuditLog",
    "PaymentRecord",
    "PaymentType",
    "Player",
    "PlayerPaymentState",
    "PricingTier",
    "RecordStatus",
    "SplitMethod",
    "SubscriptionPayment",
    "Team",
]
