"""Payments Service schemas package."""

from services.payments_service.schemas.analytics import (
    ANALYTICS_SCHEMA_VERSION,
    AnalyticsReport,
    CityBreakdown,
    DailyPoint,
    Linkage,
    PaymentTypeStats,
    PeriodComparison,
    SkippedReferences,
    StatusStats,
    TierStats,
)
from services.payments_service.schemas.records import (
    AuditLogRead,
    PaymentRecordRead,
    PlayerPaymentDetail,
    PlayerPaymentRow,
    PlayerRead,
    PlayerRecordState,
    TeamPaymentSummaryRead,
    TeamPlayerBalance,
    serialize_record,
    snapshot_record,
)
from services.payments_service.schemas.requests import (
    ChargeInstallmentRequest,
    InstallmentOutcomeRequest,
    ManualPaymentRequest,
    NotifyCaptainRequest,
    ReminderRead,
    RevertPaymentRequest,
    SplitAllocationRead,
    SplitPlayerSelection,
    StartFullPaymentRequest,
    StartInstallmentPlanRequest,
    TeamETransferSplitRequest,
    TeamETransferSplitResponse,
    TerminalChargeRequest,
)

__all__ = [
    "ANALYTICS_SCHEMA_VERSION",
    "AnalyticsReport",
    "AuditLogRead",
    "ChargeInstallmentRequest",
    "CityBreakdown",
    "DailyPoint",
    "InstallmentOutcomeRequest",
    "Linkage",
    "ManualPaymentRequest",
    "NotifyCaptainRequest",
    "PaymentRecordRead",
    "PaymentTypeStats",
    "PeriodComparison",
    "PlayerPaymentDetail",
    "PlayerPaymentRow",
    "PlayerRead",
    "PlayerRecordState",
    "ReminderRead",
    "RevertPaymentRequest",
    "SkippedReferences",
    "SplitAllocationRead",
    "SplitPlayerSelection",
    "StartFullPaymentRequest",
    "StartInstallmentPlanRequest",
    "StatusStats",
    "TeamETransferSplitRequest",
    "TeamETransferSplitResponse",
    "TeamPaymentSummaryRead",
    "TeamPlayerBalance",
    "TerminalChargeRequest",
    "TierStats",
    "serialize_record",
    "snapshot_record",
]
