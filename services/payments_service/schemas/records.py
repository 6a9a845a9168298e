"""Read models for payment records.

A record's shape depends on its ``payment_type``, so each channel has its
own model and ``PaymentRecordRead`` is the union of them, discriminated
on that field. Amounts are exposed in cents and in dollars.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from libs.common.currency import cents_to_dollars
from pydantic import BaseModel, ConfigDict, Field, computed_field
from services.payments_service.models import (
    AuditAction,
    InstallmentStatus,
    PaymentRecord,
    PaymentType,
    PlayerPaymentState,
    PricingTier,
    RecordStatus,
)


class SubscriptionPaymentRead(BaseModel):
    payment_number: int
    status: InstallmentStatus
    amount_due_cents: int
    amount_paid_cents: int
    due_date: Optional[date] = None
    attempt_count: int
    last_attempt_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    invoice_ref: Optional[str] = None
    payment_link: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InstallmentPlanRead(BaseModel):
    installment_count: int
    subscription_ref: Optional[str] = None
    remaining_balance_cents: int
    next_payment_date: Optional[date] = None
    payments: list[SubscriptionPaymentRead]

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def remaining_balance(self) -> Decimal:
        return cents_to_dollars(self.remaining_balance_cents)


class ETransferPaymentRead(BaseModel):
    position: int
    amount_cents: int
    transaction_ref: str
    reference_number: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    notes: Optional[str] = None
    received_by: str
    received_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def amount(self) -> Decimal:
        return cents_to_dollars(self.amount_cents)


class ManualReceiptRead(BaseModel):
    amount_cents: int
    notes: Optional[str] = None
    received_by: str
    received_at: datetime
    processor_ref: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    reader_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def amount(self) -> Decimal:
        return cents_to_dollars(self.amount_cents)


class _RecordReadBase(BaseModel):
    id: uuid.UUID
    player_id: uuid.UUID
    division_id: uuid.UUID
    pricing_tier: PricingTier
    status: RecordStatus
    original_price_cents: int
    amount_paid_cents: int
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def original_price(self) -> Decimal:
        return cents_to_dollars(self.original_price_cents)

    @computed_field
    @property
    def amount_paid(self) -> Decimal:
        return cents_to_dollars(self.amount_paid_cents)

    @computed_field
    @property
    def outstanding(self) -> Decimal:
        return cents_to_dollars(
            max(self.original_price_cents - self.amount_paid_cents, 0)
        )


class FullPaymentRecordRead(_RecordReadBase):
    payment_type: Literal[PaymentType.FULL_PAYMENT]
    processor_ref: Optional[str] = None
    payment_link: Optional[str] = None


class InstallmentRecordRead(_RecordReadBase):
    payment_type: Literal[PaymentType.INSTALLMENTS]
    installment_plan: InstallmentPlanRead


class CashRecordRead(_RecordReadBase):
    payment_type: Literal[PaymentType.CASH]
    manual_receipt: Optional[ManualReceiptRead] = None


class TerminalRecordRead(_RecordReadBase):
    payment_type: Literal[PaymentType.TERMINAL]
    manual_receipt: Optional[ManualReceiptRead] = None


class ETransferRecordRead(_RecordReadBase):
    payment_type: Literal[PaymentType.E_TRANSFER]
    etransfer_payments: list[ETransferPaymentRead]


PaymentRecordRead = Annotated[
    Union[
        FullPaymentRecordRead,
        InstallmentRecordRead,
        CashRecordRead,
        TerminalRecordRead,
        ETransferRecordRead,
    ],
    Field(discriminator="payment_type"),
]

_READ_MODELS: dict[PaymentType, type[_RecordReadBase]] = {
    PaymentType.FULL_PAYMENT: FullPaymentRecordRead,
    PaymentType.INSTALLMENTS: InstallmentRecordRead,
    PaymentType.CASH: CashRecordRead,
    PaymentType.TERMINAL: TerminalRecordRead,
    PaymentType.E_TRANSFER: ETransferRecordRead,
}


def serialize_record(record: PaymentRecord) -> _RecordReadBase:
    """Validate an ORM record into the read model for its payment type."""
    return _READ_MODELS[record.payment_type].model_validate(record)


def snapshot_record(record: PaymentRecord) -> dict:
    """JSON-safe copy of a record, as stored in the audit log."""
    return serialize_record(record).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------


class PlayerRead(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    email: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    division_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    is_team_captain: bool
    is_free_agent: bool

    model_config = ConfigDict(from_attributes=True)


class PlayerPaymentRow(BaseModel):
    """One line of the admin payments list."""

    player: PlayerRead
    division_id: Optional[uuid.UUID] = None
    division_name: Optional[str] = None
    city_name: Optional[str] = None
    team_name: Optional[str] = None
    payment_state: PlayerPaymentState
    state_label: str
    record_id: Optional[uuid.UUID] = None
    payment_type: Optional[PaymentType] = None
    pricing_tier: Optional[PricingTier] = None
    original_price: Optional[Decimal] = None
    amount_paid: Decimal = Decimal("0.00")
    installments_completed: Optional[str] = None
    failed_payments: int = 0
    next_payment_date: Optional[date] = None


class PlayerRecordState(BaseModel):
    payment_state: PlayerPaymentState
    state_label: str
    record: PaymentRecordRead


class PlayerPaymentDetail(BaseModel):
    player: PlayerRead
    payment_state: PlayerPaymentState
    records: list[PlayerRecordState]


class TeamPlayerBalance(BaseModel):
    player_id: uuid.UUID
    full_name: str
    email: Optional[str] = None
    payment_state: PlayerPaymentState
    amount_paid: Decimal
    outstanding: Decimal
    failed_payments: int = 0


class TeamPaymentSummaryRead(BaseModel):
    team_id: uuid.UUID
    team_name: str
    division_id: uuid.UUID
    division_name: str
    captains: list[TeamPlayerBalance]
    paid: list[TeamPlayerBalance]
    in_progress: list[TeamPlayerBalance]
    unpaid: list[TeamPlayerBalance]
    needs_attention: list[TeamPlayerBalance]
    total_outstanding: Decimal


class AuditLogRead(BaseModel):
    id: uuid.UUID
    action: AuditAction
    record_id: uuid.UUID
    player_id: uuid.UUID
    division_id: uuid.UUID
    payment_type: PaymentType
    amount_cents: int
    snapshot: dict
    reason: str
    performed_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
