"""Request and response bodies for the admin payments API.

Amounts arrive in dollars (``Decimal``) and are converted to cents before
they reach the service layer. Amount rules (positive, within the price)
are enforced by the services so every caller gets the same typed errors.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from services.payments_service.models import (
    ChargeOutcome,
    PaymentType,
    PricingTier,
    SplitMethod,
)
from services.payments_service.schemas.records import PaymentRecordRead

ManualChannel = Literal[PaymentType.CASH, PaymentType.TERMINAL, PaymentType.E_TRANSFER]


class ManualPaymentRequest(BaseModel):
    player_id: uuid.UUID
    division_id: Optional[uuid.UUID] = None  # defaults to the player's division
    channel: ManualChannel
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    pricing_tier: Optional[PricingTier] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    received_at: Optional[datetime] = None

    # E_TRANSFER only
    transaction_ref: Optional[str] = Field(default=None, max_length=64)
    reference_number: Optional[str] = Field(default=None, max_length=128)
    sender_name: Optional[str] = Field(default=None, max_length=200)
    sender_email: Optional[EmailStr] = None

    # TERMINAL only (when the charge was taken outside this service)
    processor_ref: Optional[str] = Field(default=None, max_length=128)
    card_brand: Optional[str] = Field(default=None, max_length=32)
    card_last4: Optional[str] = Field(default=None, min_length=4, max_length=4)
    reader_id: Optional[str] = Field(default=None, max_length=128)


class SplitPlayerSelection(BaseModel):
    player_id: uuid.UUID
    # Only used when the player has no record yet
    pricing_tier: Optional[PricingTier] = None


class TeamETransferSplitRequest(BaseModel):
    total_amount: Decimal = Field(max_digits=10, decimal_places=2)
    players: list[SplitPlayerSelection] = Field(min_length=1)
    method: SplitMethod = SplitMethod.BY_PRICING_TIER
    transaction_ref: Optional[str] = Field(default=None, max_length=64)
    reference_number: Optional[str] = Field(default=None, max_length=128)
    sender_name: Optional[str] = Field(default=None, max_length=200)
    sender_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    received_at: Optional[datetime] = None


class SplitAllocationRead(BaseModel):
    player_id: uuid.UUID
    amount: Decimal


class TeamETransferSplitResponse(BaseModel):
    transaction_ref: str
    method: SplitMethod
    total_amount: Decimal
    allocations: list[SplitAllocationRead]
    records: list[PaymentRecordRead]


class RevertPaymentRequest(BaseModel):
    reason: str = Field(max_length=2000)


class StartInstallmentPlanRequest(BaseModel):
    player_id: uuid.UUID
    division_id: Optional[uuid.UUID] = None
    pricing_tier: Optional[PricingTier] = None
    installment_count: Optional[int] = Field(default=None, ge=1, le=52)
    first_due_date: Optional[date] = None
    payment_method_ref: Optional[str] = Field(default=None, max_length=128)
    subscription_ref: Optional[str] = Field(default=None, max_length=128)


class InstallmentOutcomeRequest(BaseModel):
    outcome: Literal[ChargeOutcome.SUCCEEDED, ChargeOutcome.FAILED]
    amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    invoice_ref: Optional[str] = Field(default=None, max_length=128)
    failure_reason: Optional[str] = Field(default=None, max_length=500)
    attempted_at: Optional[datetime] = None


class ChargeInstallmentRequest(BaseModel):
    payment_method_ref: Optional[str] = Field(default=None, max_length=128)


class TerminalChargeRequest(BaseModel):
    player_id: uuid.UUID
    division_id: Optional[uuid.UUID] = None
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    reader_id: str = Field(max_length=128)
    pricing_tier: Optional[PricingTier] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class StartFullPaymentRequest(BaseModel):
    player_id: uuid.UUID
    division_id: Optional[uuid.UUID] = None
    pricing_tier: Optional[PricingTier] = None
    processor_ref: Optional[str] = Field(default=None, max_length=128)
    payment_link: Optional[str] = None


class NotifyCaptainRequest(BaseModel):
    player_id: uuid.UUID


class ReminderRead(BaseModel):
    player_id: uuid.UUID
    recipient: str
    template: str
    sent: bool
    detail: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
