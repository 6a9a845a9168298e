"""Payment records and their channel-specific details.

One ``PaymentRecord`` exists per (player, division). Its ``payment_type``
decides which child rows it may own:

* INSTALLMENTS -> one ``InstallmentPlan`` with numbered ``SubscriptionPayment`` slots
* E_TRANSFER   -> any number of ``ETransferPayment`` rows
* CASH/TERMINAL -> one ``ManualReceipt``
* FULL_PAYMENT -> none; the processor outcome lands on the record itself

Totals and status are never recomputed here; callers go through
``services.records.recompute_totals`` after changing child rows.
"""

import random
import string
import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.payments_service.errors import PaymentTypeMismatchError
from services.payments_service.models.enums import (
    InstallmentStatus,
    PaymentType,
    PricingTier,
    RecordStatus,
    enum_values,
)
from services.payments_service.models.league import Division, Player
from sqlalchemy import CheckConstraint, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates


def _payment_type_enum() -> SAEnum:
    return SAEnum(
        PaymentType,
        name="payment_type_enum",
        values_callable=enum_values,
        validate_strings=True,
    )


class PaymentRecord(Base):
    __tablename__ = "payment_records"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "division_id", name="uq_payment_records_player_division"
        ),
        CheckConstraint("original_price_cents > 0", name="original_price_positive"),
        CheckConstraint("amount_paid_cents >= 0", name="amount_paid_non_negative"),
        CheckConstraint(
            "amount_paid_cents <= original_price_cents", name="amount_paid_within_price"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    player_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True
    )
    division_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("divisions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    payment_type: Mapped[PaymentType] = mapped_column(
        _payment_type_enum(), nullable=False
    )
    pricing_tier: Mapped[PricingTier] = mapped_column(
        SAEnum(
            PricingTier,
            name="pricing_tier_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    status: Mapped[RecordStatus] = mapped_column(
        SAEnum(
            RecordStatus,
            name="record_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=RecordStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Amounts in cents
    original_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # FULL_PAYMENT only: processor charge / checkout reference
    processor_ref: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True
    )
    payment_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Bumped on every flush; a stale writer gets StaleDataError.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    player: Mapped[Player] = relationship(lazy="selectin")
    division: Mapped[Division] = relationship(lazy="selectin")

    installment_plan: Mapped[Optional["InstallmentPlan"]] = relationship(
        back_populates="record",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    etransfer_payments: Mapped[list["ETransferPayment"]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="ETransferPayment.position",
        lazy="selectin",
    )
    manual_receipt: Mapped[Optional["ManualReceipt"]] = relationship(
        back_populates="record",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    # payment_type must be assigned before any channel child, so construct
    # records through services.records.new_record rather than by keyword.

    @validates("payment_type")
    def _validate_payment_type(self, key, value):
        value = PaymentType(value)
        current = self.__dict__.get("payment_type")
        if current is not None and current != value:
            raise PaymentTypeMismatchError(
                f"Payment record is {current.value}; it cannot become {value.value}"
            )
        return value

    @validates("installment_plan")
    def _validate_installment_plan(self, key, value):
        if value is not None:
            self._require_type(key, PaymentType.INSTALLMENTS)
        return value

    @validates("etransfer_payments")
    def _validate_etransfer(self, key, value):
        self._require_type(key, PaymentType.E_TRANSFER)
        return value

    @validates("manual_receipt")
    def _validate_manual_receipt(self, key, value):
        if value is not None:
            self._require_type(key, PaymentType.CASH, PaymentType.TERMINAL)
        return value

    def _require_type(self, key: str, *allowed: PaymentType) -> None:
        current = self.__dict__.get("payment_type")
        if current not in allowed:
            label = getattr(current, "value", current)
            raise ValueError(f"{key} cannot be attached to a {label} record")

    @property
    def outstanding_cents(self) -> int:
        return max(self.original_price_cents - (self.amount_paid_cents or 0), 0)

    def __repr__(self):
        return (
            f"<PaymentRecord {self.id} {self.payment_type.value} "
            f"{self.status.value}>"
        )


class InstallmentPlan(Base):
    __tablename__ = "installment_plans"
    __table_args__ = (
        CheckConstraint("installment_count >= 1", name="installment_count_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payment_records.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    installment_count: Mapped[int] = mapped_column(Integer, nullable=False)
    # Processor-side subscription reference
    subscription_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payment_method_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)

    remaining_balance_cents: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    next_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    record: Mapped[PaymentRecord] = relationship(back_populates="installment_plan")
    payments: Mapped[list["SubscriptionPayment"]] = relationship(
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="SubscriptionPayment.payment_number",
        lazy="selectin",
    )

    def slot(self, payment_number: int) -> Optional["SubscriptionPayment"]:
        for payment in self.payments:
            if payment.payment_number == payment_number:
                return payment
        return None


class SubscriptionPayment(Base):
    """One numbered installment slot."""

    __tablename__ = "subscription_payments"
    __table_args__ = (
        UniqueConstraint(
            "plan_id", "payment_number", name="uq_subscription_payments_plan_number"
        ),
        CheckConstraint("payment_number >= 1", name="payment_number_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("installment_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[InstallmentStatus] = mapped_column(
        SAEnum(
            InstallmentStatus,
            name="installment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=InstallmentStatus.PENDING,
        nullable=False,
    )
    amount_due_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Processor invoice for this slot; a repeat success on it is a replay.
    invoice_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payment_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    plan: Mapped[InstallmentPlan] = relationship(back_populates="payments")


class ETransferPayment(Base):
    __tablename__ = "etransfer_payments"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payment_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Insertion order within the record
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    # Shared by every record paid out of one bulk transfer
    transaction_ref: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    reference_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sender_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sender_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    received_by: Mapped[str] = mapped_column(String, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    record: Mapped[PaymentRecord] = relationship(back_populates="etransfer_payments")

    @staticmethod
    def generate_reference() -> str:
        suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=8))
        return f"ET-{suffix}"


class ManualReceipt(Base):
    """Cash or in-person terminal payment details."""

    __tablename__ = "manual_receipts"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payment_records.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    channel: Mapped[PaymentType] = mapped_column(_payment_type_enum(), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Terminal only
    processor_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    card_brand: Mapped[str | None] = mapped_column(String(32), nullable=True)
    card_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    reader_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    received_by: Mapped[str] = mapped_column(String, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    record: Mapped[PaymentRecord] = relationship(back_populates="manual_receipt")
