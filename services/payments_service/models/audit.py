"""Append-only audit trail for destructive admin operations."""

import uuid
from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.payments_service.models.enums import AuditAction, PaymentType, enum_values
from sqlalchemy import JSON, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column


class PaymentAuditLog(Base):
    """Tracks reverted payments.

    Rows outlive the record they describe, so ``record_id`` is a plain
    column, not a foreign key. ``snapshot`` holds the record as it looked
    immediately before it was removed.
    """

    __tablename__ = "payment_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="payment_audit_action_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    record_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    player_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    division_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    payment_type: Mapped[PaymentType] = mapped_column(
        SAEnum(
            PaymentType,
            name="payment_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    performed_by: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self):
        return f"<PaymentAuditLog {self.action.value} {self.record_id}>"
