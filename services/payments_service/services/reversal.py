"""Undo a manually recorded payment, leaving an audit trail behind."""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.payments_service.errors import (
    MissingAttributionError,
    MissingReasonError,
    NonRevertibleChannelError,
)
from services.payments_service.models import (
    AuditAction,
    PaymentAuditLog,
)
from services.payments_service.schemas.records import snapshot_record
from services.payments_service.services.records import get_record
from services.payments_service.services.unit_of_work import atomic
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def revert_payment(
    db: AsyncSession,
    *,
    record_id: uuid.UUID,
    reason: str,
    performed_by: str,
) -> PaymentAuditLog:
    """Delete a cash, terminal or e-transfer record and log why.

    The whole record goes, every e-transfer on it included, and the player
    is unpaid for that division again. Processor-driven records (full
    payments, installment plans) are refunded through the processor instead.

    1. Validate reason and attribution
    2. Lock the record and check its channel
    3. Snapshot it into an append-only audit row
    4. Delete the record and its entries
    5. Commit atomically
    """
    # 1. Validate
    reason = (reason or "").strip()
    if not reason:
        raise MissingReasonError("A reason is required to revert a payment")
    if not (performed_by or "").strip():
        raise MissingAttributionError("Reverting a payment must record who did it")

    async with atomic(db):
        # 2. Lock and check
        record = await get_record(db, record_id, for_update=True)
        if not record.payment_type.is_manual:
            raise NonRevertibleChannelError(
                f"{record.payment_type.value} payments go through the processor "
                "and cannot be reverted here",
                details={"record_id": str(record.id)},
            )

        # 3. Audit
        entry = PaymentAuditLog(
            action=AuditAction.REVERTED,
            record_id=record.id,
            player_id=record.player_id,
            division_id=record.division_id,
            payment_type=record.payment_type,
            amount_cents=record.amount_paid_cents,
            snapshot=snapshot_record(record),
            reason=reason,
            performed_by=performed_by,
        )
        db.add(entry)

        # 4. Delete
        await db.delete(record)

    logger.info(
        "Reverted %s payment %s (%d cents) for player %s by %s: %s",
        entry.payment_type.value,
        entry.record_id,
        entry.amount_cents,
        entry.player_id,
        performed_by,
        reason,
    )
    return entry


async def list_audit_entries(
    db: AsyncSession,
    *,
    player_id: Optional[uuid.UUID] = None,
    division_id: Optional[uuid.UUID] = None,
    limit: int = 100,
) -> list[PaymentAuditLog]:
    query = select(PaymentAuditLog)
    if player_id:
        query = query.where(PaymentAuditLog.player_id == player_id)
    if division_id:
        query = query.where(PaymentAuditLog.division_id == division_id)
    query = query.order_by(desc(PaymentAuditLog.created_at)).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
