"""One-time card payments made through a processor-hosted payment link."""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.payments_service.errors import (
    AlreadyPaidError,
    InvalidAmountError,
    PaymentTypeMismatchError,
    RecordNotFoundError,
    ValidationError,
)
from services.payments_service.models import (
    ChargeOutcome,
    PaymentRecord,
    PaymentType,
    PricingTier,
    RecordStatus,
)
from services.payments_service.services.records import (
    find_record,
    find_record_by_processor_ref,
    get_record,
    new_record,
    recompute_totals,
    resolve_player_division,
    resolve_price,
)
from services.payments_service.services.unit_of_work import atomic
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def start_full_payment(
    db: AsyncSession,
    *,
    player_id: uuid.UUID,
    division_id: Optional[uuid.UUID] = None,
    pricing_tier: Optional[PricingTier] = None,
    processor_ref: Optional[str] = None,
    payment_link: Optional[str] = None,
) -> PaymentRecord:
    """Create (or refresh the link on) a PENDING full-payment record."""
    async with atomic(db):
        player, division = await resolve_player_division(
            db, player_id=player_id, division_id=division_id
        )
        record = await find_record(
            db, player_id=player.id, division_id=division.id, for_update=True
        )
        if record is None:
            tier, price = resolve_price(division, pricing_tier)
            record = new_record(
                player=player,
                division=division,
                payment_type=PaymentType.FULL_PAYMENT,
                pricing_tier=tier,
                original_price_cents=price,
            )
            db.add(record)
        elif record.payment_type != PaymentType.FULL_PAYMENT:
            raise PaymentTypeMismatchError(
                f"Player already pays this division by {record.payment_type.value}"
            )
        elif record.status == RecordStatus.COMPLETED:
            raise AlreadyPaidError("Player has already paid for this division")

        record.processor_ref = processor_ref or record.processor_ref
        record.payment_link = payment_link or record.payment_link
        recompute_totals(record)

    logger.info(
        "Issued full payment link for player %s division %s (ref=%s)",
        player.id,
        division.id,
        record.processor_ref,
    )
    return await get_record(db, record.id)


async def record_full_payment_outcome(
    db: AsyncSession,
    *,
    outcome: ChargeOutcome,
    record_id: Optional[uuid.UUID] = None,
    processor_ref: Optional[str] = None,
    amount_cents: Optional[int] = None,
    failure_reason: Optional[str] = None,
) -> PaymentRecord:
    """Apply the processor's verdict on a one-time charge.

    Success completes the record (a replay is a no-op). Failure leaves it
    pending so the player can retry the link; it is logged, not raised.
    """
    outcome = ChargeOutcome(outcome)
    if record_id is None and not processor_ref:
        raise ValidationError("A record id or processor reference is required")

    async with atomic(db):
        if record_id is not None:
            record = await get_record(db, record_id, for_update=True)
        else:
            record = await find_record_by_processor_ref(
                db, processor_ref, for_update=True
            )
            if record is None:
                raise RecordNotFoundError(
                    f"No payment record for processor reference {processor_ref}"
                )
        if record.payment_type != PaymentType.FULL_PAYMENT:
            raise PaymentTypeMismatchError(
                f"Payment record {record.id} is {record.payment_type.value}"
            )

        if outcome == ChargeOutcome.SUCCEEDED:
            if record.status == RecordStatus.COMPLETED:
                logger.info("Idempotent replay for full payment %s", record.id)
                return record
            amount = amount_cents
            if amount is None:
                amount = record.original_price_cents
            if amount != record.original_price_cents:
                raise InvalidAmountError(
                    f"Charged {amount} cents but {record.original_price_cents} "
                    "cents are owed",
                    details={"record_id": str(record.id)},
                )
            record.amount_paid_cents = amount
            if processor_ref:
                record.processor_ref = processor_ref
        else:
            logger.warning(
                "Full payment %s failed at the processor: %s",
                record.id,
                failure_reason,
            )
        recompute_totals(record)

    logger.info(
        "Full payment %s %s (status=%s)",
        record.id,
        outcome.value,
        record.status.value,
    )
    return await get_record(db, record.id)
