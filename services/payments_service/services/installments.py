"""Installment plans: creation, per-slot outcomes and charging a card on file."""

import uuid
from datetime import date, datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.payments_service.errors import (
    AlreadyPaidError,
    InvalidAmountError,
    InvalidPaymentNumberError,
    OverpaymentError,
    PaymentDeclinedError,
    PaymentTypeMismatchError,
    ValidationError,
)
from services.payments_service.models import (
    ChargeOutcome,
    InstallmentPlan,
    InstallmentStatus,
    PaymentRecord,
    PaymentType,
    PricingTier,
    RecordStatus,
    SubscriptionPayment,
)
from services.payments_service.services.processor import (
    PaymentProcessor,
    charge_with_timeout,
)
from services.payments_service.services.records import (
    find_record,
    get_record,
    new_record,
    recompute_totals,
    resolve_player_division,
    resolve_price,
)
from services.payments_service.services.unit_of_work import atomic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def split_into_installments(total_cents: int, count: int) -> list[int]:
    """Split a price into ``count`` slot amounts that add up exactly.

    Leftover cents go on the first slot: 12001 over 8 -> [1501, 1500, ...].
    """
    if count < 1:
        raise ValidationError("An installment plan needs at least one payment")
    base, remainder = divmod(total_cents, count)
    if base <= 0:
        raise InvalidAmountError(
            f"{total_cents} cents cannot be split into {count} installments"
        )
    return [base + remainder] + [base] * (count - 1)


def build_schedule(
    total_cents: int,
    count: int,
    *,
    first_due_date: date,
    interval_days: int,
) -> list[SubscriptionPayment]:
    return [
        SubscriptionPayment(
            payment_number=number,
            status=InstallmentStatus.PENDING,
            amount_due_cents=amount,
            amount_paid_cents=0,
            due_date=first_due_date + timedelta(days=interval_days * (number - 1)),
            attempt_count=0,
        )
        for number, amount in enumerate(
            split_into_installments(total_cents, count), start=1
        )
    ]


def _require_installments(record: PaymentRecord) -> InstallmentPlan:
    plan = record.installment_plan
    if record.payment_type != PaymentType.INSTALLMENTS or plan is None:
        raise PaymentTypeMismatchError(
            f"Payment record {record.id} is {record.payment_type.value}, "
            "not an installment plan"
        )
    return plan


def _require_slot(plan: InstallmentPlan, payment_number: int) -> SubscriptionPayment:
    if not 1 <= payment_number <= plan.installment_count:
        raise InvalidPaymentNumberError(
            f"Payment number must be between 1 and {plan.installment_count}",
            details={"payment_number": payment_number},
        )
    slot = plan.slot(payment_number)
    if slot is None:
        raise InvalidPaymentNumberError(
            f"Installment {payment_number} does not exist on this plan"
        )
    return slot


# ---------------------------------------------------------------------------
# Plan creation
# ---------------------------------------------------------------------------


async def start_installment_plan(
    db: AsyncSession,
    *,
    player_id: uuid.UUID,
    division_id: Optional[uuid.UUID] = None,
    pricing_tier: Optional[PricingTier] = None,
    installment_count: Optional[int] = None,
    interval_days: Optional[int] = None,
    first_due_date: Optional[date] = None,
    payment_method_ref: Optional[str] = None,
    subscription_ref: Optional[str] = None,
    payment_links: Optional[dict[int, str]] = None,
    invoice_refs: Optional[dict[int, str]] = None,
) -> PaymentRecord:
    """Create an INSTALLMENTS record with ``N`` pending slots.

    Idempotent: an existing installment record for the player and division
    is returned unchanged.
    """
    settings = get_settings()
    count = installment_count or settings.INSTALLMENT_COUNT
    interval = interval_days or settings.INSTALLMENT_INTERVAL_DAYS

    async with atomic(db):
        player, division = await resolve_player_division(
            db, player_id=player_id, division_id=division_id
        )
        existing = await find_record(
            db, player_id=player.id, division_id=division.id, for_update=True
        )
        if existing is not None:
            if existing.payment_type != PaymentType.INSTALLMENTS:
                raise PaymentTypeMismatchError(
                    f"Player already has a {existing.payment_type.value} payment "
                    "for this division; revert it before starting a plan"
                )
            return existing

        tier, price = resolve_price(division, pricing_tier)
        slots = build_schedule(
            price,
            count,
            first_due_date=first_due_date or utc_now().date(),
            interval_days=interval,
        )
        for slot in slots:
            slot.payment_link = (payment_links or {}).get(slot.payment_number)
            slot.invoice_ref = (invoice_refs or {}).get(slot.payment_number)

        record = new_record(
            player=player,
            division=division,
            payment_type=PaymentType.INSTALLMENTS,
            pricing_tier=tier,
            original_price_cents=price,
        )
        record.installment_plan = InstallmentPlan(
            installment_count=count,
            subscription_ref=subscription_ref,
            payment_method_ref=payment_method_ref,
            payments=slots,
        )
        recompute_totals(record)
        db.add(record)

    logger.info(
        "Started %d-payment plan %s for player %s division %s (%d cents, %s)",
        count,
        record.id,
        player.id,
        division.id,
        price,
        tier.value,
    )
    return await get_record(db, record.id)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


async def record_installment_outcome(
    db: AsyncSession,
    *,
    record_id: uuid.UUID,
    payment_number: int,
    outcome: ChargeOutcome,
    amount_cents: Optional[int] = None,
    invoice_ref: Optional[str] = None,
    failure_reason: Optional[str] = None,
    attempted_at: Optional[datetime] = None,
) -> PaymentRecord:
    """Apply one processor outcome to an installment slot.

    1. Lock the record and validate the slot
    2. Succeeded: pay the slot (replays of the same invoice are no-ops)
    3. Failed: count the attempt; a paid or closed slot keeps its status
    4. Recompute totals, completion and the next due date
    5. Commit atomically

    Any slot in range may be updated, in any order.
    """
    outcome = ChargeOutcome(outcome)
    if outcome == ChargeOutcome.PENDING:
        raise ValidationError("Only succeeded or failed outcomes can be recorded")
    attempted_at = attempted_at or utc_now()

    async with atomic(db):
        # 1. Lock and validate
        record = await get_record(db, record_id, for_update=True)
        plan = _require_installments(record)
        slot = _require_slot(plan, payment_number)

        if outcome == ChargeOutcome.SUCCEEDED:
            # 2. Success
            if slot.status == InstallmentStatus.SUCCEEDED:
                if invoice_ref is None or invoice_ref == slot.invoice_ref:
                    logger.info(
                        "Idempotent replay for record=%s installment=%d invoice=%s",
                        record.id,
                        payment_number,
                        invoice_ref,
                    )
                    return record
                raise AlreadyPaidError(
                    f"Installment {payment_number} was already paid by "
                    f"invoice {slot.invoice_ref}"
                )
            if slot.status == InstallmentStatus.NOT_APPLICABLE:
                raise AlreadyPaidError(
                    f"Plan is fully paid; installment {payment_number} is closed"
                )

            amount = slot.amount_due_cents if amount_cents is None else amount_cents
            if amount <= 0:
                raise InvalidAmountError("Installment amount must be greater than zero")
            if record.amount_paid_cents + amount > record.original_price_cents:
                raise OverpaymentError(
                    f"Installment of {amount} cents would exceed the "
                    f"{record.original_price_cents} cent price",
                    details={"outstanding_cents": record.outstanding_cents},
                )

            slot.status = InstallmentStatus.SUCCEEDED
            slot.amount_paid_cents = amount
            slot.failure_reason = None
            if invoice_ref:
                slot.invoice_ref = invoice_ref
        else:
            # 3. Failure
            if slot.status in (
                InstallmentStatus.SUCCEEDED,
                InstallmentStatus.NOT_APPLICABLE,
            ):
                logger.warning(
                    "Failure reported for %s installment %d of record %s; "
                    "keeping status",
                    slot.status.value,
                    payment_number,
                    record.id,
                )
            else:
                slot.status = InstallmentStatus.FAILED
            slot.failure_reason = failure_reason
            if invoice_ref and not slot.invoice_ref:
                slot.invoice_ref = invoice_ref

        slot.attempt_count += 1
        slot.last_attempt_at = attempted_at
        slot.updated_at = attempted_at

        # 4. Recompute
        recompute_totals(record)

    logger.info(
        "Installment %d %s on record %s (paid %d/%d cents, status=%s)",
        payment_number,
        outcome.value,
        record.id,
        record.amount_paid_cents,
        record.original_price_cents,
        record.status.value,
    )
    return await get_record(db, record.id)


async def find_installment_by_invoice(
    db: AsyncSession, invoice_ref: str
) -> Optional[tuple[uuid.UUID, int]]:
    """Return ``(record_id, payment_number)`` for the slot billed by an invoice."""
    result = await db.execute(
        select(InstallmentPlan.record_id, SubscriptionPayment.payment_number)
        .join(SubscriptionPayment, SubscriptionPayment.plan_id == InstallmentPlan.id)
        .where(SubscriptionPayment.invoice_ref == invoice_ref)
    )
    row = result.first()
    return (row[0], row[1]) if row is not None else None


# ---------------------------------------------------------------------------
# Charging
# ---------------------------------------------------------------------------


async def charge_installment(
    db: AsyncSession,
    *,
    record_id: uuid.UUID,
    payment_number: int,
    processor: PaymentProcessor,
    payment_method_ref: Optional[str] = None,
    timeout: Optional[float] = None,
) -> PaymentRecord:
    """Charge one installment against the card on file (or a terminal reader).

    Nothing is written if the processor does not answer within ``timeout``.
    A decline is written into the slot before ``PaymentDeclinedError`` is raised.
    """
    timeout = timeout or get_settings().PROCESSOR_TIMEOUT_SECONDS

    record = await get_record(db, record_id)
    plan = _require_installments(record)
    slot = _require_slot(plan, payment_number)
    if record.status == RecordStatus.COMPLETED or slot.status in (
        InstallmentStatus.SUCCEEDED,
        InstallmentStatus.NOT_APPLICABLE,
    ):
        raise AlreadyPaidError(f"Installment {payment_number} needs no payment")

    method_ref = payment_method_ref or plan.payment_method_ref
    if not method_ref:
        raise ValidationError("No payment method on file for this plan")
    amount = min(slot.amount_due_cents, record.outstanding_cents)

    result = await charge_with_timeout(
        processor,
        payment_method_ref=method_ref,
        amount_cents=amount,
        timeout=timeout,
        metadata={
            "record_id": str(record.id),
            "payment_number": payment_number,
            "player_id": str(record.player_id),
        },
    )

    if result.outcome == ChargeOutcome.SUCCEEDED:
        return await record_installment_outcome(
            db,
            record_id=record_id,
            payment_number=payment_number,
            outcome=ChargeOutcome.SUCCEEDED,
            amount_cents=amount,
            invoice_ref=result.processor_ref,
        )

    await record_installment_outcome(
        db,
        record_id=record_id,
        payment_number=payment_number,
        outcome=ChargeOutcome.FAILED,
        invoice_ref=result.processor_ref,
        failure_reason=result.failure_reason,
    )
    raise PaymentDeclinedError(
        result.failure_reason or "Card was declined",
        details={
            "record_id": str(record_id),
            "payment_number": payment_number,
            "processor_ref": result.processor_ref,
        },
    )
