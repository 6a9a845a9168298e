"""Payment record store: loading, creation and the one recomputation routine."""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.payments_service.errors import (
    DivisionNotFoundError,
    OverpaymentError,
    PlayerNotFoundError,
    PricingUnavailableError,
    RecordNotFoundError,
    TeamNotFoundError,
)
from services.payments_service.models import (
    Division,
    InstallmentStatus,
    PaymentRecord,
    PaymentType,
    Player,
    PricingTier,
    RecordStatus,
    Team,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def record_query(for_update: bool):
    # populate_existing so a record expired by an earlier rollback, or one
    # changed by another writer, is read back fresh along with its children.
    query = select(PaymentRecord).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    return query


async def get_record(
    db: AsyncSession, record_id: uuid.UUID, *, for_update: bool = False
) -> PaymentRecord:
    result = await db.execute(
        record_query(for_update).where(PaymentRecord.id == record_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise RecordNotFoundError(f"Payment record {record_id} not found")
    return record


async def find_record(
    db: AsyncSession,
    *,
    player_id: uuid.UUID,
    division_id: uuid.UUID,
    for_update: bool = False,
) -> Optional[PaymentRecord]:
    """Return the player's record for a division, or None (meaning unpaid)."""
    result = await db.execute(
        record_query(for_update).where(
            PaymentRecord.player_id == player_id,
            PaymentRecord.division_id == division_id,
        )
    )
    return result.scalar_one_or_none()


async def find_record_by_processor_ref(
    db: AsyncSession, processor_ref: str, *, for_update: bool = False
) -> Optional[PaymentRecord]:
    result = await db.execute(
        record_query(for_update).where(PaymentRecord.processor_ref == processor_ref)
    )
    return result.scalar_one_or_none()


async def get_player(db: AsyncSession, player_id: uuid.UUID) -> Player:
    player = await db.get(Player, player_id)
    if player is None:
        raise PlayerNotFoundError(f"Player {player_id} not found")
    return player


async def get_division(db: AsyncSession, division_id: uuid.UUID) -> Division:
    division = await db.get(Division, division_id)
    if division is None:
        raise DivisionNotFoundError(f"Division {division_id} not found")
    return division


async def get_team(db: AsyncSession, team_id: uuid.UUID) -> Team:
    team = await db.get(Team, team_id)
    if team is None:
        raise TeamNotFoundError(f"Team {team_id} not found")
    return team


async def resolve_player_division(
    db: AsyncSession,
    *,
    player_id: uuid.UUID,
    division_id: Optional[uuid.UUID] = None,
) -> tuple[Player, Division]:
    """Load a player and the division being paid for (defaults to theirs)."""
    player = await get_player(db, player_id)
    division_id = division_id or player.division_id
    if division_id is None:
        raise DivisionNotFoundError(f"Player {player_id} is not in a division")
    division = await get_division(db, division_id)
    return player, division


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def resolve_price(
    division: Division, pricing_tier: Optional[PricingTier] = None
) -> tuple[PricingTier, int]:
    """Pick the tier (the division's current one unless given) and its price."""
    tier = pricing_tier or division.current_tier()
    price = division.price_for(tier)
    if not price or price <= 0:
        raise PricingUnavailableError(
            f"Division {division.name} has no {tier.value} price"
        )
    return tier, price


def new_record(
    *,
    player: Player,
    division: Division,
    payment_type: PaymentType,
    pricing_tier: PricingTier,
    original_price_cents: int,
) -> PaymentRecord:
    """Build an unsaved record with every relationship explicitly loaded.

    ``payment_type`` is set first so the channel validators on the model
    can check the children attached afterwards.
    """
    record = PaymentRecord()
    record.payment_type = payment_type
    record.pricing_tier = pricing_tier
    record.player = player
    record.player_id = player.id
    record.division = division
    record.division_id = division.id
    record.original_price_cents = original_price_cents
    record.amount_paid_cents = 0
    record.status = RecordStatus.PENDING
    record.installment_plan = None
    record.manual_receipt = None
    record.etransfer_payments = []
    return record


# ---------------------------------------------------------------------------
# Recomputation
# ---------------------------------------------------------------------------


def paid_from_children(record: PaymentRecord) -> int:
    """Sum what the record's channel-specific entries say has been paid."""
    if record.payment_type == PaymentType.INSTALLMENTS:
        plan = record.installment_plan
        if plan is None:
            return 0
        return sum(
            slot.amount_paid_cents
            for slot in plan.payments
            if slot.status == InstallmentStatus.SUCCEEDED
        )
    if record.payment_type == PaymentType.E_TRANSFER:
        return sum(entry.amount_cents for entry in record.etransfer_payments)
    if record.payment_type in (PaymentType.CASH, PaymentType.TERMINAL):
        receipt = record.manual_receipt
        return receipt.amount_cents if receipt is not None else 0
    # FULL_PAYMENT: the processor outcome is written onto the record itself.
    return record.amount_paid_cents or 0


def recompute_totals(record: PaymentRecord) -> PaymentRecord:
    """Bring ``amount_paid``, ``status`` and the plan's cached fields in line
    with the record's child entries.

    Every mutating operation calls this after touching a record. Raises
    ``OverpaymentError`` instead of clamping when the entries add up to
    more than the original price.
    """
    paid = paid_from_children(record)
    if paid > record.original_price_cents:
        raise OverpaymentError(
            f"Payments total {paid} cents against a price of "
            f"{record.original_price_cents} cents",
            details={
                "record_id": str(record.id) if record.id else None,
                "amount_paid_cents": paid,
                "original_price_cents": record.original_price_cents,
            },
        )

    record.amount_paid_cents = paid
    if paid >= record.original_price_cents:
        record.status = RecordStatus.COMPLETED
    elif paid > 0 or _has_installment_activity(record):
        record.status = RecordStatus.IN_PROGRESS
    else:
        record.status = RecordStatus.PENDING

    plan = record.installment_plan
    if plan is not None:
        if record.status == RecordStatus.COMPLETED:
            for slot in plan.payments:
                if slot.status != InstallmentStatus.SUCCEEDED:
                    slot.status = InstallmentStatus.NOT_APPLICABLE
        plan.remaining_balance_cents = record.original_price_cents - paid
        pending_dates = [
            slot.due_date
            for slot in plan.payments
            if slot.status == InstallmentStatus.PENDING and slot.due_date is not None
        ]
        plan.next_payment_date = min(pending_dates) if pending_dates else None
        plan.updated_at = utc_now()

    # Always touch the row so the version column moves with child changes.
    record.updated_at = utc_now()
    return record


def _has_installment_activity(record: PaymentRecord) -> bool:
    plan = record.installment_plan
    if plan is None:
        return False
    return any(slot.attempt_count > 0 for slot in plan.payments)
