"""Allocate one team e-transfer across several players.

A captain often sends a single transfer covering teammates. The admin
picks which players it covers and how to divide it; every per-player
record is then written in one transaction sharing the transfer's
``transaction_ref``.
"""

import uuid
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from libs.common.logging import get_logger
from services.payments_service.errors import (
    AlreadyPaidError,
    DuplicatePlayerSelectionError,
    InsufficientBulkAmountError,
    InvalidAmountError,
    PaymentTypeMismatchError,
    PlayerNotFoundError,
    PlayerNotOnTeamError,
    UnallocatedBulkAmountError,
    ValidationError,
)
from services.payments_service.models import (
    ETransferPayment,
    PaymentRecord,
    PaymentType,
    Player,
    PricingTier,
    RecordStatus,
    SplitMethod,
)
from services.payments_service.services.manual_payments import (
    PaymentDetails,
    apply_manual_payment,
    validate_manual_entry,
)
from services.payments_service.services.records import (
    get_team,
    record_query,
    resolve_price,
)
from services.payments_service.services.unit_of_work import atomic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class Allocation:
    player_id: uuid.UUID
    amount_cents: int


@dataclass
class BulkSplitResult:
    transaction_ref: str
    method: SplitMethod
    total_amount_cents: int
    allocations: list[Allocation]
    records: list[PaymentRecord] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Allocation rules (pure)
# ---------------------------------------------------------------------------


def allocate_equal(
    total_cents: int, player_ids: Sequence[uuid.UUID]
) -> list[Allocation]:
    """Even shares; leftover cents go to the first player listed.

    $100.00 over 3 -> 3334, 3333, 3333.
    """
    if not player_ids:
        raise ValidationError("Select at least one player")
    base, remainder = divmod(total_cents, len(player_ids))
    if base <= 0:
        raise InvalidAmountError(
            f"{total_cents} cents cannot be split across {len(player_ids)} players"
        )
    return [
        Allocation(player_id, base + (remainder if index == 0 else 0))
        for index, player_id in enumerate(player_ids)
    ]


def allocate_by_pricing_tier(
    total_cents: int, owed: Sequence[tuple[uuid.UUID, int]]
) -> list[Allocation]:
    """Each player gets exactly what they owe; the total must match."""
    required = sum(amount for _, amount in owed)
    if total_cents < required:
        raise InsufficientBulkAmountError(
            f"Transfer of {total_cents} cents does not cover the {required} cents "
            "owed by the selected players",
            details={
                "required_cents": required,
                "shortfall_cents": required - total_cents,
            },
        )
    if total_cents > required:
        raise UnallocatedBulkAmountError(
            f"Transfer of {total_cents} cents is {total_cents - required} cents more "
            "than the selected players owe",
            details={
                "required_cents": required,
                "surplus_cents": total_cents - required,
            },
        )
    return [Allocation(player_id, amount) for player_id, amount in owed]


# ---------------------------------------------------------------------------
# Operation
# ---------------------------------------------------------------------------


async def split_team_etransfer(
    db: AsyncSession,
    *,
    team_id: uuid.UUID,
    total_amount_cents: int,
    player_ids: Sequence[uuid.UUID],
    method: SplitMethod,
    details: PaymentDetails,
    pricing_tiers: Optional[Mapping[uuid.UUID, PricingTier]] = None,
) -> BulkSplitResult:
    """Record one e-transfer as per-player payments, all or nothing.

    ``pricing_tiers`` names the tier a player without a record is paying
    at (the division's current tier otherwise). A player who already has a
    record keeps the tier it was opened with.

    1. Validate the selection
    2. Lock every selected player's record for the team's division
    3. Work out what each player owes and allocate the transfer
    4. Apply one e-transfer entry per player
    5. Commit atomically; any failure leaves every record untouched
    """
    method = SplitMethod(method)

    # 1. Validate
    validate_manual_entry(PaymentType.E_TRANSFER, total_amount_cents, details)
    if not player_ids:
        raise ValidationError("Select at least one player")
    if len(set(player_ids)) != len(player_ids):
        raise DuplicatePlayerSelectionError("A player was selected more than once")

    tiers = {pid: PricingTier(tier) for pid, tier in (pricing_tiers or {}).items()}
    unselected = [str(pid) for pid in tiers if pid not in player_ids]
    if unselected:
        raise ValidationError(
            "Pricing tiers given for players who are not selected",
            details={"player_ids": unselected},
        )

    transaction_ref = details.transaction_ref or ETransferPayment.generate_reference()

    async with atomic(db):
        team = await get_team(db, team_id)
        division = team.division

        result = await db.execute(select(Player).where(Player.id.in_(player_ids)))
        players = {player.id: player for player in result.scalars().all()}
        missing = [str(pid) for pid in player_ids if pid not in players]
        if missing:
            raise PlayerNotFoundError(
                "Players not found", details={"player_ids": missing}
            )
        off_team = [str(pid) for pid in player_ids if players[pid].team_id != team.id]
        if off_team:
            raise PlayerNotOnTeamError(
                f"Selected players are not on {team.name}",
                details={"player_ids": off_team},
            )

        # 2. Lock
        result = await db.execute(
            record_query(for_update=True).where(
                PaymentRecord.division_id == division.id,
                PaymentRecord.player_id.in_(player_ids),
            )
        )
        records = {record.player_id: record for record in result.scalars().all()}

        # 3. Allocate
        owed: list[tuple[uuid.UUID, int]] = []
        for player_id in player_ids:
            record = records.get(player_id)
            if record is None:
                _, price = resolve_price(division, tiers.get(player_id))
                owed.append((player_id, price))
                continue
            if record.payment_type != PaymentType.E_TRANSFER:
                raise PaymentTypeMismatchError(
                    f"{players[player_id].full_name} already pays by "
                    f"{record.payment_type.value}",
                    details={"player_id": str(player_id)},
                )
            if record.status == RecordStatus.COMPLETED:
                raise AlreadyPaidError(
                    f"{players[player_id].full_name} has already paid",
                    details={"player_id": str(player_id)},
                )
            owed.append((player_id, record.outstanding_cents))

        if method == SplitMethod.EQUAL:
            allocations = allocate_equal(total_amount_cents, list(player_ids))
        else:
            allocations = allocate_by_pricing_tier(total_amount_cents, owed)

        # 4. Apply
        written: list[PaymentRecord] = []
        for allocation in allocations:
            existing = records.get(allocation.player_id)
            record = apply_manual_payment(
                existing,
                player=players[allocation.player_id],
                division=division,
                channel=PaymentType.E_TRANSFER,
                amount_cents=allocation.amount_cents,
                details=PaymentDetails(
                    received_by=details.received_by,
                    notes=details.notes,
                    received_at=details.received_at,
                    transaction_ref=transaction_ref,
                    reference_number=details.reference_number,
                    sender_name=details.sender_name,
                    sender_email=details.sender_email,
                ),
                pricing_tier=tiers.get(allocation.player_id),
            )
            if existing is None:
                db.add(record)
            written.append(record)

    logger.info(
        "Split e-transfer %s of %d cents across %d players on team %s (%s)",
        transaction_ref,
        total_amount_cents,
        len(allocations),
        team.id,
        method.value,
    )
    record_ids = [record.id for record in written]
    result = await db.execute(
        record_query(for_update=False).where(PaymentRecord.id.in_(record_ids))
    )
    by_id = {record.id: record for record in result.scalars().all()}
    return BulkSplitResult(
        transaction_ref=transaction_ref,
        method=method,
        total_amount_cents=total_amount_cents,
        allocations=allocations,
        records=[by_id[record_id] for record_id in record_ids],
    )
