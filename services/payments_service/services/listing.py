"""Admin views over players and their payment state: list, detail, CSV, team summary.

Every row's state comes from ``classify`` at read time.
"""

import csv
import io
import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.currency import cents_to_dollars
from libs.common.logging import get_logger
from services.payments_service.models import (
    City,
    Division,
    PaymentRecord,
    PaymentType,
    Player,
    PlayerPaymentState,
    Team,
)
from services.payments_service.schemas.records import (
    PlayerPaymentDetail,
    PlayerPaymentRow,
    PlayerRead,
    PlayerRecordState,
    TeamPaymentSummaryRead,
    TeamPlayerBalance,
    serialize_record,
)
from services.payments_service.services.classifier import (
    STATE_LABELS,
    classify,
    failed_installment_count,
    needs_attention,
    succeeded_installment_count,
)
from services.payments_service.services.records import (
    get_player,
    get_team,
    record_query,
)
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CSV_COLUMNS = [
    "Player",
    "Email",
    "City",
    "Division",
    "Team",
    "Payment Status",
    "Payment Type",
    "Pricing Tier",
    "Price",
    "Amount Paid",
    "Payments Completed",
    "Failed Payments",
    "Next Payment Date",
]


@dataclass(frozen=True)
class PlayerFilters:
    city_id: Optional[uuid.UUID] = None
    division_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    state: Optional[PlayerPaymentState] = None
    search: Optional[str] = None


async def _records_by_player(
    db: AsyncSession, player_ids: list[uuid.UUID]
) -> dict[tuple[uuid.UUID, uuid.UUID], PaymentRecord]:
    if not player_ids:
        return {}
    result = await db.execute(
        record_query(False).where(PaymentRecord.player_id.in_(player_ids))
    )
    return {(r.player_id, r.division_id): r for r in result.scalars().all()}


def _payment_row(
    player: Player,
    record: Optional[PaymentRecord],
    division: Optional[Division],
    team: Optional[Team],
    city: Optional[City],
) -> PlayerPaymentRow:
    state = classify(record)
    row = PlayerPaymentRow(
        player=PlayerRead.model_validate(player),
        division_id=division.id if division else None,
        division_name=division.name if division else None,
        city_name=city.name if city else None,
        team_name=team.name if team else None,
        payment_state=state,
        state_label=STATE_LABELS[state],
    )
    if record is None:
        return row

    row.record_id = record.id
    row.payment_type = record.payment_type
    row.pricing_tier = record.pricing_tier
    row.original_price = cents_to_dollars(record.original_price_cents)
    row.amount_paid = cents_to_dollars(record.amount_paid_cents)
    plan = record.installment_plan
    if record.payment_type == PaymentType.INSTALLMENTS and plan is not None:
        row.installments_completed = (
            f"{succeeded_installment_count(record)}/{plan.installment_count}"
        )
        row.failed_payments = failed_installment_count(record)
        row.next_payment_date = plan.next_payment_date
    return row


async def list_players_with_payment_state(
    db: AsyncSession, filters: Optional[PlayerFilters] = None
) -> list[PlayerPaymentRow]:
    """Every matching player with their record for their current division."""
    filters = filters or PlayerFilters()

    query = (
        select(Player, Division, Team, City)
        .outerjoin(Division, Player.division_id == Division.id)
        .outerjoin(Team, Player.team_id == Team.id)
        .outerjoin(City, Division.city_id == City.id)
    )
    if filters.city_id:
        query = query.where(Division.city_id == filters.city_id)
    if filters.division_id:
        query = query.where(Player.division_id == filters.division_id)
    if filters.team_id:
        query = query.where(Player.team_id == filters.team_id)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        query = query.where(
            or_(
                Player.first_name.ilike(pattern),
                Player.last_name.ilike(pattern),
                Player.email.ilike(pattern),
            )
        )
    query = query.order_by(Player.last_name, Player.first_name)

    result = await db.execute(query)
    rows = result.all()
    records = await _records_by_player(db, [player.id for player, *_ in rows])

    payment_rows = []
    for player, division, team, city in rows:
        record = records.get((player.id, player.division_id))
        row = _payment_row(player, record, division, team, city)
        if filters.state is not None and row.payment_state != filters.state:
            continue
        payment_rows.append(row)
    return payment_rows


async def get_player_payment_detail(
    db: AsyncSession, player_id: uuid.UUID
) -> PlayerPaymentDetail:
    """A player's records across divisions, each with its derived state.

    The overall state is the one for the player's current division.
    """
    player = await get_player(db, player_id)
    result = await db.execute(
        record_query(False)
        .where(PaymentRecord.player_id == player.id)
        .order_by(PaymentRecord.created_at)
    )
    records = list(result.scalars().all())
    current = next((r for r in records if r.division_id == player.division_id), None)

    return PlayerPaymentDetail(
        player=PlayerRead.model_validate(player),
        payment_state=classify(current),
        records=[
            PlayerRecordState(
                payment_state=classify(record),
                state_label=STATE_LABELS[classify(record)],
                record=serialize_record(record),
            )
            for record in records
        ],
    )


def export_csv(rows: list[PlayerPaymentRow]) -> str:
    """Render list rows as CSV text for spreadsheet download."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for row in rows:
        writer.writerow(
            [
                row.player.full_name,
                row.player.email or "",
                row.city_name or "",
                row.division_name or "",
                row.team_name or "",
                row.state_label,
                row.payment_type.value if row.payment_type else "",
                row.pricing_tier.value if row.pricing_tier else "",
                f"{row.original_price:.2f}" if row.original_price is not None else "",
                f"{row.amount_paid:.2f}",
                row.installments_completed or "",
                row.failed_payments,
                row.next_payment_date.isoformat() if row.next_payment_date else "",
            ]
        )
    logger.info("Exported %d player payment rows", len(rows))
    return buffer.getvalue()


async def team_payment_summary(
    db: AsyncSession, team_id: uuid.UUID
) -> TeamPaymentSummaryRead:
    """Group a team's players by payment state for captain follow-up."""
    team = await get_team(db, team_id)
    division = team.division

    result = await db.execute(
        select(Player)
        .where(Player.team_id == team.id)
        .order_by(Player.last_name, Player.first_name)
    )
    players = list(result.scalars().all())
    records = await _records_by_player(db, [p.id for p in players])

    summary = TeamPaymentSummaryRead(
        team_id=team.id,
        team_name=team.name,
        division_id=division.id,
        division_name=division.name,
        captains=[],
        paid=[],
        in_progress=[],
        unpaid=[],
        needs_attention=[],
        total_outstanding=cents_to_dollars(0),
    )
    outstanding_total = 0
    for player in players:
        record = records.get((player.id, team.division_id))
        state = classify(record)
        if record is not None:
            outstanding = record.outstanding_cents
        else:
            price = division.price_for(division.current_tier()) or 0
            outstanding = price
        outstanding_total += outstanding

        balance = TeamPlayerBalance(
            player_id=player.id,
            full_name=player.full_name,
            email=player.email,
            payment_state=state,
            amount_paid=cents_to_dollars(record.amount_paid_cents if record else 0),
            outstanding=cents_to_dollars(outstanding),
            failed_payments=failed_installment_count(record),
        )
        if player.is_team_captain:
            summary.captains.append(balance)
        if state == PlayerPaymentState.PAID:
            summary.paid.append(balance)
        elif state == PlayerPaymentState.UNPAID:
            summary.unpaid.append(balance)
        else:
            summary.in_progress.append(balance)
        if needs_attention(state):
            summary.needs_attention.append(balance)

    summary.total_outstanding = cents_to_dollars(outstanding_total)
    return summary
