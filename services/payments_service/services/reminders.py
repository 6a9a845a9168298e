"""Payment reminders to players and to their team captains.

Reminders never touch a payment record; they read the player's derived
state and outstanding balance and hand a templated email to the
``NotificationSender``.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.currency import format_dollars
from libs.common.logging import get_logger
from services.payments_service.errors import (
    AlreadyPaidError,
    CaptainNotFoundError,
    MissingContactError,
    PlayerNotOnTeamError,
    ValidationError,
)
from services.payments_service.models import (
    Division,
    PaymentRecord,
    Player,
    PlayerPaymentState,
)
from services.payments_service.services.classifier import (
    STATE_LABELS,
    classify,
    failed_installment_count,
)
from services.payments_service.services.notifications import (
    NotificationChannel,
    NotificationSender,
)
from services.payments_service.services.records import (
    find_record,
    get_player,
    get_team,
    resolve_player_division,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

REMINDER_TEMPLATE = "payment_reminder"
CAPTAIN_TEMPLATE = "captain_unpaid_player"


@dataclass
class ReminderResult:
    player_id: uuid.UUID
    recipient: str
    template: str
    sent: bool
    detail: Optional[str] = None


def outstanding_cents(division: Division, record: Optional[PaymentRecord]) -> int:
    """What the player still owes; the division's current price if no record."""
    if record is not None:
        return record.outstanding_cents
    return division.price_for(division.current_tier()) or 0


def _balance_data(
    player: Player, division: Division, record: Optional[PaymentRecord]
) -> dict:
    state = classify(record)
    return {
        "player_name": player.full_name,
        "division": division.name,
        "payment_state": state.value,
        "state_label": STATE_LABELS[state],
        "amount_owed": format_dollars(outstanding_cents(division, record)),
        "failed_payments": failed_installment_count(record),
    }


async def send_player_reminder(
    db: AsyncSession,
    sender: NotificationSender,
    *,
    player_id: uuid.UUID,
    division_id: Optional[uuid.UUID] = None,
) -> ReminderResult:
    """Email one player about what they still owe for a division.

    Raises for a player who has paid or has no email; a failed send is
    reported on the result, not raised.
    """
    player, division = await resolve_player_division(
        db, player_id=player_id, division_id=division_id
    )
    record = await find_record(db, player_id=player.id, division_id=division.id)
    if classify(record) == PlayerPaymentState.PAID:
        raise AlreadyPaidError(
            f"{player.full_name} has already paid for {division.name}",
            details={"player_id": str(player.id)},
        )
    if not player.email:
        raise MissingContactError(
            f"{player.full_name} has no email address",
            details={"player_id": str(player.id)},
        )

    result = await sender.send(
        NotificationChannel.EMAIL,
        player.email,
        REMINDER_TEMPLATE,
        _balance_data(player, division, record),
    )
    logger.info(
        "Payment reminder for player %s %s",
        player.id,
        "sent" if result.sent else f"not sent: {result.detail}",
    )
    return ReminderResult(
        player_id=player.id,
        recipient=player.email,
        template=REMINDER_TEMPLATE,
        sent=result.sent,
        detail=result.detail,
    )


async def find_team_captain(db: AsyncSession, team_id: uuid.UUID) -> Optional[Player]:
    result = await db.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.is_team_captain.is_(True))
        .order_by(Player.last_name, Player.first_name)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def notify_captain(
    db: AsyncSession,
    sender: NotificationSender,
    *,
    team_id: uuid.UUID,
    player_id: uuid.UUID,
) -> ReminderResult:
    """Ask a team's captain to chase a teammate who has not paid."""
    team = await get_team(db, team_id)
    division = team.division
    player = await get_player(db, player_id)
    if player.team_id != team.id:
        raise PlayerNotOnTeamError(
            f"{player.full_name} is not on {team.name}",
            details={"player_ids": [str(player.id)]},
        )

    record = await find_record(db, player_id=player.id, division_id=division.id)
    if classify(record) == PlayerPaymentState.PAID:
        raise AlreadyPaidError(
            f"{player.full_name} has already paid for {division.name}",
            details={"player_id": str(player.id)},
        )

    captain = await find_team_captain(db, team.id)
    if captain is None:
        raise CaptainNotFoundError(f"{team.name} has no captain")
    if captain.id == player.id:
        raise ValidationError(
            f"{player.full_name} is the captain; send them a reminder instead"
        )
    if not captain.email:
        raise MissingContactError(
            f"Captain {captain.full_name} has no email address",
            details={"player_id": str(captain.id)},
        )

    data = _balance_data(player, division, record)
    data.update(captain_name=captain.first_name, team=team.name)
    result = await sender.send(
        NotificationChannel.EMAIL, captain.email, CAPTAIN_TEMPLATE, data
    )
    logger.info(
        "Captain %s %s about player %s on team %s",
        captain.id,
        "notified" if result.sent else f"not notified ({result.detail})",
        player.id,
        team.id,
    )
    return ReminderResult(
        player_id=player.id,
        recipient=captain.email,
        template=CAPTAIN_TEMPLATE,
        sent=result.sent,
        detail=result.detail,
    )
