"""Admin endpoints: player payment views, manual entries, plans and reversals."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.currency import cents_to_dollars, dollars_to_cents
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.payments_service.errors import NotificationFailedError
from services.payments_service.models import PlayerPaymentState
from services.payments_service.schemas import (
    AuditLogRead,
    ChargeInstallmentRequest,
    InstallmentOutcomeRequest,
    ManualPaymentRequest,
    NotifyCaptainRequest,
    PaymentRecordRead,
    PlayerPaymentDetail,
    PlayerPaymentRow,
    ReminderRead,
    RevertPaymentRequest,
    SplitAllocationRead,
    StartFullPaymentRequest,
    StartInstallmentPlanRequest,
    TeamETransferSplitRequest,
    TeamETransferSplitResponse,
    TeamPaymentSummaryRead,
    TerminalChargeRequest,
    serialize_record,
)
from services.payments_service.services.bulk_split import split_team_etransfer
from services.payments_service.services.full_payments import start_full_payment
from services.payments_service.services.installments import (
    charge_installment,
    record_installment_outcome,
    start_installment_plan,
)
from services.payments_service.services.listing import (
    PlayerFilters,
    get_player_payment_detail,
    list_players_with_payment_state,
    team_payment_summary,
)
from services.payments_service.services.manual_payments import (
    PaymentDetails,
    charge_terminal_payment,
    record_manual_payment,
)
from services.payments_service.services.notifications import (
    NotificationSender,
    get_notification_sender,
)
from services.payments_service.services.processor import (
    PaymentProcessor,
    get_payment_processor,
)
from services.payments_service.services.records import get_record
from services.payments_service.services.reminders import (
    ReminderResult,
    notify_captain,
    send_player_reminder,
)
from services.payments_service.services.reversal import (
    list_audit_entries,
    revert_payment,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])
logger = get_logger(__name__)


def _actor(current_user: AuthUser) -> str:
    """Attribution string stored on receipts and audit rows."""
    return str(current_user.email or current_user.user_id)


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------


@router.get("/players", response_model=list[PlayerPaymentRow])
async def list_players(
    city_id: Optional[uuid.UUID] = Query(None),
    division_id: Optional[uuid.UUID] = Query(None),
    team_id: Optional[uuid.UUID] = Query(None),
    state: Optional[PlayerPaymentState] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    List players with their derived payment state.
    Admin only.
    """
    return await list_players_with_payment_state(
        db,
        PlayerFilters(
            city_id=city_id,
            division_id=division_id,
            team_id=team_id,
            state=state,
            search=search,
        ),
    )


@router.get("/players/{player_id}", response_model=PlayerPaymentDetail)
async def get_player_payments(
    player_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_player_payment_detail(db, player_id)


@router.get("/teams/{team_id}/summary", response_model=TeamPaymentSummaryRead)
async def get_team_summary(
    team_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Team roster grouped by payment state, for captain follow-up.
    """
    return await team_payment_summary(db, team_id)


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def _delivered(result: ReminderResult) -> ReminderResult:
    if not result.sent:
        raise NotificationFailedError(
            f"Could not send {result.template} to {result.recipient}",
            details={"player_id": str(result.player_id), "reason": result.detail},
        )
    return result


@router.post("/players/{player_id}/reminder", response_model=ReminderRead)
async def remind_player(
    player_id: uuid.UUID,
    division_id: Optional[uuid.UUID] = Query(None),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """
    Email a player what they still owe.
    """
    result = await send_player_reminder(
        db, sender, player_id=player_id, division_id=division_id
    )
    return _delivered(result)


@router.post("/teams/{team_id}/notify-captain", response_model=ReminderRead)
async def notify_team_captain(
    team_id: uuid.UUID,
    payload: NotifyCaptainRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """
    Ask the team captain to follow up with an unpaid teammate.
    """
    result = await notify_captain(
        db, sender, team_id=team_id, player_id=payload.player_id
    )
    return _delivered(result)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@router.get("/records/{record_id}", response_model=PaymentRecordRead)
async def get_payment_record(
    record_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return serialize_record(await get_record(db, record_id))


@router.post(
    "/manual",
    response_model=PaymentRecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_payment(
    payload: ManualPaymentRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Record a cash, terminal or e-transfer payment taken outside the processor.
    Admin only; the admin is recorded as the receiver.
    """
    record = await record_manual_payment(
        db,
        player_id=payload.player_id,
        division_id=payload.division_id,
        channel=payload.channel,
        amount_cents=dollars_to_cents(payload.amount),
        pricing_tier=payload.pricing_tier,
        details=PaymentDetails(
            received_by=_actor(current_user),
            notes=payload.notes,
            received_at=payload.received_at,
            transaction_ref=payload.transaction_ref,
            reference_number=payload.reference_number,
            sender_name=payload.sender_name,
            sender_email=payload.sender_email,
            processor_ref=payload.processor_ref,
            card_brand=payload.card_brand,
            card_last4=payload.card_last4,
            reader_id=payload.reader_id,
        ),
    )
    return serialize_record(record)


@router.post(
    "/teams/{team_id}/etransfer-split",
    response_model=TeamETransferSplitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def split_team_payment(
    team_id: uuid.UUID,
    payload: TeamETransferSplitRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Split one e-transfer across several players on a team, all or nothing.
    """
    result = await split_team_etransfer(
        db,
        team_id=team_id,
        total_amount_cents=dollars_to_cents(payload.total_amount),
        player_ids=[p.player_id for p in payload.players],
        method=payload.method,
        pricing_tiers={
            p.player_id: p.pricing_tier for p in payload.players if p.pricing_tier
        },
        details=PaymentDetails(
            received_by=_actor(current_user),
            notes=payload.notes,
            received_at=payload.received_at,
            transaction_ref=payload.transaction_ref,
            reference_number=payload.reference_number,
            sender_name=payload.sender_name,
            sender_email=payload.sender_email,
        ),
    )
    return TeamETransferSplitResponse(
        transaction_ref=result.transaction_ref,
        method=result.method,
        total_amount=cents_to_dollars(result.total_amount_cents),
        allocations=[
            SplitAllocationRead(
                player_id=a.player_id, amount=cents_to_dollars(a.amount_cents)
            )
            for a in result.allocations
        ],
        records=[serialize_record(r) for r in result.records],
    )


@router.post("/records/{record_id}/revert", response_model=AuditLogRead)
async def revert_manual_payment(
    record_id: uuid.UUID,
    payload: RevertPaymentRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Delete a manual payment record; the player becomes unpaid for that division.
    Returns the audit entry written for the reversal.
    """
    return await revert_payment(
        db,
        record_id=record_id,
        reason=payload.reason,
        performed_by=_actor(current_user),
    )


@router.get("/audit", response_model=list[AuditLogRead])
async def list_audit_log(
    player_id: Optional[uuid.UUID] = Query(None),
    division_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_audit_entries(
        db, player_id=player_id, division_id=division_id, limit=limit
    )


# ---------------------------------------------------------------------------
# Processor-driven payments
# ---------------------------------------------------------------------------


@router.post(
    "/installments/start",
    response_model=PaymentRecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def start_installments(
    payload: StartInstallmentPlanRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    record = await start_installment_plan(
        db,
        player_id=payload.player_id,
        division_id=payload.division_id,
        pricing_tier=payload.pricing_tier,
        installment_count=payload.installment_count,
        first_due_date=payload.first_due_date,
        payment_method_ref=payload.payment_method_ref,
        subscription_ref=payload.subscription_ref,
    )
    return serialize_record(record)


@router.post(
    "/records/{record_id}/installments/{payment_number}/outcome",
    response_model=PaymentRecordRead,
)
async def set_installment_outcome(
    record_id: uuid.UUID,
    payment_number: int,
    payload: InstallmentOutcomeRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Record a processor outcome for one installment by hand.
    """
    record = await record_installment_outcome(
        db,
        record_id=record_id,
        payment_number=payment_number,
        outcome=payload.outcome,
        amount_cents=(
            dollars_to_cents(payload.amount) if payload.amount is not None else None
        ),
        invoice_ref=payload.invoice_ref,
        failure_reason=payload.failure_reason,
        attempted_at=payload.attempted_at,
    )
    return serialize_record(record)


@router.post(
    "/records/{record_id}/installments/{payment_number}/charge",
    response_model=PaymentRecordRead,
)
async def charge_installment_now(
    record_id: uuid.UUID,
    payment_number: int,
    payload: ChargeInstallmentRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """
    Charge one installment against the card on file.
    """
    record = await charge_installment(
        db,
        record_id=record_id,
        payment_number=payment_number,
        processor=processor,
        payment_method_ref=payload.payment_method_ref,
    )
    return serialize_record(record)


@router.post(
    "/terminal/charge",
    response_model=PaymentRecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def charge_terminal(
    payload: TerminalChargeRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """
    Take an in-person card payment on a terminal reader.
    """
    record = await charge_terminal_payment(
        db,
        player_id=payload.player_id,
        division_id=payload.division_id,
        amount_cents=dollars_to_cents(payload.amount),
        reader_id=payload.reader_id,
        pricing_tier=payload.pricing_tier,
        processor=processor,
        details=PaymentDetails(received_by=_actor(current_user), notes=payload.notes),
    )
    return serialize_record(record)


@router.post(
    "/full/start",
    response_model=PaymentRecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def start_full(
    payload: StartFullPaymentRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Open a one-time payment for a player's full division price.
    """
    record = await start_full_payment(
        db,
        player_id=payload.player_id,
        division_id=payload.division_id,
        pricing_tier=payload.pricing_tier,
        processor_ref=payload.processor_ref,
        payment_link=payload.payment_link,
    )
    return serialize_record(record)
