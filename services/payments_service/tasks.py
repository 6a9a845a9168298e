"""Background reconciliation, escalation, reminder and report tasks."""

from __future__ import annotations

from datetime import date, timedelta

from libs.common.config import get_settings
from libs.common.currency import dollars_to_cents, format_dollars
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.payments_service.errors import PaymentEngineError
from services.payments_service.models import (
    ChargeOutcome,
    InstallmentPlan,
    InstallmentStatus,
    PlayerPaymentState,
    SubscriptionPayment,
)
from services.payments_service.services.analytics import AnalyticsFilters, aggregate
from services.payments_service.services.installments import (
    record_installment_outcome,
)
from services.payments_service.services.listing import (
    PlayerFilters,
    list_players_with_payment_state,
)
from services.payments_service.services.notifications import (
    NotificationChannel,
    NotificationSender,
)
from services.payments_service.services.processor import (
    PaymentProcessor,
    poll_with_timeout,
)
from services.payments_service.services.reminders import send_player_reminder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ESCALATION_TEMPLATE = "payment_escalation_digest"


async def reconcile_pending_invoices(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    today: date | None = None,
    timeout: float | None = None,
    limit: int = 200,
) -> int:
    """Ask the processor about due installments whose invoice is still pending.

    Covers webhooks that never arrived. Returns how many slots changed.
    """
    today = today or utc_now().date()
    timeout = timeout or get_settings().PROCESSOR_TIMEOUT_SECONDS

    result = await db.execute(
        select(
            InstallmentPlan.record_id,
            SubscriptionPayment.payment_number,
            SubscriptionPayment.invoice_ref,
        )
        .join(SubscriptionPayment, SubscriptionPayment.plan_id == InstallmentPlan.id)
        .where(
            SubscriptionPayment.status == InstallmentStatus.PENDING,
            SubscriptionPayment.invoice_ref.is_not(None),
            SubscriptionPayment.due_date <= today,
        )
        .order_by(SubscriptionPayment.due_date.asc())
        .limit(limit)
    )
    pending = result.all()

    updated = 0
    for record_id, payment_number, invoice_ref in pending:
        try:
            outcome = await poll_with_timeout(processor, invoice_ref, timeout=timeout)
        except PaymentEngineError as exc:
            logger.warning("Invoice status check failed for %s: %s", invoice_ref, exc)
            continue
        if outcome == ChargeOutcome.PENDING:
            continue

        try:
            await record_installment_outcome(
                db,
                record_id=record_id,
                payment_number=payment_number,
                outcome=outcome,
                invoice_ref=invoice_ref,
                failure_reason=(
                    "Reported by processor reconciliation"
                    if outcome == ChargeOutcome.FAILED
                    else None
                ),
            )
        except PaymentEngineError as exc:
            logger.warning(
                "Could not apply %s for invoice %s: %s",
                outcome.value,
                invoice_ref,
                exc,
            )
            continue
        updated += 1

    logger.info(
        "Invoice reconciliation: %d pending checked, %d updated", len(pending), updated
    )
    return updated


async def escalate_critical_installments(
    db: AsyncSession,
    sender: NotificationSender,
    *,
    recipient: str | None = None,
) -> int:
    """Email league staff a digest of players at the critical failure count."""
    rows = await list_players_with_payment_state(
        db, PlayerFilters(state=PlayerPaymentState.CRITICAL)
    )
    if not rows:
        logger.info("Escalation sweep: no critical installment plans")
        return 0

    recipient = recipient or get_settings().ESCALATION_EMAIL
    players = [
        {
            "player_id": str(row.player.id),
            "name": row.player.full_name,
            "email": row.player.email,
            "team": row.team_name,
            "division": row.division_name,
            "city": row.city_name,
            "failed_payments": row.failed_payments,
            "payments_completed": row.installments_completed,
            "amount_paid": str(row.amount_paid),
            "price": str(row.original_price),
        }
        for row in rows
    ]
    result = await sender.send(
        NotificationChannel.EMAIL,
        recipient,
        ESCALATION_TEMPLATE,
        {"count": len(players), "players": players},
    )
    if not result.sent:
        logger.error(
            "Escalation digest for %d players not sent: %s", len(players), result.detail
        )
        return 0

    logger.info(
        "Escalated %d critical installment plans to %s", len(players), recipient
    )
    return len(players)


# States the reminder sweep chases; ON_TRACK plans are left alone.
REMINDER_STATES = frozenset(
    {
        PlayerPaymentState.UNPAID,
        PlayerPaymentState.HAS_ISSUES,
        PlayerPaymentState.CRITICAL,
    }
)


async def send_payment_reminders(
    db: AsyncSession,
    sender: NotificationSender,
    *,
    limit: int = 500,
) -> int:
    """Remind every unpaid or struggling player with an email. Returns sends."""
    rows = [
        row
        for row in await list_players_with_payment_state(db)
        if row.payment_state in REMINDER_STATES and row.player.email
    ][:limit]

    sent = failed = 0
    for row in rows:
        try:
            result = await send_player_reminder(
                db, sender, player_id=row.player.id, division_id=row.division_id
            )
        except PaymentEngineError as exc:
            logger.warning("Skipped reminder for player %s: %s", row.player.id, exc)
            failed += 1
            continue
        if result.sent:
            sent += 1
        else:
            failed += 1

    logger.info(
        "Payment reminders: %d eligible, %d sent, %d failed", len(rows), sent, failed
    )
    return sent


REPORT_TEMPLATES = {
    "daily": "payment_daily_report",
    "weekly": "payment_weekly_report",
}
REPORT_DAYS = {"daily": 1, "weekly": 7}


async def send_payment_report(
    db: AsyncSession,
    sender: NotificationSender,
    *,
    period: str = "daily",
    today: date | None = None,
    recipient: str | None = None,
) -> bool:
    """Email the analytics for the last full day or week, plus all-time totals.

    The window ends yesterday (UTC) and is compared with the window before it.
    """
    if period not in REPORT_TEMPLATES:
        raise ValueError(f"Unknown report period: {period}")
    today = today or utc_now().date()
    end = today - timedelta(days=1)
    start = end - timedelta(days=REPORT_DAYS[period] - 1)

    report = await aggregate(
        db, AnalyticsFilters(start=start, end=end), compare_previous=True
    )
    all_time = await aggregate(db)

    recipient = recipient or get_settings().REPORT_EMAIL
    result = await sender.send(
        NotificationChannel.EMAIL,
        recipient,
        REPORT_TEMPLATES[period],
        {
            "period": period,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "total_count": report.total_count,
            "total_paid": format_dollars(dollars_to_cents(report.total_paid)),
            "all_time_count": all_time.total_count,
            "all_time_paid": format_dollars(dollars_to_cents(all_time.total_paid)),
            "report": report.model_dump(mode="json"),
        },
    )
    if not result.sent:
        logger.error("%s payment report not sent: %s", period, result.detail)
        return False

    logger.info(
        "Sent %s payment report for %s..%s to %s", period, start, end, recipient
    )
    return True
