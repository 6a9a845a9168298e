"""ARQ worker for invoice reconciliation, escalation, reminders and reports."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger
from libs.db.config import Database
from services.payments_service.services.notifications import (
    CommunicationsNotificationSender,
)
from services.payments_service.services.processor import HttpPaymentProcessor

logger = get_logger(__name__)


async def startup(ctx: dict):
    configure_logging()
    ctx["database"] = Database.from_settings()
    ctx["processor"] = HttpPaymentProcessor()
    ctx["sender"] = CommunicationsNotificationSender()
    logger.info("Payments worker started")


async def shutdown(ctx: dict):
    await ctx["database"].dispose()


async def task_reconcile_pending_invoices(ctx: dict):
    from services.payments_service.tasks import reconcile_pending_invoices

    logger.info("Running: reconcile_pending_invoices")
    async with ctx["database"].session() as db:
        await reconcile_pending_invoices(db, ctx["processor"])


async def task_escalate_critical_installments(ctx: dict):
    from services.payments_service.tasks import escalate_critical_installments

    logger.info("Running: escalate_critical_installments")
    async with ctx["database"].session() as db:
        await escalate_critical_installments(db, ctx["sender"])


async def task_send_payment_reminders(ctx: dict):
    from services.payments_service.tasks import send_payment_reminders

    logger.info("Running: send_payment_reminders")
    async with ctx["database"].session() as db:
        await send_payment_reminders(db, ctx["sender"])


async def task_send_daily_report(ctx: dict):
    from services.payments_service.tasks import send_payment_report

    logger.info("Running: send_payment_report (daily)")
    async with ctx["database"].session() as db:
        await send_payment_report(db, ctx["sender"], period="daily")


async def task_send_weekly_report(ctx: dict):
    from services.payments_service.tasks import send_payment_report

    logger.info("Running: send_payment_report (weekly)")
    async with ctx["database"].session() as db:
        await send_payment_report(db, ctx["sender"], period="weekly")


class WorkerSettings:
    redis_settings = get_redis_settings()
    on_startup = startup
    on_shutdown = shutdown

    functions = [
        task_reconcile_pending_invoices,
        task_escalate_critical_installments,
        task_send_payment_reminders,
        task_send_daily_report,
        task_send_weekly_report,
    ]

    cron_jobs = [
        cron(
            task_reconcile_pending_invoices,
            minute={0, 15, 30, 45},
            run_at_startup=True,
        ),
        cron(
            task_escalate_critical_installments,
            hour={14},
            minute={0},
        ),
        # Monday and Thursday: at most two reminders a week
        cron(
            task_send_payment_reminders,
            weekday={0, 3},
            hour={16},
            minute={0},
        ),
        cron(
            task_send_daily_report,
            hour={13},
            minute={0},
        ),
        cron(
            task_send_weekly_report,
            weekday={0},
            hour={13},
            minute={5},
        ),
    ]
