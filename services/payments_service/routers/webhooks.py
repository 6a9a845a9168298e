"""Processor webhook handler for installment invoices and one-time charges."""

import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.payments_service.errors import (
    NotFoundError,
    PaymentTypeMismatchError,
    ValidationError,
)
from services.payments_service.models import ChargeOutcome
from services.payments_service.services.full_payments import (
    record_full_payment_outcome,
)
from services.payments_service.services.installments import (
    find_installment_by_invoice,
    record_installment_outcome,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])
logger = get_logger(__name__)

SIGNATURE_HEADER = "x-processor-signature"

INVOICE_EVENTS = {
    "invoice.payment_succeeded": ChargeOutcome.SUCCEEDED,
    "invoice.payment_failed": ChargeOutcome.FAILED,
}
CHARGE_EVENTS = {
    "charge.succeeded": ChargeOutcome.SUCCEEDED,
    "charge.failed": ChargeOutcome.FAILED,
}


def verify_signature(raw_body: bytes, signature: str) -> bool:
    secret = (get_settings().PROCESSOR_WEBHOOK_SECRET or "").encode("utf-8")
    digest = hmac.new(secret, raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(digest, signature)


def _event_time(data: dict) -> Optional[datetime]:
    created = data.get("created")
    if isinstance(created, (int, float)):
        return datetime.fromtimestamp(created, tz=timezone.utc)
    return None


async def _resolve_slot(
    db: AsyncSession, data: dict
) -> Optional[tuple[uuid.UUID, int]]:
    """Find the installment an invoice pays: metadata first, then invoice id."""
    metadata = data.get("metadata") or {}
    record_id = metadata.get("record_id")
    payment_number = metadata.get("payment_number")
    if record_id and payment_number:
        try:
            return uuid.UUID(str(record_id)), int(payment_number)
        except (TypeError, ValueError):
            logger.warning("Malformed invoice metadata: %s", metadata)
    invoice_ref = data.get("id")
    if not invoice_ref:
        return None
    return await find_installment_by_invoice(db, invoice_ref)


@router.post("/webhooks/processor")
async def processor_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """
    Processor webhook endpoint (no auth; verified by x-processor-signature).

    Payment outcomes are written to records. Unknown references and
    rejected outcomes are acknowledged and logged so the processor stops
    retrying; a concurrent write surfaces as 409 so it retries later.
    """
    raw = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature or not verify_signature(raw, signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    payload = json.loads(raw.decode("utf-8") or "{}")
    event = payload.get("type") or payload.get("event")
    data = payload.get("data") or {}
    data = data.get("object") or data

    try:
        if event in INVOICE_EVENTS:
            target = await _resolve_slot(db, data)
            if target is None:
                logger.warning(
                    "Webhook %s for unknown invoice %s", event, data.get("id")
                )
                return {"received": True}
            record_id, payment_number = target
            amount = data.get("amount_paid")
            await record_installment_outcome(
                db,
                record_id=record_id,
                payment_number=payment_number,
                outcome=INVOICE_EVENTS[event],
                amount_cents=int(amount) if amount else None,
                invoice_ref=data.get("id"),
                failure_reason=data.get("failure_message"),
                attempted_at=_event_time(data),
            )
        elif event in CHARGE_EVENTS:
            reference = data.get("id")
            if not reference:
                return {"received": True}
            amount = data.get("amount")
            await record_full_payment_outcome(
                db,
                processor_ref=reference,
                outcome=CHARGE_EVENTS[event],
                amount_cents=int(amount) if amount else None,
                failure_reason=data.get("failure_message"),
            )
        else:
            logger.info("Ignoring processor webhook event %s", event)
    except (NotFoundError, PaymentTypeMismatchError, ValidationError) as exc:
        logger.warning(
            "Processor webhook %s not applied: %s",
            event,
            exc.message,
            extra={"extra_fields": {"code": exc.code, "event": event}},
        )
    return {"received": True}
