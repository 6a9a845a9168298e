"""Cash, terminal and e-transfer payments entered by league admins."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.payments_service.errors import (
    AlreadyPaidError,
    InvalidAmountError,
    MissingAttributionError,
    OverpaymentError,
    PaymentDeclinedError,
    PaymentTypeMismatchError,
    ValidationError,
)
from services.payments_service.models import (
    MANUAL_PAYMENT_TYPES,
    ChargeOutcome,
    Division,
    ETransferPayment,
    ManualReceipt,
    PaymentRecord,
    PaymentType,
    Player,
    PricingTier,
    RecordStatus,
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
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class PaymentDetails:
    """Who took the money and what came with it.

    ``received_by`` is mandatory for every manual channel; the remaining
    fields only apply to the channel named next to them.
    """

    received_by: str
    notes: Optional[str] = None
    received_at: Optional[datetime] = None
    # e-transfer
    transaction_ref: Optional[str] = None
    reference_number: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    # terminal
    processor_ref: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    reader_id: Optional[str] = None


def validate_manual_entry(
    channel: PaymentType, amount_cents: int, details: PaymentDetails
) -> PaymentType:
    channel = PaymentType(channel)
    if channel not in MANUAL_PAYMENT_TYPES:
        raise ValidationError(
            f"{channel.value} payments are recorded by the processor, not by hand"
        )
    if amount_cents is None or amount_cents <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    if not (details.received_by or "").strip():
        raise MissingAttributionError("Manual payments must record who received them")
    return channel


def apply_manual_payment(
    record: Optional[PaymentRecord],
    *,
    player: Player,
    division: Division,
    channel: PaymentType,
    amount_cents: int,
    details: PaymentDetails,
    pricing_tier: Optional[PricingTier] = None,
) -> PaymentRecord:
    """Apply one manual entry to a record in memory, creating it if absent.

    Raises before touching anything when the entry is not acceptable. The
    caller owns the transaction and adds a newly created record to it.
    """
    channel = validate_manual_entry(channel, amount_cents, details)
    received_at = details.received_at or utc_now()

    if record is None:
        tier, price = resolve_price(division, pricing_tier)
        record = new_record(
            player=player,
            division=division,
            payment_type=channel,
            pricing_tier=tier,
            original_price_cents=price,
        )
    elif record.payment_type != channel:
        raise PaymentTypeMismatchError(
            f"Player already pays this division by {record.payment_type.value}; "
            f"revert that record before recording {channel.value}",
            details={"record_id": str(record.id)},
        )

    if record.status == RecordStatus.COMPLETED:
        raise AlreadyPaidError(
            f"{player.full_name} has already paid for {division.name}",
            details={"record_id": str(record.id) if record.id else None},
        )

    if channel == PaymentType.E_TRANSFER:
        if record.amount_paid_cents + amount_cents > record.original_price_cents:
            raise OverpaymentError(
                f"Transfer of {amount_cents} cents exceeds the "
                f"{record.outstanding_cents} cents still owed"
            )
        record.etransfer_payments.append(
            ETransferPayment(
                position=len(record.etransfer_payments) + 1,
                amount_cents=amount_cents,
                transaction_ref=details.transaction_ref
                or ETransferPayment.generate_reference(),
                reference_number=details.reference_number,
                sender_name=details.sender_name,
                sender_email=details.sender_email,
                notes=details.notes,
                received_by=details.received_by,
                received_at=received_at,
            )
        )
    else:
        # Cash and terminal entries carry the running total the admin has
        # collected, not an increment.
        if amount_cents > record.original_price_cents:
            raise OverpaymentError(
                f"Amount of {amount_cents} cents exceeds the "
                f"{record.original_price_cents} cent price"
            )
        receipt = record.manual_receipt
        if receipt is not None and amount_cents < receipt.amount_cents:
            raise InvalidAmountError(
                f"Amount cannot drop below the {receipt.amount_cents} cents already "
                "recorded; revert the payment to correct it"
            )
        if receipt is None:
            receipt = ManualReceipt(channel=channel)
            record.manual_receipt = receipt
        receipt.amount_cents = amount_cents
        receipt.notes = details.notes
        receipt.received_by = details.received_by
        receipt.received_at = received_at
        if channel == PaymentType.TERMINAL:
            receipt.processor_ref = details.processor_ref
            receipt.card_brand = details.card_brand
            receipt.card_last4 = details.card_last4
            receipt.reader_id = details.reader_id

    return recompute_totals(record)


async def record_manual_payment(
    db: AsyncSession,
    *,
    player_id: uuid.UUID,
    channel: PaymentType,
    amount_cents: int,
    details: PaymentDetails,
    division_id: Optional[uuid.UUID] = None,
    pricing_tier: Optional[PricingTier] = None,
) -> PaymentRecord:
    """Record a cash, terminal or e-transfer payment.

    1. Validate the amount and attribution
    2. Lock the player's record for the division (if any)
    3. Apply the entry and recompute totals
    4. Commit atomically
    """
    # 1. Validate
    channel = validate_manual_entry(channel, amount_cents, details)

    async with atomic(db):
        # 2. Lock
        player, division = await resolve_player_division(
            db, player_id=player_id, division_id=division_id
        )
        existing = await find_record(
            db, player_id=player.id, division_id=division.id, for_update=True
        )

        # 3. Apply
        record = apply_manual_payment(
            existing,
            player=player,
            division=division,
            channel=channel,
            amount_cents=amount_cents,
            details=details,
            pricing_tier=pricing_tier,
        )
        if existing is None:
            db.add(record)

    logger.info(
        "Recorded %s payment of %d cents for player %s division %s by %s "
        "(paid %d/%d, status=%s)",
        channel.value,
        amount_cents,
        player.id,
        division.id,
        details.received_by,
        record.amount_paid_cents,
        record.original_price_cents,
        record.status.value,
    )
    return await get_record(db, record.id)


async def charge_terminal_payment(
    db: AsyncSession,
    *,
    player_id: uuid.UUID,
    amount_cents: int,
    reader_id: str,
    processor: PaymentProcessor,
    details: PaymentDetails,
    division_id: Optional[uuid.UUID] = None,
    pricing_tier: Optional[PricingTier] = None,
    timeout: Optional[float] = None,
) -> PaymentRecord:
    """Take a card on an in-person terminal and record it as a TERMINAL payment.

    The processor is polled until the reader reports an outcome. On timeout
    or decline nothing is written.
    """
    timeout = timeout or get_settings().PROCESSOR_TIMEOUT_SECONDS
    validate_manual_entry(PaymentType.TERMINAL, amount_cents, details)

    # Dry-run the entry against current state so a charge is never taken
    # for a payment that would then be rejected.
    player, division = await resolve_player_division(
        db, player_id=player_id, division_id=division_id
    )
    existing = await find_record(db, player_id=player.id, division_id=division.id)
    new_total = _preflight_terminal(existing, division, amount_cents, pricing_tier)

    result = await charge_with_timeout(
        processor,
        payment_method_ref=reader_id,
        amount_cents=amount_cents,
        timeout=timeout,
        metadata={"player_id": str(player.id), "division_id": str(division.id)},
    )
    if result.outcome != ChargeOutcome.SUCCEEDED:
        logger.warning(
            "Terminal charge %s declined for player %s: %s",
            result.processor_ref,
            player.id,
            result.failure_reason,
        )
        raise PaymentDeclinedError(
            result.failure_reason or "Card was declined",
            details={"processor_ref": result.processor_ref},
        )

    details.processor_ref = result.processor_ref
    details.card_brand = result.card_brand
    details.card_last4 = result.card_last4
    details.reader_id = reader_id
    return await record_manual_payment(
        db,
        player_id=player.id,
        division_id=division.id,
        channel=PaymentType.TERMINAL,
        amount_cents=new_total,
        details=details,
        pricing_tier=pricing_tier,
    )


def _preflight_terminal(
    record: Optional[PaymentRecord],
    division: Division,
    amount_cents: int,
    pricing_tier: Optional[PricingTier],
) -> int:
    """Check a terminal charge would be accepted; return the new running total."""
    if record is None:
        _, price = resolve_price(division, pricing_tier)
        already = 0
    else:
        if record.payment_type != PaymentType.TERMINAL:
            raise PaymentTypeMismatchError(
                f"Player already pays this division by {record.payment_type.value}"
            )
        if record.status == RecordStatus.COMPLETED:
            raise AlreadyPaidError("Player has already paid for this division")
        price = record.original_price_cents
        already = record.amount_paid_cents
    if already + amount_cents > price:
        raise OverpaymentError(
            f"Charge of {amount_cents} cents exceeds the "
            f"{price - already} cents still owed"
        )
    return already + amount_cents
