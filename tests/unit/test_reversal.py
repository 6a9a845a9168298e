"""Unit tests for reverting manual payments."""

from datetime import date

import pytest
from services.payments_service.errors import (
    MissingAttributionError,
    MissingReasonError,
    NonRevertibleChannelError,
    RecordNotFoundError,
)
from services.payments_service.models import (
    AuditAction,
    ChargeOutcome,
    PaymentType,
    PlayerPaymentState,
)
from services.payments_service.services.classifier import classify
from services.payments_service.services.full_payments import (
    record_full_payment_outcome,
    start_full_payment,
)
from services.payments_service.services.installments import start_installment_plan
from services.payments_service.services.manual_payments import (
    PaymentDetails,
    record_manual_payment,
)
from services.payments_service.services.records import find_record, get_record
from services.payments_service.services.reversal import (
    list_audit_entries,
    revert_payment,
)
from tests.factories import seed_league

ADMIN = "admin@example.com"


async def _etransfer(db, player_id, amount_cents):
    return await record_manual_payment(
        db,
        player_id=player_id,
        channel=PaymentType.E_TRANSFER,
        amount_cents=amount_cents,
        details=PaymentDetails(received_by=ADMIN),
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_revert_etransfer_removes_record_and_logs_snapshot(db_session):
    league = await seed_league(db_session, regular_price_cents=10000)
    player_id = league["player_ids"][0]
    await _etransfer(db_session, player_id, 5000)
    record = await _etransfer(db_session, player_id, 5000)
    record_id = record.id

    entry = await revert_payment(
        db_session,
        record_id=record_id,
        reason="Transfer bounced",
        performed_by=ADMIN,
    )

    assert entry.action == AuditAction.REVERTED
    assert entry.record_id == record_id
    assert entry.player_id == player_id
    assert entry.payment_type == PaymentType.E_TRANSFER
    assert entry.amount_cents == 10000
    assert entry.reason == "Transfer bounced"
    assert entry.performed_by == ADMIN
    assert entry.snapshot["status"] == "completed"
    assert len(entry.snapshot["etransfer_payments"]) == 2

    remaining = await find_record(
        db_session, player_id=player_id, division_id=league["division_id"]
    )
    assert remaining is None
    assert classify(remaining) == PlayerPaymentState.UNPAID
    with pytest.raises(RecordNotFoundError):
        await get_record(db_session, record_id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_player_can_pay_again_after_revert(db_session):
    league = await seed_league(db_session, regular_price_cents=10000)
    player_id = league["player_ids"][0]
    record = await record_manual_payment(
        db_session,
        player_id=player_id,
        channel=PaymentType.CASH,
        amount_cents=10000,
        details=PaymentDetails(received_by=ADMIN),
    )
    await revert_payment(
        db_session, record_id=record.id, reason="Wrong player", performed_by=ADMIN
    )

    remaining = await find_record(
        db_session, player_id=player_id, division_id=league["division_id"]
    )
    assert classify(remaining) == PlayerPaymentState.UNPAID
    [entry] = await list_audit_entries(db_session, player_id=player_id)
    assert entry.reason == "Wrong player"
    assert entry.payment_type == PaymentType.CASH

    again = await _etransfer(db_session, player_id, 2500)

    assert again.id != record.id
    assert again.payment_type == PaymentType.E_TRANSFER


@pytest.mark.asyncio
@pytest.mark.unit
async def test_installment_plans_cannot_be_reverted(db_session):
    league = await seed_league(db_session)
    record = await start_installment_plan(
        db_session, player_id=league["player_ids"][0], first_due_date=date(2026, 9, 1)
    )
    record_id = record.id

    with pytest.raises(NonRevertibleChannelError):
        await revert_payment(
            db_session, record_id=record_id, reason="Refund", performed_by=ADMIN
        )

    assert (await get_record(db_session, record_id)).id == record_id
    assert await list_audit_entries(db_session) == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_full_payments_cannot_be_reverted(db_session):
    league = await seed_league(db_session)
    record = await start_full_payment(
        db_session, player_id=league["player_ids"][0], processor_ref="pi_full"
    )
    await record_full_payment_outcome(
        db_session, processor_ref="pi_full", outcome=ChargeOutcome.SUCCEEDED
    )

    with pytest.raises(NonRevertibleChannelError):
        await revert_payment(
            db_session, record_id=record.id, reason="Refund", performed_by=ADMIN
        )


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("reason", ["", "   ", None])
async def test_reason_is_required(db_session, reason):
    league = await seed_league(db_session)
    record = await _etransfer(db_session, league["player_ids"][0], 1000)
    record_id = record.id

    with pytest.raises(MissingReasonError):
        await revert_payment(
            db_session, record_id=record_id, reason=reason, performed_by=ADMIN
        )

    assert (await get_record(db_session, record_id)).amount_paid_cents == 1000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_actor_is_required(db_session):
    league = await seed_league(db_session)
    record = await _etransfer(db_session, league["player_ids"][0], 1000)

    with pytest.raises(MissingAttributionError):
        await revert_payment(
            db_session, record_id=record.id, reason="Duplicate", performed_by=""
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_audit_entries_filters_by_player(db_session):
    league = await seed_league(db_session, players=2)
    first, second = league["player_ids"]
    for player_id in (first, second):
        record = await _etransfer(db_session, player_id, 1000)
        await revert_payment(
            db_session, record_id=record.id, reason="Duplicate", performed_by=ADMIN
        )

    everything = await list_audit_entries(db_session)
    only_first = await list_audit_entries(db_session, player_id=first)

    assert len(everything) == 2
    assert [entry.player_id for entry in only_first] == [first]
    assert len(await list_audit_entries(db_session, limit=1)) == 1
