"""Unit tests for the admin player list, detail, CSV export and team summary."""

import csv
import io
from datetime import date
from decimal import Decimal

import pytest
from services.payments_service.models import (
    ChargeOutcome,
    PaymentType,
    PlayerPaymentState,
)
from services.payments_service.services.installments import (
    record_installment_outcome,
    start_installment_plan,
)
from services.payments_service.services.listing import (
    CSV_COLUMNS,
    PlayerFilters,
    export_csv,
    get_player_payment_detail,
    list_players_with_payment_state,
    team_payment_summary,
)
from services.payments_service.services.manual_payments import (
    PaymentDetails,
    record_manual_payment,
)
from tests.factories import seed_league


async def _cash(db, player_id, amount_cents):
    return await record_manual_payment(
        db,
        player_id=player_id,
        channel=PaymentType.CASH,
        amount_cents=amount_cents,
        details=PaymentDetails(received_by="admin@example.com"),
    )


async def _seed_mixed_team(db):
    """Four players: paid, unpaid, on a plan with one failure, part-paid cash."""
    league = await seed_league(db, players=4, regular_price_cents=12000)
    paid, unpaid, plan, partial = league["player_ids"]
    await _cash(db, paid, 12000)
    record = await start_installment_plan(
        db, player_id=plan, first_due_date=date(2026, 9, 1)
    )
    await record_installment_outcome(
        db, record_id=record.id, payment_number=1, outcome=ChargeOutcome.SUCCEEDED
    )
    await record_installment_outcome(
        db, record_id=record.id, payment_number=2, outcome=ChargeOutcome.FAILED
    )
    await _cash(db, partial, 3000)
    return league


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_classifies_every_player(db_session):
    league = await _seed_mixed_team(db_session)
    paid, unpaid, plan, partial = league["player_ids"]

    rows = await list_players_with_payment_state(db_session)
    by_player = {row.player.id: row for row in rows}

    assert len(rows) == 4
    assert by_player[paid].payment_state == PlayerPaymentState.PAID
    assert by_player[unpaid].payment_state == PlayerPaymentState.UNPAID
    assert by_player[unpaid].record_id is None
    assert by_player[plan].payment_state == PlayerPaymentState.HAS_ISSUES
    assert by_player[plan].installments_completed == "1/8"
    assert by_player[plan].failed_payments == 1
    assert by_player[plan].next_payment_date == date(2026, 9, 15)
    assert by_player[partial].payment_state == PlayerPaymentState.UNPAID
    assert by_player[partial].amount_paid == Decimal("30.00")
    assert by_player[paid].city_name == "Toronto"
    assert by_player[paid].team_name == "Net Gains"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_filters_by_state_and_search(db_session):
    league = await _seed_mixed_team(db_session)
    other = await seed_league(db_session, players=1)

    paid_rows = await list_players_with_payment_state(
        db_session, PlayerFilters(state=PlayerPaymentState.PAID)
    )
    searched = await list_players_with_payment_state(
        db_session, PlayerFilters(search="number2")
    )
    by_team = await list_players_with_payment_state(
        db_session, PlayerFilters(team_id=other["team_id"])
    )
    by_city = await list_players_with_payment_state(
        db_session, PlayerFilters(city_id=league["city_id"])
    )

    assert [row.player.id for row in paid_rows] == [league["player_ids"][0]]
    assert [row.player.id for row in searched] == [league["player_ids"][2]]
    assert [row.player.id for row in by_team] == other["player_ids"]
    assert len(by_city) == 4


@pytest.mark.asyncio
@pytest.mark.unit
async def test_player_detail_includes_record_state(db_session):
    league = await _seed_mixed_team(db_session)
    plan_player = league["player_ids"][2]

    detail = await get_player_payment_detail(db_session, plan_player)

    assert detail.payment_state == PlayerPaymentState.HAS_ISSUES
    assert len(detail.records) == 1
    assert detail.records[0].state_label == "Has Issues"
    assert detail.records[0].record.payment_type == PaymentType.INSTALLMENTS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_export_csv_has_header_and_one_line_per_player(db_session):
    await _seed_mixed_team(db_session)
    rows = await list_players_with_payment_state(db_session)

    lines = list(csv.reader(io.StringIO(export_csv(rows))))

    assert lines[0] == CSV_COLUMNS
    assert len(lines) == 5
    plan_line = next(line for line in lines[1:] if line[6] == "installments")
    assert plan_line[10] == "1/8"
    assert plan_line[11] == "1"
    assert plan_line[9] == "15.00"
    assert plan_line[12] == "2026-09-15"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_team_summary_groups_players(db_session):
    league = await _seed_mixed_team(db_session)
    paid, unpaid, plan, partial = league["player_ids"]

    summary = await team_payment_summary(db_session, league["team_id"])

    assert [b.player_id for b in summary.captains] == [paid]
    assert [b.player_id for b in summary.paid] == [paid]
    assert {b.player_id for b in summary.unpaid} == {unpaid, partial}
    assert [b.player_id for b in summary.in_progress] == [plan]
    assert [b.player_id for b in summary.needs_attention] == [plan]
    # 0 + 120 + (120 - 15) + (120 - 30)
    assert summary.total_outstanding == Decimal("315.00")
