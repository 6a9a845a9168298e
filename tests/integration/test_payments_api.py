"""Integration tests for the payments service HTTP API."""

import hashlib
import hmac
import json
import uuid
from datetime import date

import pytest
from jose import jwt
from libs.common.config import get_settings
from services.payments_service.models import ChargeOutcome
from services.payments_service.services.full_payments import start_full_payment
from services.payments_service.services.installments import start_installment_plan
from services.payments_service.services.records import find_record, get_record
from tests.factories import seed_league

# ---------------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(anonymous_client):
    response = await anonymous_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "payments"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_routes_need_credentials(anonymous_client):
    response = await anonymous_client.get("/payments/players")

    assert response.status_code in (401, 403)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_members_cannot_record_payments(member_client, db_session):
    league = await seed_league(db_session)

    response = await member_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "cash",
            "amount": "50.00",
        },
    )

    assert response.status_code == 403
    assert (
        await find_record(
            db_session,
            player_id=league["player_ids"][0],
            division_id=league["division_id"],
        )
        is None
    )


# ---------------------------------------------------------------------------
# Manual payments
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_record_etransfers_in_dollars(payments_client, db_session):
    """Two $50 transfers against a $100 price complete the record."""
    league = await seed_league(db_session, regular_price_cents=10000)
    body = {
        "player_id": str(league["player_ids"][0]),
        "channel": "e_transfer",
        "amount": "50.00",
        "sender_name": "Sam Setter",
    }

    first = await payments_client.post("/payments/manual", json=body)
    second = await payments_client.post("/payments/manual", json=body)

    assert first.status_code == 201, first.text
    assert first.json()["status"] == "in_progress"
    data = second.json()
    assert second.status_code == 201, second.text
    assert data["payment_type"] == "e_transfer"
    assert data["status"] == "completed"
    assert data["amount_paid_cents"] == 10000
    assert data["amount_paid"] == "100.00"
    assert data["outstanding"] == "0.00"
    assert [e["amount"] for e in data["etransfer_payments"]] == ["50.00", "50.00"]
    assert {e["received_by"] for e in data["etransfer_payments"]} == {
        "admin@example.com"
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_overpayment_maps_to_400_with_code(payments_client, db_session):
    league = await seed_league(db_session, regular_price_cents=10000)

    response = await payments_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "cash",
            "amount": "100.01",
        },
    )

    assert response.status_code == 400
    assert response.json()["code"] == "overpayment"
    assert "detail" in response.json()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_type_mismatch_maps_to_409(payments_client, db_session):
    league = await seed_league(db_session, regular_price_cents=10000)
    player_id = str(league["player_ids"][0])
    await payments_client.post(
        "/payments/manual",
        json={"player_id": player_id, "channel": "cash", "amount": "20.00"},
    )

    response = await payments_client.post(
        "/payments/manual",
        json={"player_id": player_id, "channel": "e_transfer", "amount": "20.00"},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "payment_type_mismatch"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_player_maps_to_404(payments_client):
    response = await payments_client.post(
        "/payments/manual",
        json={"player_id": str(uuid.uuid4()), "channel": "cash", "amount": "10.00"},
    )

    assert response.status_code == 404
    assert response.json()["code"] == "player_not_found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_processor_channel_is_not_a_manual_channel(payments_client, db_session):
    league = await seed_league(db_session)

    response = await payments_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "installments",
            "amount": "15.00",
        },
    )

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_terminal_charge_endpoint(payments_client, db_session, fake_processor):
    league = await seed_league(db_session, regular_price_cents=10000)

    response = await payments_client.post(
        "/payments/terminal/charge",
        json={
            "player_id": str(league["player_ids"][0]),
            "amount": "100.00",
            "reader_id": "tmr_front_desk",
        },
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["payment_type"] == "terminal"
    assert data["status"] == "completed"
    assert data["manual_receipt"]["card_last4"] == "4242"
    assert fake_processor.charges[0]["amount_cents"] == 10000


@pytest.mark.asyncio
@pytest.mark.integration
async def test_terminal_decline_maps_to_402(
    payments_client, db_session, fake_processor
):
    league = await seed_league(db_session, regular_price_cents=10000)
    fake_processor.outcome = ChargeOutcome.FAILED

    response = await payments_client.post(
        "/payments/terminal/charge",
        json={
            "player_id": str(league["player_ids"][0]),
            "amount": "40.00",
            "reader_id": "tmr_front_desk",
        },
    )

    assert response.status_code == 402
    assert response.json()["code"] == "payment_declined"


# ---------------------------------------------------------------------------
# Team split / revert / audit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_team_split_then_summary(payments_client, db_session):
    league = await seed_league(db_session, players=3, regular_price_cents=10000)

    response = await payments_client.post(
        f"/payments/teams/{league['team_id']}/etransfer-split",
        json={
            "total_amount": "90.00",
            "players": [{"player_id": str(pid)} for pid in league["player_ids"]],
            "method": "equal",
        },
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert [a["amount"] for a in data["allocations"]] == ["30.00"] * 3
    assert len({r["id"] for r in data["records"]}) == 3

    summary = await payments_client.get(
        f"/payments/teams/{league['team_id']}/summary"
    )
    assert summary.status_code == 200
    body = summary.json()
    assert len(body["unpaid"]) == 3
    assert body["total_outstanding"] == "210.00"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_split_shortfall_is_rejected(payments_client, db_session):
    league = await seed_league(db_session, players=2, regular_price_cents=10000)

    response = await payments_client.post(
        f"/payments/teams/{league['team_id']}/etransfer-split",
        json={
            "total_amount": "150.00",
            "players": [{"player_id": str(pid)} for pid in league["player_ids"]],
            "method": "by_pricing_tier",
        },
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "insufficient_bulk_amount"
    assert body["details"]["shortfall_cents"] == 5000


@pytest.mark.asyncio
@pytest.mark.integration
async def test_split_charges_each_player_their_own_tier(payments_client, db_session):
    league = await seed_league(
        db_session,
        players=2,
        early_bird_price_cents=8000,
        regular_price_cents=10000,
    )
    early, regular = league["player_ids"]

    response = await payments_client.post(
        f"/payments/teams/{league['team_id']}/etransfer-split",
        json={
            "total_amount": "180.00",
            "players": [
                {"player_id": str(early), "pricing_tier": "early_bird"},
                {"player_id": str(regular)},
            ],
            "method": "by_pricing_tier",
        },
    )

    assert response.status_code == 201, response.text
    records = {r["player_id"]: r for r in response.json()["records"]}
    assert records[str(early)]["pricing_tier"] == "early_bird"
    assert records[str(early)]["amount_paid"] == "80.00"
    assert records[str(regular)]["pricing_tier"] == "regular"
    assert records[str(regular)]["status"] == "completed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_revert_and_audit_log(payments_client, db_session):
    league = await seed_league(db_session, regular_price_cents=10000)
    created = await payments_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "cash",
            "amount": "100.00",
        },
    )
    record_id = created.json()["id"]

    response = await payments_client.post(
        f"/payments/records/{record_id}/revert",
        json={"reason": "Recorded against the wrong player"},
    )

    assert response.status_code == 200, response.text
    entry = response.json()
    assert entry["record_id"] == record_id
    assert entry["performed_by"] == "admin@example.com"

    missing = await payments_client.get(f"/payments/records/{record_id}")
    assert missing.status_code == 404

    audit = await payments_client.get("/payments/audit")
    assert [row["record_id"] for row in audit.json()] == [record_id]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_revert_needs_a_reason(payments_client, db_session):
    league = await seed_league(db_session)
    created = await payments_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "cash",
            "amount": "10.00",
        },
    )

    response = await payments_client.post(
        f"/payments/records/{created.json()['id']}/revert", json={"reason": " "}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "missing_reason"


# ---------------------------------------------------------------------------
# Installments
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_installment_plan_over_http(payments_client, db_session):
    league = await seed_league(db_session)
    started = await payments_client.post(
        "/payments/installments/start",
        json={
            "player_id": str(league["player_ids"][0]),
            "first_due_date": "2026-09-01",
            "payment_method_ref": "pm_card_on_file",
        },
    )
    assert started.status_code == 201, started.text
    record_id = started.json()["id"]

    charged = await payments_client.post(
        f"/payments/records/{record_id}/installments/1/charge", json={}
    )
    failed = await payments_client.post(
        f"/payments/records/{record_id}/installments/2/outcome",
        json={"outcome": "failed", "failure_reason": "insufficient_funds"},
    )

    assert charged.status_code == 200, charged.text
    assert failed.status_code == 200, failed.text
    plan = failed.json()["installment_plan"]
    assert [p["status"] for p in plan["payments"][:3]] == [
        "succeeded",
        "failed",
        "pending",
    ]
    assert plan["remaining_balance"] == "105.00"

    detail = await payments_client.get(f"/payments/players/{league['player_ids'][0]}")
    assert detail.json()["payment_state"] == "has_issues"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_out_of_range_installment_maps_to_400(payments_client, db_session):
    league = await seed_league(db_session)
    record = await start_installment_plan(db_session, player_id=league["player_ids"][0])

    response = await payments_client.post(
        f"/payments/records/{record.id}/installments/9/outcome",
        json={"outcome": "succeeded"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_payment_number"


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


def _signed(payload: dict) -> tuple[bytes, dict]:
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(
        get_settings().PROCESSOR_WEBHOOK_SECRET.encode("utf-8"),
        body,
        hashlib.sha512,
    ).hexdigest()
    return body, {
        "x-processor-signature": signature,
        "content-type": "application/json",
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_rejects_bad_signature(anonymous_client):
    body = json.dumps({"type": "charge.succeeded"}).encode("utf-8")

    response = await anonymous_client.post(
        "/payments/webhooks/processor",
        content=body,
        headers={"x-processor-signature": "not-a-signature"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_webhook_updates_installment(anonymous_client, db_session):
    league = await seed_league(db_session)
    record = await start_installment_plan(
        db_session,
        player_id=league["player_ids"][0],
        first_due_date=date(2026, 9, 1),
        invoice_refs={1: "in_week1"},
    )
    record_id = record.id
    body, headers = _signed(
        {
            "type": "invoice.payment_succeeded",
            "data": {"object": {"id": "in_week1", "amount_paid": 1500}},
        }
    )

    response = await anonymous_client.post(
        "/payments/webhooks/processor", content=body, headers=headers
    )
    replay = await anonymous_client.post(
        "/payments/webhooks/processor", content=body, headers=headers
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert replay.status_code == 200
    record = await get_record(db_session, record_id)
    assert record.amount_paid_cents == 1500
    assert record.installment_plan.slot(1).attempt_count == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_charge_webhook_completes_full_payment(anonymous_client, db_session):
    league = await seed_league(db_session, regular_price_cents=12000)
    record = await start_full_payment(
        db_session, player_id=league["player_ids"][0], processor_ref="pi_full_1"
    )
    record_id = record.id
    body, headers = _signed(
        {
            "type": "charge.succeeded",
            "data": {"object": {"id": "pi_full_1", "amount": 12000}},
        }
    )

    response = await anonymous_client.post(
        "/payments/webhooks/processor", content=body, headers=headers
    )

    assert response.status_code == 200
    record = await get_record(db_session, record_id)
    assert record.status.value == "completed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_for_unknown_reference_is_acknowledged(anonymous_client):
    body, headers = _signed(
        {"type": "charge.failed", "data": {"object": {"id": "pi_nobody"}}}
    )

    response = await anonymous_client.post(
        "/payments/webhooks/processor", content=body, headers=headers
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}


# ---------------------------------------------------------------------------
# Listing / reporting
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_players_filtered_by_state(payments_client, db_session):
    league = await seed_league(db_session, players=2, regular_price_cents=10000)
    await payments_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "cash",
            "amount": "100.00",
        },
    )

    response = await payments_client.get("/payments/players", params={"state": "paid"})

    assert response.status_code == 200
    rows = response.json()
    assert [row["player"]["id"] for row in rows] == [str(league["player_ids"][0])]
    assert rows[0]["state_label"] == "Paid"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_analytics_endpoint(payments_client, db_session):
    league = await seed_league(db_session, regular_price_cents=10000)
    await payments_client.post(
        "/payments/manual",
        json={
            "player_id": str(league["player_ids"][0]),
            "channel": "e_transfer",
            "amount": "40.00",
        },
    )

    response = await payments_client.get(
        "/payments/analytics", params={"city_id": str(league["city_id"])}
    )

    assert response.status_code == 200, response.text
    report = response.json()
    assert report["schema_version"] == 1
    assert report["total_count"] == 1
    assert report["total_paid"] == "40.00"
    assert report["by_payment_type"]["e_transfer"]["count"] == 1
    assert report["by_payment_type"]["cash"]["count"] == 0
    assert report["by_status"]["in_progress"]["amount"] == "40.00"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_analytics_rejects_inverted_range(payments_client):
    response = await payments_client.get(
        "/payments/analytics", params={"start": "2026-09-10", "end": "2026-09-01"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_csv_export(payments_client, db_session):
    await seed_league(db_session, players=2)

    response = await payments_client.get("/payments/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Player,Email,City")
    assert len(lines) == 3


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reminder_endpoint_emails_the_player(
    payments_client, db_session, recording_sender
):
    league = await seed_league(db_session)
    player_id = league["player_ids"][0]

    response = await payments_client.post(f"/payments/players/{player_id}/reminder")

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["player_id"] == str(player_id)
    assert body["template"] == "payment_reminder"
    assert body["sent"] is True
    [message] = recording_sender.messages
    assert message["recipient"] == body["recipient"]
    assert message["data"]["amount_owed"] == "$120.00"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_undelivered_reminder_maps_to_502(
    payments_client, db_session, recording_sender
):
    league = await seed_league(db_session)
    recording_sender.sent = False

    response = await payments_client.post(
        f"/payments/players/{league['player_ids'][0]}/reminder"
    )

    assert response.status_code == 502
    assert response.json()["code"] == "notification_failed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_notify_captain_endpoint(payments_client, db_session, recording_sender):
    league = await seed_league(db_session, players=2)
    player_id = league["player_ids"][1]

    response = await payments_client.post(
        f"/payments/teams/{league['team_id']}/notify-captain",
        json={"player_id": str(player_id)},
    )

    assert response.status_code == 200, response.text
    assert response.json()["template"] == "captain_unpaid_player"
    [message] = recording_sender.messages
    assert message["data"]["player_name"] == "Player1 Number1"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_notify_captain_for_unknown_team_maps_to_404(payments_client):
    response = await payments_client.post(
        f"/payments/teams/{uuid.uuid4()}/notify-captain",
        json={"player_id": str(uuid.uuid4())},
    )

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


def _token(role: str) -> dict:
    settings = get_settings()
    token = jwt.encode(
        {"sub": f"{role}-42", "email": f"{role}@example.com", "role": role},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_token_is_accepted(anonymous_client, db_session):
    await seed_league(db_session)

    response = await anonymous_client.get("/payments/players", headers=_token("admin"))

    assert response.status_code == 200
    assert len(response.json()) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_token_is_forbidden(anonymous_client):
    response = await anonymous_client.get("/payments/audit", headers=_token("member"))

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_garbage_token_is_unauthorized(anonymous_client):
    response = await anonymous_client.get(
        "/payments/audit", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
