"""Unit tests for the processor client and its timeout wrappers."""

import httpx
import pytest
from libs.common.config import get_settings
from services.payments_service.errors import ProcessorError, ProcessorTimeoutError
from services.payments_service.models import ChargeOutcome
from services.payments_service.services.processor import (
    HttpPaymentProcessor,
    charge_with_timeout,
    outcome_from_status,
    poll_with_timeout,
)
from tests.fakes import FakeProcessor


def _client(handler) -> HttpPaymentProcessor:
    return HttpPaymentProcessor(
        secret_key="sk_test_123",
        base_url="https://processor.test/v1/",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("succeeded", ChargeOutcome.SUCCEEDED),
        ("paid", ChargeOutcome.SUCCEEDED),
        ("FAILED", ChargeOutcome.FAILED),
        ("requires_payment_method", ChargeOutcome.FAILED),
        ("processing", ChargeOutcome.PENDING),
        (None, ChargeOutcome.PENDING),
    ],
)
def test_outcome_from_status(raw, expected):
    assert outcome_from_status(raw) == expected


@pytest.mark.asyncio
@pytest.mark.unit
async def test_charge_posts_form_and_reads_card():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.content.decode()
        return httpx.Response(
            200,
            json={
                "id": "pi_123",
                "status": "succeeded",
                "charges": {
                    "data": [
                        {
                            "payment_method_details": {
                                "card": {"brand": "visa", "last4": "4242"}
                            }
                        }
                    ]
                },
            },
        )

    result = await _client(handler).charge(
        "pm_card", 1500, metadata={"record_id": "r-1"}
    )

    assert seen["url"] == "https://processor.test/v1/payment_intents"
    assert seen["auth"] == "Bearer sk_test_123"
    assert "amount=1500" in seen["body"]
    assert "metadata%5Brecord_id%5D=r-1" in seen["body"]
    assert result.outcome == ChargeOutcome.SUCCEEDED
    assert result.processor_ref == "pi_123"
    assert (result.card_brand, result.card_last4) == ("visa", "4242")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_poll_routes_invoices_and_payment_intents():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"status": "paid"})

    client = _client(handler)

    assert await client.poll_status("in_9") == ChargeOutcome.SUCCEEDED
    assert await client.poll_status("pi_9") == ChargeOutcome.SUCCEEDED
    assert paths == ["/v1/invoices/in_9", "/v1/payment_intents/pi_9"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_api_error_raises_processor_error():
    def handler(request: httpx.Request) -> httpx.Response:
        error = {"message": "Your card was declined"}
        return httpx.Response(402, json={"error": error})

    with pytest.raises(ProcessorError) as excinfo:
        await _client(handler).charge("pm_card", 1500)

    assert excinfo.value.message == "Your card was declined"
    assert excinfo.value.details["status_code"] == 402


@pytest.mark.unit
def test_secret_key_is_required(monkeypatch):
    monkeypatch.setattr(get_settings(), "PROCESSOR_SECRET_KEY", "")

    with pytest.raises(ValueError):
        HttpPaymentProcessor()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_charge_with_timeout_polls_until_resolved():
    processor = FakeProcessor(ChargeOutcome.PENDING)
    outcomes = iter([ChargeOutcome.PENDING, ChargeOutcome.SUCCEEDED])

    async def poll(processor_ref):
        processor.polls.append(processor_ref)
        return next(outcomes)

    processor.poll_status = poll

    result = await charge_with_timeout(
        processor,
        payment_method_ref="tmr_1",
        amount_cents=2000,
        timeout=1,
        poll_interval=0,
    )

    assert result.outcome == ChargeOutcome.SUCCEEDED
    assert len(processor.polls) == 2
    assert processor.polls[0] == result.processor_ref


@pytest.mark.asyncio
@pytest.mark.unit
async def test_charge_with_timeout_gives_up():
    with pytest.raises(ProcessorTimeoutError) as excinfo:
        await charge_with_timeout(
            FakeProcessor(hang=True),
            payment_method_ref="tmr_1",
            amount_cents=2000,
            timeout=0.05,
        )

    assert excinfo.value.status_code == 504


@pytest.mark.asyncio
@pytest.mark.unit
async def test_poll_with_timeout_gives_up():
    with pytest.raises(ProcessorTimeoutError):
        await poll_with_timeout(FakeProcessor(hang=True), "in_1", timeout=0.05)
