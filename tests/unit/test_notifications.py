"""Unit tests for the Communications Service notification sender."""

import json

import httpx
import pytest
from jose import jwt
from libs.common.config import get_settings
from libs.common.service_client import InternalServiceClient
from services.payments_service.services.notifications import (
    CommunicationsNotificationSender,
    NotificationChannel,
)


def _sender(handler) -> CommunicationsNotificationSender:
    client = InternalServiceClient(
        "http://communications.test/", transport=httpx.MockTransport(handler)
    )
    return CommunicationsNotificationSender(client=client)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_email_is_posted_with_service_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(202, json={"queued": True})

    result = await _sender(handler).send(
        NotificationChannel.EMAIL,
        "ops@example.com",
        "payment_escalation_digest",
        {"count": 2},
    )

    assert result.sent is True
    assert seen["url"] == "http://communications.test/email/send-template"
    assert seen["body"] == {
        "template_type": "payment_escalation_digest",
        "to": "ops@example.com",
        "template_data": {"count": 2},
    }
    assert seen["headers"]["X-Caller-Service"] == "payments"
    token = seen["headers"]["Authorization"].removeprefix("Bearer ")
    settings = get_settings()
    claims = jwt.decode(
        token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM]
    )
    assert claims["role"] == "service_role"
    assert claims["sub"] == "service:payments"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_http_error_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="template missing")

    result = await _sender(handler).send(
        NotificationChannel.SMS, "+14165550100", "installment_failed", {}
    )

    assert result.sent is False
    assert result.detail == "template missing"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unreachable_service_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _sender(handler).send(
        NotificationChannel.EMAIL, "ops@example.com", "payment_escalation_digest", {}
    )

    assert result.sent is False
    assert "connection refused" in result.detail
