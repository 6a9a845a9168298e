"""
Notification sender used by reminder and escalation flows.

The core payment operations never send anything themselves; they only
expose the data (failed installments, severity, team balances). The
escalation worker hands that data to a ``NotificationSender``.
"""

import abc
import enum
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.service_client import InternalServiceClient

logger = get_logger(__name__)


class NotificationChannel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass
class SendResult:
    sent: bool
    detail: Optional[str] = None


class NotificationSender(abc.ABC):
    @abc.abstractmethod
    async def send(
        self,
        channel: NotificationChannel,
        recipient: str,
        template: str,
        data: dict[str, Any],
    ) -> SendResult:
        """Deliver one templated message."""


class CommunicationsNotificationSender(NotificationSender):
    """
    Sends through the Communications Service, which owns templates and
    provider credentials. Authenticates with a service-role JWT via the
    internal service client.
    """

    _PATHS = {
        NotificationChannel.EMAIL: "/email/send-template",
        NotificationChannel.SMS: "/sms/send-template",
    }

    def __init__(
        self,
        service_url: Optional[str] = None,
        *,
        client: Optional[InternalServiceClient] = None,
    ):
        self.client = client or InternalServiceClient(
            service_url or get_settings().COMMUNICATIONS_SERVICE_URL
        )

    async def send(
        self,
        channel: NotificationChannel,
        recipient: str,
        template: str,
        data: dict[str, Any],
    ) -> SendResult:
        channel = NotificationChannel(channel)
        try:
            response = await self.client.post(
                self._PATHS[channel],
                json={
                    "template_type": template,
                    "to": recipient,
                    "template_data": data,
                },
            )
        except httpx.RequestError as e:
            logger.error("Failed to connect to Communications Service: %s", e)
            return SendResult(sent=False, detail=str(e))

        if response.status_code >= 400:
            logger.error(
                "%s notification %s to %s failed (http %d): %s",
                channel.value,
                template,
                recipient,
                response.status_code,
                response.text,
            )
            return SendResult(sent=False, detail=response.text)

        logger.info("Sent %s notification %s to %s", channel.value, template, recipient)
        return SendResult(sent=True)


def get_notification_sender() -> NotificationSender:
    """FastAPI dependency; tests override it with a recording sender."""
    return CommunicationsNotificationSender()
