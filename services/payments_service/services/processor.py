"""
Payment processor interface and HTTP client.

The engine only ever talks to a processor through ``PaymentProcessor``:
- charging a saved card or a terminal reader
- polling the status of a charge or invoice

``charge_with_timeout`` wraps both so a processor that never answers
leaves payment records untouched and surfaces ``ProcessorTimeoutError``.
"""

import abc
import asyncio
from dataclasses import dataclass, field, replace
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.payments_service.errors import ProcessorError, ProcessorTimeoutError
from services.payments_service.models import ChargeOutcome

logger = get_logger(__name__)

# Seconds between status polls while a terminal charge is awaiting the card.
DEFAULT_POLL_INTERVAL = 1.0


@dataclass
class ChargeResult:
    """Result of asking the processor to move money."""

    outcome: ChargeOutcome
    processor_ref: str
    failure_reason: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    raw: dict = field(default_factory=dict)


class PaymentProcessor(abc.ABC):
    """What the engine needs from a card processor."""

    @abc.abstractmethod
    async def charge(
        self,
        payment_method_ref: str,
        amount_cents: int,
        metadata: Optional[dict] = None,
    ) -> ChargeResult:
        """Charge a saved payment method or terminal reader."""

    @abc.abstractmethod
    async def poll_status(self, processor_ref: str) -> ChargeOutcome:
        """Current outcome of a charge or invoice."""


_STATUS_MAP = {
    "succeeded": ChargeOutcome.SUCCEEDED,
    "paid": ChargeOutcome.SUCCEEDED,
    "success": ChargeOutcome.SUCCEEDED,
    "failed": ChargeOutcome.FAILED,
    "canceled": ChargeOutcome.FAILED,
    "uncollectible": ChargeOutcome.FAILED,
    "requires_payment_method": ChargeOutcome.FAILED,
}


def outcome_from_status(raw_status: Optional[str]) -> ChargeOutcome:
    return _STATUS_MAP.get(str(raw_status or "").lower(), ChargeOutcome.PENDING)


class HttpPaymentProcessor(PaymentProcessor):
    """Async client for the processor's REST API."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.PROCESSOR_SECRET_KEY
        if not self.secret_key:
            raise ValueError("PROCESSOR_SECRET_KEY is required")
        self.base_url = (base_url or settings.PROCESSOR_BASE_URL).rstrip("/")
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {self.secret_key}",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
    ) -> dict:
        """Make an async request to the processor API."""
        url = f"{self.base_url}{endpoint}"

        async with httpx.AsyncClient(
            timeout=30.0, transport=self._transport
        ) as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._headers,
                    data=data,
                )
            except httpx.RequestError as exc:
                raise ProcessorError(f"Processor unreachable: {exc}") from exc

            try:
                payload = response.json()
            except ValueError:
                payload = {}

            if not response.is_success:
                error = payload.get("error") or {}
                logger.error(
                    "Processor API error: %s - %s", response.status_code, payload
                )
                raise ProcessorError(
                    error.get("message", "Unknown processor error"),
                    details={"status_code": response.status_code, "response": payload},
                )

            return payload

    async def charge(
        self,
        payment_method_ref: str,
        amount_cents: int,
        metadata: Optional[dict] = None,
    ) -> ChargeResult:
        form = {
            "amount": amount_cents,
            "currency": "cad",
            "payment_method": payment_method_ref,
            "confirm": "true",
            "off_session": "true",
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = str(value)

        payload = await self._request("POST", "/payment_intents", data=form)
        charges = (payload.get("charges") or {}).get("data") or []
        details = charges[0].get("payment_method_details") or {} if charges else {}
        card = details.get("card") or {}
        last_error = payload.get("last_payment_error") or {}
        return ChargeResult(
            outcome=outcome_from_status(payload.get("status")),
            processor_ref=payload.get("id", ""),
            failure_reason=last_error.get("message"),
            card_brand=card.get("brand"),
            card_last4=card.get("last4"),
            raw=payload,
        )

    async def poll_status(self, processor_ref: str) -> ChargeOutcome:
        endpoint = (
            f"/invoices/{processor_ref}"
            if processor_ref.startswith("in_")
            else f"/payment_intents/{processor_ref}"
        )
        payload = await self._request("GET", endpoint)
        return outcome_from_status(payload.get("status"))


async def charge_with_timeout(
    processor: PaymentProcessor,
    *,
    payment_method_ref: str,
    amount_cents: int,
    timeout: float,
    metadata: Optional[dict] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> ChargeResult:
    """Charge and, while the processor reports pending, poll until resolved.

    The whole exchange must finish within ``timeout`` seconds.
    """

    async def _charge_until_resolved() -> ChargeResult:
        result = await processor.charge(payment_method_ref, amount_cents, metadata)
        while result.outcome == ChargeOutcome.PENDING:
            await asyncio.sleep(poll_interval)
            outcome = await processor.poll_status(result.processor_ref)
            result = replace(result, outcome=outcome)
        return result

    try:
        return await asyncio.wait_for(_charge_until_resolved(), timeout)
    except asyncio.TimeoutError as exc:
        logger.warning(
            "Processor did not resolve a %d cent charge within %.1fs",
            amount_cents,
            timeout,
        )
        raise ProcessorTimeoutError(
            f"Payment processor did not respond within {timeout:g} seconds",
            details={"amount_cents": amount_cents},
        ) from exc


async def poll_with_timeout(
    processor: PaymentProcessor, processor_ref: str, *, timeout: float
) -> ChargeOutcome:
    try:
        return await asyncio.wait_for(processor.poll_status(processor_ref), timeout)
    except asyncio.TimeoutError as exc:
        raise ProcessorTimeoutError(
            f"Payment processor did not report status for {processor_ref}",
            details={"processor_ref": processor_ref},
        ) from exc


def get_payment_processor() -> PaymentProcessor:
    """FastAPI dependency; tests override it with a fake."""
    return HttpPaymentProcessor()
