"""Authenticated HTTP client for calls to other league services.

The payments service never reads another service's tables; anything it
needs from them (sending email today) goes over their internal API with
a short-lived service-role JWT.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from libs.auth.dependencies import _service_role_jwt
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Seconds
DEFAULT_TIMEOUT = 10.0


class InternalServiceClient:
    """Client bound to one target service.

    ``transport`` lets tests route calls to an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        calling_service: str = "payments",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.calling_service = calling_service
        self.timeout = timeout
        self._transport = transport

    def headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {_service_role_jwt(self.calling_service)}",
            "X-Caller-Service": self.calling_service,
        }
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        """Send one request; raises ``httpx.RequestError`` if unreachable."""
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                headers=self.headers(),
                json=json,
                params=params,
            )
        logger.debug(
            "%s %s%s -> %d", method, self.base_url, path, response.status_code
        )
        return response

    async def post(self, path: str, *, json: Any = None) -> httpx.Response:
        return await self.request("POST", path, json=json)
