from __future__ import annotations

import logging
from typing import Optional

import httpx

from buoy_gateway.errors import GatewayUnavailable, UpstreamUnreachable
from buoy_gateway.models import Reading

logger = logging.getLogger(__name__)


class GatewayClient:
    """HTTP reading provider for dashboards that talk to a remote gateway."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_reading(self, device_id: str) -> Reading:
        try:
            resp = await self._client.get(f"{self.base_url}/buoys/{device_id}")
        except httpx.TransportError as exc:
            raise UpstreamUnreachable("gateway", str(exc) or type(exc).__name__) from exc
        if resp.status_code != 200:
            message = resp.text
            try:
                body = resp.json()
                if isinstance(body, dict) and body.get("error"):
                    message = str(body["error"])
            except ValueError:
                pass
            raise GatewayUnavailable(resp.status_code, message)
        try:
            return Reading.from_payload(resp.json())
        except (ValueError, TypeError) as exc:
            raise GatewayUnavailable(resp.status_code, f"invalid reading: {exc}") from exc
