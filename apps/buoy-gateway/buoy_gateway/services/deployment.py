from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from buoy_gateway.errors import CommandRejected, UpstreamUnreachable
from buoy_gateway.models import DeploymentAck, DeploymentCommand
from buoy_gateway.registry import DEFAULT_REGISTRY, DeviceRegistry

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MESSAGE = "Deployment failed"


class DeploymentCommandIssuer:
    """Sends one-shot deployment commands (buoy + allowed drift radius) to the control endpoint.

    Failures are surfaced as-is for the caller to display; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        *,
        registry: DeviceRegistry = DEFAULT_REGISTRY,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.registry = registry
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_command(self, device_id: str, allowed_radius_meters: float) -> DeploymentCommand:
        numeric_id = self.registry.resolve(device_id)
        return DeploymentCommand(numeric_device_id=numeric_id, allowed_radius_meters=allowed_radius_meters).validate()

    async def deploy(self, device_id: str, allowed_radius_meters: float) -> DeploymentAck:
        command = self.build_command(device_id, allowed_radius_meters)
        try:
            resp = await self._client.post(f"{self.base_url}/deploy", json=command.to_payload())
        except httpx.TransportError as exc:
            raise UpstreamUnreachable("control endpoint", str(exc) or type(exc).__name__) from exc
        body = _parse_body(resp)
        if not resp.is_success:
            message = DEFAULT_REJECTION_MESSAGE
            if isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
            logger.warning("Deployment of %s rejected (%s): %s", device_id, resp.status_code, message)
            raise CommandRejected(message, resp.status_code)
        logger.info(
            "Deployed %s with radius %.1f m",
            device_id,
            command.allowed_radius_meters,
        )
        return DeploymentAck(device_id=device_id, payload=body)


def _parse_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
