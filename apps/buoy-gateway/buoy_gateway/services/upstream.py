from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from buoy_gateway.errors import InvalidUpstreamPayload, UpstreamError, UpstreamUnreachable
from buoy_gateway.models import Category

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = {
    Category.TEMPERATURE: ("value",),
    Category.PRESSURE: ("value",),
    Category.LOCATION: ("latitude", "longitude", "timestamp"),
}


@dataclass(frozen=True)
class CategoryValue:
    category: Category
    numeric_id: int
    status_code: int
    payload: Dict[str, float]

    @property
    def value(self) -> float:
        return self.payload["value"]


class UpstreamTelemetryClient:
    """Reads one telemetry category at a time from the upstream sensor service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        timeout = httpx.Timeout(timeout_seconds)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    def url_for(self, category: Category, numeric_id: int) -> str:
        return f"{self.base_url}/{category.path}/{numeric_id}"

    async def read_category(self, category: Category, numeric_id: int) -> CategoryValue:
        url = self.url_for(category, numeric_id)
        target = f"{category.value} upstream"
        try:
            resp = await self._client.get(url)
        except httpx.TransportError as exc:
            # Timeouts are transport errors too; they collapse into the same failure.
            logger.debug("%s read failed for %s: %r", category.value, numeric_id, exc)
            raise UpstreamUnreachable(target, str(exc) or type(exc).__name__) from exc
        if not resp.is_success:
            raise UpstreamError(target, resp.status_code)
        payload = self._parse(category, resp, target)
        return CategoryValue(
            category=category,
            numeric_id=numeric_id,
            status_code=resp.status_code,
            payload=payload,
        )

    @staticmethod
    def _parse(category: Category, resp: httpx.Response, target: str) -> Dict[str, float]:
        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise InvalidUpstreamPayload(target, resp.status_code, "body is not JSON") from exc
        if not isinstance(data, dict):
            raise InvalidUpstreamPayload(target, resp.status_code, "body is not a JSON object")
        parsed: Dict[str, float] = {}
        for key in _REQUIRED_FIELDS[category]:
            raw = data.get(key)
            if raw is None or isinstance(raw, bool):
                raise InvalidUpstreamPayload(target, resp.status_code, f"missing {key}")
            try:
                number = float(raw)
            except (TypeError, ValueError):
                raise InvalidUpstreamPayload(target, resp.status_code, f"{key} is not numeric") from None
            if not math.isfinite(number):
                raise InvalidUpstreamPayload(target, resp.status_code, f"{key} is not finite")
            parsed[key] = number
        return parsed
