"""All-or-nothing aggregation of the three upstream telemetry categories."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Tuple

from buoy_gateway.errors import (
    STATUS_INVALID_PAYLOAD,
    STATUS_UNREACHABLE,
    CategoryStatus,
    InvalidUpstreamPayload,
    PartialUpstreamFailure,
    UpstreamError,
)
from buoy_gateway.models import Category, Reading
from buoy_gateway.registry import DeviceRegistry
from buoy_gateway.services.upstream import CategoryValue, UpstreamTelemetryClient

logger = logging.getLogger(__name__)

CATEGORIES: Tuple[Category, ...] = (Category.TEMPERATURE, Category.PRESSURE, Category.LOCATION)


def _status_for(outcome: object) -> CategoryStatus:
    if isinstance(outcome, CategoryValue):
        return outcome.status_code
    if isinstance(outcome, UpstreamError):
        return outcome.status_code
    if isinstance(outcome, InvalidUpstreamPayload):
        return STATUS_INVALID_PAYLOAD
    return STATUS_UNREACHABLE


class AggregationGateway:
    """Fans out to every category for one buoy and joins the answers into a Reading.

    The three reads run concurrently and are all awaited before anything is
    decided. If any of them failed the whole call fails with
    :class:`PartialUpstreamFailure`, carrying the per-category outcome; a
    Reading is never assembled from a subset of categories. The location
    category's timestamp becomes the reading's observation time.
    """

    def __init__(self, registry: DeviceRegistry, upstream: UpstreamTelemetryClient) -> None:
        self.registry = registry
        self.upstream = upstream

    async def get_reading(self, device_id: str) -> Reading:
        numeric_id = self.registry.resolve(device_id)
        started = time.monotonic()
        outcomes = await asyncio.gather(
            *(self.upstream.read_category(category, numeric_id) for category in CATEGORIES),
            return_exceptions=True,
        )
        by_category = dict(zip(CATEGORIES, outcomes))
        for outcome in outcomes:
            # Cancellation and interpreter exits are not upstream failures.
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        failures: Dict[Category, BaseException] = {
            category: outcome for category, outcome in by_category.items() if isinstance(outcome, BaseException)
        }
        if failures:
            statuses = {category: _status_for(outcome) for category, outcome in by_category.items()}
            logger.warning(
                "Upstream read failed for %s (%s)",
                device_id,
                ", ".join(f"{category.value}={status}" for category, status in statuses.items()),
            )
            raise PartialUpstreamFailure(statuses, failures)

        temperature = by_category[Category.TEMPERATURE]
        pressure = by_category[Category.PRESSURE]
        location = by_category[Category.LOCATION]
        reading = Reading(
            temperature_f=temperature.value,
            pressure_hpa=pressure.value,
            latitude=location.payload["latitude"],
            longitude=location.payload["longitude"],
            observed_at_millis=int(location.payload["timestamp"]),
        )
        logger.debug(
            "Aggregated reading for %s in %.1f ms",
            device_id,
            (time.monotonic() - started) * 1000.0,
        )
        return reading
