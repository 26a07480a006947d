"""Domain records passed between the gateway, the controller and the tools."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional

from buoy_gateway.errors import DeploymentValidationError

ReadingOrigin = Literal["gateway", "synthetic"]


class Category(str, Enum):
    """Upstream telemetry categories, one endpoint each."""

    TEMPERATURE = "temperature"
    PRESSURE = "pressure"
    LOCATION = "location"

    @property
    def path(self) -> str:
        return _CATEGORY_PATHS[self]

    @property
    def status_key(self) -> str:
        # The wire status map reuses the upstream path segment ("temp", ...).
        return _CATEGORY_PATHS[self]


_CATEGORY_PATHS = {
    Category.TEMPERATURE: "temp",
    Category.PRESSURE: "pressure",
    Category.LOCATION: "location",
}


def _require_finite(name: str, value: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number") from exc
    if not math.isfinite(parsed):
        raise ValueError(f"{name} must be a finite number")
    return parsed


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Reading:
    """One fully populated telemetry snapshot; never constructed partially."""

    temperature_f: float
    pressure_hpa: float
    latitude: float
    longitude: float
    observed_at_millis: int

    def __post_init__(self) -> None:
        for name in ("temperature_f", "pressure_hpa", "latitude", "longitude"):
            object.__setattr__(self, name, _require_finite(name, getattr(self, name)))
        millis = _require_finite("observed_at_millis", self.observed_at_millis)
        object.__setattr__(self, "observed_at_millis", int(millis))

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "temperatureF": self.temperature_f,
            "pressureHpa": self.pressure_hpa,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.observed_at_millis,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Reading":
        try:
            return cls(
                temperature_f=payload["temperatureF"],
                pressure_hpa=payload["pressureHpa"],
                latitude=payload["latitude"],
                longitude=payload["longitude"],
                observed_at_millis=payload["timestamp"],
            )
        except KeyError as exc:
            raise ValueError(f"reading payload missing {exc.args[0]}") from exc


@dataclass(frozen=True)
class RelativeOffset:
    """Display offset of the current position from the anchor."""

    x: float
    y: float
    distance_meters: float


@dataclass(frozen=True)
class ResilienceState:
    selected_device: str
    current_reading: Optional[Reading] = None
    anchor: Optional[Coordinate] = None
    is_loading: bool = False
    last_error: Optional[str] = None
    source: Optional[ReadingOrigin] = None

    @property
    def degraded(self) -> bool:
        return self.source == "synthetic"

    def to_payload(self) -> Dict[str, Any]:
        anchor = self.anchor
        return {
            "selectedDevice": self.selected_device,
            "currentReading": self.current_reading.to_payload() if self.current_reading else None,
            "anchor": {"latitude": anchor.latitude, "longitude": anchor.longitude} if anchor else None,
            "isLoading": self.is_loading,
            "lastError": self.last_error,
            "source": self.source,
        }


@dataclass(frozen=True)
class DeploymentCommand:
    numeric_device_id: int
    allowed_radius_meters: float

    def validate(self) -> "DeploymentCommand":
        radius = self.allowed_radius_meters
        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            raise DeploymentValidationError("allowedRadiusMeters must be a number")
        if not math.isfinite(radius) or radius <= 0:
            raise DeploymentValidationError("allowedRadiusMeters must be a positive, finite number")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return {
            "buoyId": self.numeric_device_id,
            "allowedRadiusMeters": self.allowed_radius_meters,
        }


@dataclass(frozen=True)
class DeploymentAck:
    device_id: str
    # The control endpoint's 200 body as sent: parsed JSON, or the raw text when it is not JSON.
    payload: Any = None

    @property
    def message(self) -> str:
        status = self.payload.get("status") if isinstance(self.payload, dict) else None
        if status:
            return f"{self.device_id}: {status}"
        return f"{self.device_id}: deployed"
