from __future__ import annotations

from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from buoy_gateway.models import Reading


class BuoyReadingResponse(BaseModel):
    temperatureF: float
    pressureHpa: float
    latitude: float
    longitude: float
    timestamp: int

    @classmethod
    def from_reading(cls, reading: Reading) -> "BuoyReadingResponse":
        return cls.model_validate(reading.to_payload())


class DeployRequest(BaseModel):
    # Radius validation is the issuer's job so every caller gets the same error.
    allowedRadiusMeters: float = Field(description="How far the buoy may drift from its deployment point")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: str
    details: Optional[str] = None
    statuses: Optional[Dict[str, Union[int, str]]] = None
    request_id: Optional[str] = None
