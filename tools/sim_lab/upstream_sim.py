#!/usr/bin/env python3
"""Simulated upstream sensor service for local gateway runs.

Serves the three per-buoy read endpoints (``/temp``, ``/pressure``,
``/location``) and the ``/deploy`` control endpoint from the synthetic
generator, with fault injection so individual categories can be forced to
fail with a chosen status code or delay.
"""
from __future__ import annotations

import asyncio
import logging
import math
import os
import sys
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).resolve().parents[2] / "apps" / "buoy-gateway"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from buoy_gateway.models import Reading  # noqa: E402
from buoy_gateway.registry import DEFAULT_REGISTRY, DeviceRegistry  # noqa: E402
from buoy_gateway.services.synthetic import SyntheticReadingGenerator  # noqa: E402

SIM_SEED = os.getenv("SIM_LAB_SEED")

logger = logging.getLogger(__name__)

CategoryName = Literal["temp", "pressure", "location"]


class FaultRequest(BaseModel):
    category: CategoryName
    buoy_id: Optional[int] = Field(default=None, description="Numeric buoy id; omit to affect every buoy")
    status_code: int = Field(default=503, ge=100, le=599)
    delay_seconds: float = Field(default=0.0, ge=0.0, le=60.0)


class FaultSpec(FaultRequest):
    id: str


class DeployCommand(BaseModel):
    buoyId: int
    allowedRadiusMeters: float


class UpstreamSimState:
    def __init__(self, registry: DeviceRegistry, generator: SyntheticReadingGenerator) -> None:
        self.registry = registry
        self.generator = generator
        self.faults: list[FaultSpec] = []
        self.deployments: Dict[int, dict] = {}

    def add_fault(self, request: FaultRequest) -> FaultSpec:
        fault = FaultSpec(id=uuid.uuid4().hex[:8], **request.model_dump())
        self.faults.append(fault)
        return fault

    def clear_faults(self) -> None:
        self.faults.clear()

    def fault_for(self, category: str, buoy_id: int) -> Optional[FaultSpec]:
        for fault in reversed(self.faults):
            if fault.category == category and fault.buoy_id in (None, buoy_id):
                return fault
        return None

    def reading(self, buoy_id: int) -> Reading:
        device_id = self.registry.reverse(buoy_id)
        if device_id is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown buoy {buoy_id}")
        return self.generator.generate(device_id)


def _build_state() -> UpstreamSimState:
    seed = int(SIM_SEED) if SIM_SEED else None
    return UpstreamSimState(DEFAULT_REGISTRY, SyntheticReadingGenerator(seed=seed))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "sim", None) is None:
        app.state.sim = _build_state()
    yield


app = FastAPI(title="Buoy Upstream Simulator", lifespan=lifespan)


def get_sim() -> UpstreamSimState:
    return app.state.sim


async def _apply_fault(sim: UpstreamSimState, category: str, buoy_id: int) -> Optional[JSONResponse]:
    fault = sim.fault_for(category, buoy_id)
    if fault is None:
        return None
    if fault.delay_seconds:
        await asyncio.sleep(fault.delay_seconds)
    if fault.status_code >= 400:
        return JSONResponse(status_code=fault.status_code, content={"error": f"injected fault {fault.id}"})
    return None


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}


@app.get("/temp/{buoy_id}")
async def temperature(buoy_id: int, sim: UpstreamSimState = Depends(get_sim)):
    injected = await _apply_fault(sim, "temp", buoy_id)
    if injected is not None:
        return injected
    return {"value": sim.reading(buoy_id).temperature_f}


@app.get("/pressure/{buoy_id}")
async def pressure(buoy_id: int, sim: UpstreamSimState = Depends(get_sim)):
    injected = await _apply_fault(sim, "pressure", buoy_id)
    if injected is not None:
        return injected
    return {"value": sim.reading(buoy_id).pressure_hpa}


@app.get("/location/{buoy_id}")
async def location(buoy_id: int, sim: UpstreamSimState = Depends(get_sim)):
    injected = await _apply_fault(sim, "location", buoy_id)
    if injected is not None:
        return injected
    reading = sim.reading(buoy_id)
    return {
        "latitude": reading.latitude,
        "longitude": reading.longitude,
        "timestamp": reading.observed_at_millis,
    }


@app.post("/deploy")
async def deploy(command: DeployCommand, sim: UpstreamSimState = Depends(get_sim)):
    if sim.registry.reverse(command.buoyId) is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": f"Buoy {command.buoyId} has not sent any data yet. "
                "Please ensure the buoy is active and transmitting before deployment."
            },
        )
    radius = command.allowedRadiusMeters
    if not math.isfinite(radius) or radius <= 0:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid deployment request"})
    reading = sim.reading(command.buoyId)
    deployment = {
        "status": "deployed",
        "buoyId": command.buoyId,
        "latitude": reading.latitude,
        "longitude": reading.longitude,
        "allowedRadiusMeters": radius,
    }
    sim.deployments[command.buoyId] = {**deployment, "deployedAt": int(time.time() * 1000)}
    logger.info("Deployment saved for buoy %s", command.buoyId)
    return deployment


@app.get("/faults", response_model=list[FaultSpec])
async def list_faults(sim: UpstreamSimState = Depends(get_sim)) -> list[FaultSpec]:
    return list(sim.faults)


@app.post("/faults", response_model=FaultSpec)
async def add_fault(request: FaultRequest, sim: UpstreamSimState = Depends(get_sim)) -> FaultSpec:
    return sim.add_fault(request)


@app.delete("/faults")
async def clear_faults(sim: UpstreamSimState = Depends(get_sim)) -> dict:
    sim.clear_faults()
    return {"status": "ok"}


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=port)


if __name__ == "__main__":
    main()
