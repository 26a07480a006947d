from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from buoy_gateway.config import Settings, get_settings
from buoy_gateway.http_utils import aggregation_gateway

router = APIRouter()


@router.get("/healthz")
async def healthz():
    return {"status": "ok"}


@router.get("/buoys")
async def list_buoys(request: Request, settings: Settings = Depends(get_settings)):
    registry = aggregation_gateway(request.app).registry
    return {
        "buoys": list(registry.device_ids()),
        "service_version": settings.service_version,
    }
