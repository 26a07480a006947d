from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from buoy_gateway.http_utils import aggregation_gateway, deployment_issuer
from buoy_gateway.schemas import BuoyReadingResponse, DeployRequest, ErrorResponse

router = APIRouter()


@router.get(
    "/buoys/{device_id}",
    response_model=BuoyReadingResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def latest_reading(device_id: str, request: Request) -> BuoyReadingResponse:
    reading = await aggregation_gateway(request.app).get_reading(device_id)
    return BuoyReadingResponse.from_reading(reading)


@router.post("/buoys/{device_id}/deploy", responses={400: {"model": ErrorResponse}})
async def deploy_buoy(device_id: str, payload: DeployRequest, request: Request) -> JSONResponse:
    ack = await deployment_issuer(request.app).deploy(device_id, payload.allowedRadiusMeters)
    # Relay the acknowledgement as the control endpoint sent it.
    return JSONResponse(content=ack.payload)
