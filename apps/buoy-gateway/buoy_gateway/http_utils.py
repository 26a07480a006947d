from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from buoy_gateway.errors import (
    CommandRejected,
    DeploymentValidationError,
    PartialUpstreamFailure,
    UnknownDevice,
    UpstreamUnreachable,
)
from buoy_gateway.observability import attach_request_id
from buoy_gateway.services.deployment import DeploymentCommandIssuer
from buoy_gateway.services.gateway import AggregationGateway

logger = logging.getLogger(__name__)


def aggregation_gateway(app: FastAPI) -> AggregationGateway:
    return getattr(app.state, "gateway")


def deployment_issuer(app: FastAPI) -> DeploymentCommandIssuer:
    return getattr(app.state, "deployment_issuer")


def error_response(status_code: int, error: str, **fields: Any) -> JSONResponse:
    body: Dict[str, Any] = {"error": error}
    body.update({key: value for key, value in fields.items() if value is not None})
    return JSONResponse(status_code=status_code, content=attach_request_id(body))


async def _unknown_device(_request: Request, exc: UnknownDevice) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc))


async def _partial_upstream_failure(_request: Request, exc: PartialUpstreamFailure) -> JSONResponse:
    if exc.unreachable:
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to reach backend",
            details=exc.details(),
        )
    return error_response(
        status.HTTP_502_BAD_GATEWAY,
        "Backend returned non-OK",
        statuses=exc.wire_statuses(),
    )


async def _upstream_unreachable(_request: Request, exc: UpstreamUnreachable) -> JSONResponse:
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        f"Failed to reach {exc.target}",
        details=exc.reason,
    )


async def _deployment_invalid(_request: Request, exc: DeploymentValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc))


async def _command_rejected(_request: Request, exc: CommandRejected) -> JSONResponse:
    code = exc.status_code if 400 <= exc.status_code < 600 else status.HTTP_502_BAD_GATEWAY
    return error_response(code, exc.message)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UnknownDevice, _unknown_device)
    app.add_exception_handler(PartialUpstreamFailure, _partial_upstream_failure)
    app.add_exception_handler(UpstreamUnreachable, _upstream_unreachable)
    app.add_exception_handler(DeploymentValidationError, _deployment_invalid)
    app.add_exception_handler(CommandRejected, _command_rejected)
