"""FastAPI application aggregating per-buoy telemetry from the upstream sensor service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from buoy_gateway.config import get_settings
from buoy_gateway.http_utils import install_error_handlers
from buoy_gateway.observability import configure_observability
from buoy_gateway.registry import DEFAULT_REGISTRY
from buoy_gateway.routers import buoys as buoys_router
from buoy_gateway.routers import root as root_router
from buoy_gateway.services.deployment import DeploymentCommandIssuer
from buoy_gateway.services.gateway import AggregationGateway
from buoy_gateway.services.upstream import UpstreamTelemetryClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    upstream = UpstreamTelemetryClient(
        settings.backend_api_base_url,
        timeout_seconds=settings.upstream_timeout_seconds,
        transport=getattr(app.state, "upstream_transport", None),
    )
    issuer = DeploymentCommandIssuer(
        settings.control_base_url,
        registry=DEFAULT_REGISTRY,
        timeout_seconds=settings.upstream_timeout_seconds,
        transport=getattr(app.state, "control_transport", None),
    )
    app.state.gateway = AggregationGateway(DEFAULT_REGISTRY, upstream)
    app.state.deployment_issuer = issuer
    logger.info("Buoy gateway started; upstream %s", settings.backend_api_base_url)

    try:
        yield
    finally:
        await upstream.aclose()
        await issuer.aclose()
        logger.info("Buoy gateway stopped")


settings = get_settings()
app = FastAPI(title="Buoy Gateway", version=settings.service_version, lifespan=lifespan)
configure_observability(
    app,
    service_name=settings.service_name,
    service_version=settings.service_version,
    log_level=settings.log_level,
    otel_enabled=settings.otel_enabled,
    otlp_endpoint=settings.otel_exporter_otlp_endpoint,
    otlp_headers=settings.otel_exporter_otlp_headers,
    otel_sample_ratio=settings.otel_sample_ratio,
)
install_error_handlers(app)

app.include_router(root_router.router)
app.include_router(buoys_router.router)


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("buoy_gateway.main:app", host="0.0.0.0", port=9000, reload=True)
