"""Upstream access, aggregation, fallback generation and client-side state."""
from __future__ import annotations

from .controller import ResilienceController, project_offset
from .deployment import DeploymentCommandIssuer
from .gateway import AggregationGateway
from .gateway_client import GatewayClient
from .synthetic import SyntheticReadingGenerator
from .upstream import CategoryValue, UpstreamTelemetryClient

__all__ = [
    "AggregationGateway",
    "CategoryValue",
    "DeploymentCommandIssuer",
    "GatewayClient",
    "ResilienceController",
    "SyntheticReadingGenerator",
    "UpstreamTelemetryClient",
    "project_offset",
]
