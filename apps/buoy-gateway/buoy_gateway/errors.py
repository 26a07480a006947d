"""Error taxonomy shared by the gateway, the client controller and the tools."""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Mapping, Optional, Union

if TYPE_CHECKING:  # pragma: no cover
    from buoy_gateway.models import Category

# Per-category outcome reported by PartialUpstreamFailure: the HTTP status the
# upstream answered with, or a marker for failures that never produced one.
CategoryStatus = Union[int, str]
STATUS_UNREACHABLE = "unreachable"
STATUS_INVALID_PAYLOAD = "invalid_payload"


class BuoyGatewayError(Exception):
    """Base class for every domain error raised by this package."""


class UnknownDevice(BuoyGatewayError):
    def __init__(self, device_id: object) -> None:
        super().__init__(f"Unknown buoy id: {device_id}")
        self.device_id = device_id


class UpstreamUnreachable(BuoyGatewayError):
    """Transport-level failure (connect error, timeout, reset) talking to an upstream."""

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"{target} unreachable: {reason}")
        self.target = target
        self.reason = reason


class UpstreamError(BuoyGatewayError):
    """The upstream answered, but with a non-success status code."""

    def __init__(self, target: str, status_code: int) -> None:
        super().__init__(f"{target} returned HTTP {status_code}")
        self.target = target
        self.status_code = status_code


class InvalidUpstreamPayload(BuoyGatewayError):
    def __init__(self, target: str, status_code: int, reason: str) -> None:
        super().__init__(f"{target} returned an unusable body: {reason}")
        self.target = target
        self.status_code = status_code
        self.reason = reason


class PartialUpstreamFailure(BuoyGatewayError):
    """At least one of the three category reads failed; no reading was produced."""

    def __init__(
        self,
        statuses: Mapping["Category", CategoryStatus],
        failures: Optional[Mapping["Category", BaseException]] = None,
    ) -> None:
        self.statuses: Dict["Category", CategoryStatus] = dict(statuses)
        self.failures: Dict["Category", BaseException] = dict(failures or {})
        summary = ", ".join(f"{category.value}={status}" for category, status in self.statuses.items())
        super().__init__(f"Upstream category read failed ({summary})")

    @property
    def unreachable(self) -> bool:
        """True when any category failed before an upstream could answer."""

        return any(status == STATUS_UNREACHABLE for status in self.statuses.values())

    def details(self) -> str:
        return "; ".join(str(exc) for exc in self.failures.values())

    def wire_statuses(self) -> Dict[str, CategoryStatus]:
        return {category.status_key: status for category, status in self.statuses.items()}


class DeploymentValidationError(BuoyGatewayError):
    pass


class CommandRejected(BuoyGatewayError):
    """The control endpoint explicitly refused a deployment command."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayUnavailable(BuoyGatewayError):
    """A remote gateway answered ``GET /buoys/{id}`` with something other than a reading."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Gateway returned HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message
