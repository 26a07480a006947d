from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Dict, List, Set, Tuple

import httpx
import pytest

REPO_ROOT = Path(__file__).resolve().parents[3]
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from buoy_gateway.config import get_settings  # noqa: E402

LOCATION_TIMESTAMP = 1_700_000_000_123


class FakeUpstream:
    """In-memory sensor service served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.values: Dict[int, Dict[str, dict]] = {
            1: {
                "temp": {"value": 52.4},
                "pressure": {"value": 1015.6},
                "location": {"latitude": 42.3512, "longitude": -70.9813, "timestamp": LOCATION_TIMESTAMP},
            },
            2: {
                "temp": {"value": 55.9},
                "pressure": {"value": 1012.2},
                "location": {"latitude": 41.7003, "longitude": -70.0021, "timestamp": LOCATION_TIMESTAMP + 5},
            },
        }
        self.statuses: Dict[Tuple[str, int], int] = {}
        self.unreachable: Set[Tuple[str, int]] = set()
        self.raw_bodies: Dict[Tuple[str, int], bytes] = {}
        self.calls: List[Tuple[str, int]] = []
        self.deploy_requests: List[dict] = []
        self.deploy_status = 200
        self.deploy_body: object = {"status": "deployed", "buoyId": 1, "allowedRadiusMeters": 30.0}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/deploy":
            self.deploy_requests.append(json.loads(request.content))
            if isinstance(self.deploy_body, (dict, list)):
                return httpx.Response(self.deploy_status, json=self.deploy_body)
            return httpx.Response(self.deploy_status, content=str(self.deploy_body).encode())
        _, category, raw_id = request.url.path.split("/")
        key = (category, int(raw_id))
        self.calls.append(key)
        if key in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        status_code = self.statuses.get(key, 200)
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "sensor offline"})
        if key in self.raw_bodies:
            return httpx.Response(200, content=self.raw_bodies[key])
        return httpx.Response(200, json=self.values[key[1]][category])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture(autouse=True)
def reset_settings_env(monkeypatch):
    for name in (
        "BACKEND_API_BASE_URL",
        "BUOY_BACKEND_API_BASE_URL",
        "BUOY_CONTROL_API_BASE_URL",
        "BUOY_GATEWAY_BASE_URL",
        "BUOY_POLL_INTERVAL_SECONDS",
        "BUOY_OTEL_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
