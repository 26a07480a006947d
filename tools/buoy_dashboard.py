#!/usr/bin/env python3
"""Terminal dashboard: watch a buoy through the gateway or issue a deployment command."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1] / "apps" / "buoy-gateway"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from buoy_gateway.config import Settings  # noqa: E402
from buoy_gateway.errors import (  # noqa: E402
    CommandRejected,
    DeploymentValidationError,
    UnknownDevice,
    UpstreamUnreachable,
)
from buoy_gateway.models import RelativeOffset, ResilienceState  # noqa: E402
from buoy_gateway.observability import configure_logging  # noqa: E402
from buoy_gateway.registry import DEFAULT_REGISTRY  # noqa: E402
from buoy_gateway.services.controller import ResilienceController  # noqa: E402
from buoy_gateway.services.deployment import DeploymentCommandIssuer  # noqa: E402
from buoy_gateway.services.gateway_client import GatewayClient  # noqa: E402
from buoy_gateway.services.geofence import is_outside_fence  # noqa: E402
from buoy_gateway.services.synthetic import SyntheticReadingGenerator  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SmartBuoy terminal dashboard")
    parser.add_argument("--gateway-url", help="Gateway base URL (default: BUOY_GATEWAY_BASE_URL)")
    parser.add_argument("--control-url", help="Deployment control base URL (default: BUOY_CONTROL_API_BASE_URL)")
    parser.add_argument("--timeout", type=float, help="HTTP timeout in seconds")
    parser.add_argument("--log-level", default="WARNING", help="Log level for stderr diagnostics")
    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Poll a buoy and print each resolved state")
    watch.add_argument("--device", default=DEFAULT_REGISTRY.device_ids()[0], help="Buoy id, e.g. buoy-1")
    watch.add_argument("--interval", type=float, help="Seconds between refreshes (default: BUOY_POLL_INTERVAL_SECONDS)")
    watch.add_argument("--count", type=int, default=0, help="Stop after this many readings (0 = run until interrupted)")
    watch.add_argument("--fence-radius", type=float, help="Flag readings further than this many meters from the anchor")
    watch.add_argument("--json", action="store_true", help="Emit one JSON object per reading")

    deploy = sub.add_parser("deploy", help="Deploy a buoy with an allowed drift radius")
    deploy.add_argument("--device", required=True, help="Buoy id, e.g. buoy-1")
    deploy.add_argument("--radius", type=float, required=True, help="Allowed drift radius in meters")
    deploy.add_argument("--json", action="store_true", help="Print the acknowledgement body as JSON")

    return parser


def _offset_payload(offset: Optional[RelativeOffset]) -> Optional[Dict[str, float]]:
    if offset is None:
        return None
    return {"x": offset.x, "y": offset.y, "distanceMeters": offset.distance_meters}


def render_state(
    state: ResilienceState,
    offset: Optional[RelativeOffset],
    *,
    fence_radius: Optional[float] = None,
) -> str:
    reading = state.current_reading
    if reading is None:
        return f"{state.selected_device}: waiting for first reading"
    mode = "simulated" if state.degraded else "live"
    line = (
        f"{state.selected_device} [{mode}] {reading.temperature_f:.1f}°F "
        f"{reading.pressure_hpa:.0f} hPa @ {reading.latitude:.4f}, {reading.longitude:.4f}"
    )
    if offset is None:
        line += " | waiting for first location"
    else:
        line += f" | offset ({offset.x:+.1f}, {offset.y:+.1f}) {offset.distance_meters:.1f} m"
        if fence_radius is not None and state.anchor is not None and is_outside_fence(
            state.anchor, fence_radius, reading.coordinate
        ):
            line += " OUTSIDE FENCE"
    if state.last_error:
        line += f" | {state.last_error}"
    return line


async def _watch(args: argparse.Namespace, settings: Settings) -> int:
    client = GatewayClient(
        args.gateway_url or settings.gateway_base_url,
        timeout_seconds=args.timeout or settings.gateway_timeout_seconds,
    )
    interval = args.interval if args.interval is not None else settings.poll_interval_seconds
    enough = asyncio.Event()
    printed = 0

    def show(state: ResilienceState) -> None:
        nonlocal printed
        if enough.is_set():
            return
        offset = controller.relative_offset(state)
        if args.json:
            payload: Dict[str, Any] = state.to_payload()
            payload["offset"] = _offset_payload(offset)
            print(json.dumps(payload, sort_keys=True), flush=True)
        else:
            print(render_state(state, offset, fence_radius=args.fence_radius), flush=True)
        printed += 1
        if args.count and printed >= args.count:
            enough.set()

    controller = ResilienceController(
        client,
        generator=SyntheticReadingGenerator(seed=settings.synthetic_seed),
        initial_device=args.device,
        on_update=show,
    )
    # The poll loop resolves immediately, then once per interval.
    controller.start(max(interval, 0.0))
    try:
        await enough.wait()
        return 0
    finally:
        await controller.stop()
        await client.aclose()


async def _deploy(args: argparse.Namespace, settings: Settings) -> int:
    issuer = DeploymentCommandIssuer(
        args.control_url or settings.control_base_url,
        timeout_seconds=args.timeout or settings.upstream_timeout_seconds,
    )
    try:
        ack = await issuer.deploy(args.device, args.radius)
    except (DeploymentValidationError, UnknownDevice) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except (CommandRejected, UpstreamUnreachable) as exc:
        print(f"deployment failed: {exc}", file=sys.stderr)
        return 1
    finally:
        await issuer.aclose()
    if args.json:
        print(json.dumps(ack.payload, sort_keys=True))
    else:
        print(ack.message)
    return 0


async def run_command(args: argparse.Namespace) -> int:
    settings = Settings()
    if args.command == "watch":
        if args.device not in DEFAULT_REGISTRY:
            print(f"error: unknown buoy id {args.device!r}", file=sys.stderr)
            return 2
        return await _watch(args, settings)
    if args.command == "deploy":
        return await _deploy(args, settings)
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("buoy-dashboard", args.log_level, stream=sys.stderr)
    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
