from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Deque, Dict, List

import pytest

from buoy_gateway.errors import PartialUpstreamFailure, UnknownDevice
from buoy_gateway.models import Category, Coordinate, Reading
from buoy_gateway.services.controller import (
    DEGRADED_MODE_MESSAGE,
    RELATIVE_POSITION_SCALE,
    ResilienceController,
    project_offset,
)
from buoy_gateway.services.synthetic import SyntheticReadingGenerator


def _reading(temp=52.0, lat=42.35, lon=-70.99, ts=1_000) -> Reading:
    return Reading(temperature_f=temp, pressure_hpa=1015.0, latitude=lat, longitude=lon, observed_at_millis=ts)


class ScriptedProvider:
    """Reading provider that replays queued outcomes, optionally waiting on per-call gates."""

    def __init__(self) -> None:
        self.outcomes: Dict[str, Deque[object]] = defaultdict(deque)
        self.gates: Dict[str, Deque[asyncio.Event]] = defaultdict(deque)
        self.calls: List[str] = []

    def queue(self, device_id: str, *outcomes: object) -> None:
        self.outcomes[device_id].extend(outcomes)

    def gate(self, device_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[device_id].append(event)
        return event

    async def get_reading(self, device_id: str) -> Reading:
        self.calls.append(device_id)
        if self.gates[device_id]:
            await self.gates[device_id].popleft().wait()
        outcome = self.outcomes[device_id].popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _gateway_down() -> PartialUpstreamFailure:
    return PartialUpstreamFailure({Category.TEMPERATURE: 503, Category.PRESSURE: 200, Category.LOCATION: 200})


def _controller(provider: ScriptedProvider, **kwargs) -> ResilienceController:
    return ResilienceController(provider, generator=SyntheticReadingGenerator(seed=3), **kwargs)


def test_initial_state_has_no_reading_or_anchor():
    controller = _controller(ScriptedProvider(), initial_device="buoy-2")
    state = controller.current_state()
    assert state.selected_device == "buoy-2"
    assert state.current_reading is None
    assert state.anchor is None
    assert state.is_loading is False
    assert controller.relative_offset() is None


def test_first_successful_reading_sets_anchor():
    provider = ScriptedProvider()
    first = _reading(lat=42.3501, lon=-70.9801)
    provider.queue("buoy-1", first)
    controller = _controller(provider)

    state = asyncio.run(controller.select_device("buoy-1"))

    assert state.current_reading == first
    assert state.anchor == Coordinate(42.3501, -70.9801)
    assert state.source == "gateway"
    assert state.last_error is None
    assert state.is_loading is False


def test_refresh_replaces_reading_but_keeps_anchor():
    provider = ScriptedProvider()
    first = _reading(lat=42.3501, lon=-70.9801, ts=1)
    moved = _reading(temp=53.1, lat=42.3522, lon=-70.9777, ts=2)
    provider.queue("buoy-1", first, moved)
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        return await controller.refresh()

    state = asyncio.run(runner())
    assert state.current_reading == moved
    assert state.anchor == first.coordinate


def test_selecting_another_device_recaptures_anchor():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading(lat=42.35, lon=-70.99))
    second = _reading(temp=55.5, lat=41.70, lon=-70.00)
    provider.queue("buoy-2", second)
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        return await controller.select_device("buoy-2")

    state = asyncio.run(runner())
    assert state.selected_device == "buoy-2"
    assert state.anchor == second.coordinate
    assert state.current_reading == second


def test_reselecting_same_device_also_recaptures_anchor():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading(lat=42.35), _reading(lat=42.36))
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        return await controller.select_device("buoy-1")

    state = asyncio.run(runner())
    assert state.anchor.latitude == pytest.approx(42.36)


def test_gateway_failure_falls_back_to_synthetic_reading():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _gateway_down())
    controller = _controller(provider)

    state = asyncio.run(controller.select_device("buoy-1"))

    assert state.current_reading is not None
    assert 52.0 <= state.current_reading.temperature_f <= 54.0
    assert state.source == "synthetic"
    assert state.degraded is True
    assert state.last_error is not None and state.last_error.startswith(DEGRADED_MODE_MESSAGE)
    assert state.is_loading is False
    # A fallback reading still anchors the map.
    assert state.anchor == state.current_reading.coordinate


def test_failure_after_success_keeps_live_anchor_and_recovery_clears_error():
    provider = ScriptedProvider()
    live = _reading(lat=42.3511, lon=-70.9822)
    recovered = _reading(lat=42.3533, lon=-70.9811)
    provider.queue("buoy-1", live, RuntimeError("boom"), recovered)
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        degraded = await controller.refresh()
        healthy = await controller.refresh()
        return degraded, healthy

    degraded, healthy = asyncio.run(runner())
    assert degraded.anchor == live.coordinate
    assert degraded.current_reading != live
    assert "boom" in degraded.last_error
    assert healthy.current_reading == recovered
    assert healthy.last_error is None
    assert healthy.source == "gateway"
    assert healthy.anchor == live.coordinate


def test_state_is_loading_mid_cycle_and_keeps_previous_reading():
    provider = ScriptedProvider()
    first = _reading(ts=1)
    second = _reading(temp=60.0, ts=2)
    provider.queue("buoy-1", first, second)
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        gate = provider.gate("buoy-1")
        task = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        mid = controller.current_state()
        gate.set()
        done = await task
        return mid, done

    mid, done = asyncio.run(runner())
    assert mid.is_loading is True
    assert mid.current_reading == first
    assert mid.last_error is None
    assert done.is_loading is False
    assert done.current_reading == second


def test_overlapping_refreshes_are_last_write_wins():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading(ts=1), _reading(temp=61.0, ts=2), _reading(temp=62.0, ts=3))
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        first_gate = provider.gate("buoy-1")
        second_gate = provider.gate("buoy-1")
        first = asyncio.create_task(controller.refresh())
        second = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        second_gate.set()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        # One cycle landed, the other is still in flight.
        after_one = controller.current_state()
        first_gate.set()
        await asyncio.gather(first, second)
        return after_one, controller.current_state()

    after_one, final = asyncio.run(runner())
    assert after_one.is_loading is True
    assert final.is_loading is False
    assert final.current_reading is not None
    assert final.current_reading.temperature_f in (61.0, 62.0)


def test_stale_cycle_from_previous_selection_is_discarded():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading(ts=1), _reading(temp=50.0, lat=42.40, ts=2))
    buoy2 = _reading(temp=55.0, lat=41.70, lon=-70.00, ts=3)
    provider.queue("buoy-2", buoy2)
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        gate = provider.gate("buoy-1")
        stale = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        await controller.select_device("buoy-2")
        gate.set()
        await stale
        return controller.current_state()

    state = asyncio.run(runner())
    assert state.selected_device == "buoy-2"
    assert state.current_reading == buoy2
    assert state.anchor == buoy2.coordinate
    assert state.is_loading is False


def test_unknown_device_selection_leaves_state_untouched():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading())
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        before = controller.current_state()
        with pytest.raises(UnknownDevice):
            await controller.select_device("buoy-77")
        return before, controller.current_state()

    before, after = asyncio.run(runner())
    assert before is after
    assert provider.calls == ["buoy-1"]


def test_relative_offset_scales_deltas_from_anchor():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading(lat=42.3500, lon=-70.9900), _reading(lat=42.3510, lon=-70.9880))
    controller = _controller(provider)

    async def runner():
        await controller.select_device("buoy-1")
        await controller.refresh()

    asyncio.run(runner())
    offset = controller.relative_offset()
    assert offset is not None
    assert offset.x == pytest.approx(0.0020 * RELATIVE_POSITION_SCALE)
    assert offset.y == pytest.approx(0.0010 * RELATIVE_POSITION_SCALE)
    assert 150.0 < offset.distance_meters < 250.0


def test_project_offset_is_zero_at_anchor():
    point = Coordinate(42.35, -70.99)
    offset = project_offset(point, point)
    assert (offset.x, offset.y, offset.distance_meters) == (0.0, 0.0, 0.0)


def test_listener_sees_every_landed_state():
    provider = ScriptedProvider()
    provider.queue("buoy-1", _reading(ts=1), _gateway_down())
    seen = []
    controller = _controller(provider, on_update=seen.append)

    async def runner():
        await controller.select_device("buoy-1")
        await controller.refresh()

    asyncio.run(runner())
    assert [state.source for state in seen] == ["gateway", "synthetic"]
    assert all(state.is_loading is False for state in seen)


def test_poll_loop_refreshes_until_stopped():
    provider = ScriptedProvider()
    provider.queue("buoy-1", *[_reading(ts=i) for i in range(100)])
    controller = _controller(provider)

    async def runner():
        controller.start(0.01)
        assert controller.polling is True
        await asyncio.sleep(0.1)
        await controller.stop()
        return len(provider.calls)

    calls = asyncio.run(runner())
    assert calls >= 2
    assert controller.polling is False
    assert controller.current_state().is_loading is False
