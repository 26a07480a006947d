"""Client-side state machine that keeps a buoy view populated no matter what the gateway does."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Optional, Protocol, Tuple

from buoy_gateway.models import Coordinate, Reading, ReadingOrigin, RelativeOffset, ResilienceState
from buoy_gateway.registry import DEFAULT_REGISTRY, DeviceRegistry
from buoy_gateway.services.geofence import coordinate_distance
from buoy_gateway.services.synthetic import SyntheticReadingGenerator

logger = logging.getLogger(__name__)

RELATIVE_POSITION_SCALE = 10_000.0
DEGRADED_MODE_MESSAGE = "Live telemetry unavailable; showing simulated readings"


class ReadingProvider(Protocol):
    async def get_reading(self, device_id: str) -> Reading: ...


def project_offset(
    anchor: Coordinate,
    current: Coordinate,
    *,
    scale: float = RELATIVE_POSITION_SCALE,
) -> RelativeOffset:
    """Scale the lon/lat deltas from the anchor into a 2-D display offset."""

    return RelativeOffset(
        x=(current.longitude - anchor.longitude) * scale,
        y=(current.latitude - anchor.latitude) * scale,
        distance_meters=coordinate_distance(anchor, current),
    )


class ResilienceController:
    """Poll a reading provider for the selected buoy, falling back to synthetic data.

    All transitions happen on one event loop and the state object is replaced
    wholesale, so :meth:`current_state` is always a consistent snapshot.

    Every resolution cycle is tagged with the selection generation it started
    under. When :meth:`select_device` runs while a cycle is in flight, the
    stale cycle's result is dropped on arrival and never touches the new
    selection's reading, anchor or loading flag. Overlapping cycles for the
    same selection are last-write-wins.
    """

    def __init__(
        self,
        provider: ReadingProvider,
        *,
        generator: Optional[SyntheticReadingGenerator] = None,
        registry: DeviceRegistry = DEFAULT_REGISTRY,
        initial_device: Optional[str] = None,
        on_update: Optional[Callable[[ResilienceState], None]] = None,
    ) -> None:
        self.provider = provider
        self.generator = generator or SyntheticReadingGenerator()
        self.registry = registry
        device_id = initial_device if initial_device is not None else registry.device_ids()[0]
        registry.resolve(device_id)
        self._state = ResilienceState(selected_device=device_id)
        self._generation = 0
        self._in_flight = 0
        self._on_update = on_update
        self._stop_event: asyncio.Event | None = None
        self._poll_task: asyncio.Task | None = None

    def current_state(self) -> ResilienceState:
        return self._state

    @property
    def polling(self) -> bool:
        return bool(self._poll_task and not self._poll_task.done())

    async def select_device(self, device_id: str) -> ResilienceState:
        """Switch buoys, drop the anchor and resolve a reading for the new buoy."""

        self.registry.resolve(device_id)
        self._generation += 1
        self._in_flight = 0
        # The previous reading stays visible (with is_loading set) until the new one lands.
        self._state = replace(self._state, selected_device=device_id, anchor=None, last_error=None)
        logger.info("Selected %s", device_id)
        return await self._run_cycle()

    async def refresh(self) -> ResilienceState:
        return await self._run_cycle()

    def relative_offset(self, state: Optional[ResilienceState] = None) -> Optional[RelativeOffset]:
        state = state or self._state
        if state.anchor is None or state.current_reading is None:
            return None
        return project_offset(state.anchor, state.current_reading.coordinate)

    async def _resolve(self, device_id: str) -> Tuple[Reading, ReadingOrigin, Optional[str]]:
        try:
            reading = await self.provider.get_reading(device_id)
        except Exception as exc:
            logger.warning("Falling back to synthetic reading for %s: %s", device_id, exc)
            return self.generator.generate(device_id), "synthetic", f"{DEGRADED_MODE_MESSAGE} ({exc})"
        return reading, "gateway", None

    async def _run_cycle(self) -> ResilienceState:
        generation = self._generation
        device_id = self._state.selected_device
        self._in_flight += 1
        self._state = replace(self._state, is_loading=True, last_error=None)
        try:
            reading, origin, error = await self._resolve(device_id)
        except BaseException:
            if generation == self._generation:
                self._in_flight -= 1
                self._state = replace(self._state, is_loading=self._in_flight > 0)
            raise

        if generation != self._generation:
            logger.debug("Discarding reading for %s from a superseded selection", device_id)
            return self._state

        self._in_flight -= 1
        previous = self._state
        anchor = previous.anchor
        if anchor is None:
            anchor = reading.coordinate
            logger.info("Anchored %s at %.5f, %.5f (%s)", device_id, anchor.latitude, anchor.longitude, origin)
        self._state = ResilienceState(
            selected_device=device_id,
            current_reading=reading,
            anchor=anchor,
            is_loading=self._in_flight > 0,
            last_error=error,
            source=origin,
        )
        if self._on_update is not None:
            try:
                self._on_update(self._state)
            except Exception:
                logger.exception("State listener failed")
        return self._state

    def start(self, interval_seconds: float) -> None:
        if self.polling:
            return
        self._stop_event = asyncio.Event()
        self._poll_task = asyncio.create_task(self._run_polling(float(interval_seconds)), name="buoy-poller")

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        task = self._poll_task
        self._poll_task = None
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run_polling(self, interval_seconds: float) -> None:
        stop_event = self._stop_event
        assert stop_event is not None
        while not stop_event.is_set():
            try:
                await self.refresh()
            except Exception:
                logger.exception("Refresh cycle failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
