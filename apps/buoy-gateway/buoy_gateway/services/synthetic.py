"""Fallback readings used while live telemetry is unavailable."""
from __future__ import annotations

import random
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from buoy_gateway.models import Reading


@dataclass(frozen=True)
class SyntheticBand:
    base_temperature_f: float
    base_pressure_hpa: float
    reference_latitude: float = 42.35
    reference_longitude: float = -70.99


DEVICE_BANDS: Dict[str, SyntheticBand] = {
    "buoy-1": SyntheticBand(52.0, 1015.0),
    "buoy-2": SyntheticBand(55.0, 1012.0),
    "buoy-3": SyntheticBand(49.0, 1008.0),
}
DEFAULT_BAND = SyntheticBand(49.0, 1008.0)

TEMPERATURE_JITTER_F = 2.0
PRESSURE_JITTER_HPA = 3.0
POSITION_JITTER_DEG = 0.02


class SyntheticReadingGenerator:
    """Generate believable per-buoy readings without any I/O.

    Every buoy has a fixed temperature/pressure baseline and reference
    coordinate; values are the baseline plus bounded uniform jitter. Each buoy
    draws from its own random stream, seeded from its id, so repeated runs
    produce the same sequence per buoy.
    """

    def __init__(
        self,
        *,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        bands: Optional[Dict[str, SyntheticBand]] = None,
    ) -> None:
        self._seed = seed
        self._clock = clock
        self._bands = dict(DEVICE_BANDS if bands is None else bands)
        self._streams: Dict[str, random.Random] = {}

    def band_for(self, device_id: str) -> SyntheticBand:
        return self._bands.get(device_id, DEFAULT_BAND)

    def _stream(self, device_id: str) -> random.Random:
        stream = self._streams.get(device_id)
        if stream is None:
            stream = random.Random(self._resolve_seed(device_id))
            self._streams[device_id] = stream
        return stream

    def _resolve_seed(self, device_id: str) -> int:
        seed = int(uuid.uuid5(uuid.NAMESPACE_DNS, str(device_id)).int % (2**32 - 1))
        if self._seed is not None:
            seed ^= int(self._seed)
        return seed

    def generate(self, device_id: str) -> Reading:
        band = self.band_for(device_id)
        rng = self._stream(device_id)
        return Reading(
            temperature_f=band.base_temperature_f + rng.random() * TEMPERATURE_JITTER_F,
            pressure_hpa=band.base_pressure_hpa + rng.random() * PRESSURE_JITTER_HPA,
            latitude=band.reference_latitude + rng.random() * POSITION_JITTER_DEG,
            longitude=band.reference_longitude + rng.random() * POSITION_JITTER_DEG,
            observed_at_millis=int(self._clock() * 1000),
        )
