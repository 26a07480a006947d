from __future__ import annotations

import math

import pytest

from buoy_gateway.services.synthetic import DEFAULT_BAND, SyntheticReadingGenerator


@pytest.mark.parametrize(
    "device_id, temp_range, pressure_range",
    [
        ("buoy-1", (52.0, 54.0), (1015.0, 1018.0)),
        ("buoy-2", (55.0, 57.0), (1012.0, 1015.0)),
    ],
)
def test_readings_stay_in_device_band(device_id, temp_range, pressure_range):
    generator = SyntheticReadingGenerator(seed=5)
    for _ in range(200):
        reading = generator.generate(device_id)
        assert temp_range[0] <= reading.temperature_f <= temp_range[1]
        assert pressure_range[0] <= reading.pressure_hpa <= pressure_range[1]
        assert 42.35 <= reading.latitude <= 42.37
        assert -70.99 <= reading.longitude <= -70.97


def test_streams_are_repeatable_per_device():
    first = SyntheticReadingGenerator(seed=11, clock=lambda: 1.0)
    second = SyntheticReadingGenerator(seed=11, clock=lambda: 1.0)
    a = [first.generate("buoy-1") for _ in range(3)]
    # Drawing for another buoy must not disturb buoy-1's sequence.
    second.generate("buoy-2")
    b = [second.generate("buoy-1") for _ in range(3)]
    assert a == b


def test_seed_changes_the_stream():
    a = SyntheticReadingGenerator(seed=1).generate("buoy-1")
    b = SyntheticReadingGenerator(seed=2).generate("buoy-1")
    assert a.temperature_f != b.temperature_f


def test_observed_at_is_generation_instant():
    generator = SyntheticReadingGenerator(clock=lambda: 1_700_000_000.25)
    assert generator.generate("buoy-2").observed_at_millis == 1_700_000_000_250


def test_unknown_device_gets_default_band_and_never_fails():
    generator = SyntheticReadingGenerator()
    reading = generator.generate("buoy-unlisted")
    assert DEFAULT_BAND.base_temperature_f <= reading.temperature_f <= DEFAULT_BAND.base_temperature_f + 2.0
    assert all(
        math.isfinite(value)
        for value in (reading.temperature_f, reading.pressure_hpa, reading.latitude, reading.longitude)
    )
