from __future__ import annotations

import math

from buoy_gateway.models import Coordinate

EARTH_RADIUS_METERS = 6_371_000.0


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance between two WGS84 points."""

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def coordinate_distance(a: Coordinate, b: Coordinate) -> float:
    return distance_meters(a.latitude, a.longitude, b.latitude, b.longitude)


def is_outside_fence(center: Coordinate, allowed_radius_meters: float, current: Coordinate) -> bool:
    return coordinate_distance(center, current) > allowed_radius_meters
