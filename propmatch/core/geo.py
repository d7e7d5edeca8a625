from __future__ import annotations

from math import asin, cos, radians, sin, sqrt

from propmatch.core.config import EARTH_RADIUS_KM


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    # Inputs in decimal degrees; out-of-range coordinates are not rejected here.
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(min(1.0, sqrt(a)))


def haversine_distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_distance_km(lat1, lon1, lat2, lon2) * 1000.0
