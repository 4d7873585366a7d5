"""Great-circle distance helpers"""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371


def round_half_up(value: float, digits: int = 1) -> float:
    """Round halves away from zero for positive values, like Math.round on scaled input."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance between two coordinates using the Haversine formula, rounded to 0.1 km"""
    lat1_r, lon1_r, lat2_r, lon2_r = map(math.radians, [lat1, lon1, lat2, lon2])

    dlat = lat2_r - lat1_r
    dlon = lon2_r - lon1_r
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round_half_up(EARTH_RADIUS_KM * c, 1)


def distance_between(a, b) -> Optional[float]:
    """Distance between two objects exposing latitude/longitude, None if either lacks coordinates"""
    if a.latitude is None or a.longitude is None or b.latitude is None or b.longitude is None:
        return None
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
