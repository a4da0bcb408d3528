from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def format_distance(km: float) -> str:
    if km < 1:
        return f"{round(km * 1000)}m"
    return f"{km:.1f}km"


def within_radius(
    origin: tuple[float, float], lat: float | None, lng: float | None, radius_km: float
) -> float | None:
    """Return the distance when (lat, lng) lies inside the radius, otherwise None."""
    if lat is None or lng is None:
        return None
    distance = haversine_km(origin[0], origin[1], lat, lng)
    if distance > radius_km:
        return None
    return distance


__all__ = ["EARTH_RADIUS_KM", "format_distance", "haversine_km", "within_radius"]
