"""Straight-line proximity matching between a client position and providers.

Everything here is pure: no I/O, no shared state, and no exceptions for
bad input. Candidates with unusable coordinates are skipped instead.
"""

import math
from typing import Any, Iterable, List, Optional, Tuple

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def coordinates_of(position: Any) -> Optional[Tuple[float, float]]:
    """Return ``(lat, lng)`` for anything position-shaped, or None if unusable."""
    if position is None:
        return None
    lat = getattr(position, "latitude", None)
    lng = getattr(position, "longitude", None)
    if lat is None or lng is None:
        return None
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return lat, lng


def distance(a: Any, b: Any) -> float:
    """Great-circle distance in kilometers between two positions."""
    a_coords = coordinates_of(a)
    b_coords = coordinates_of(b)
    if a_coords is None or b_coords is None:
        return math.nan
    return haversine_km(a_coords[0], a_coords[1], b_coords[0], b_coords[1])


def nearby(origin: Any, candidates: Iterable[Any], radius_km: float) -> List[Tuple[Any, float]]:
    """Rank ``candidates`` by distance from ``origin``, keeping those within ``radius_km``.

    Each candidate is expected to expose a ``position`` attribute. Ties keep
    their input order.
    """
    origin_coords = coordinates_of(origin)
    if origin_coords is None:
        return []
    try:
        radius = float(radius_km)
    except (TypeError, ValueError):
        return []
    if not radius > 0:
        return []

    ranked: List[Tuple[Any, float]] = []
    for candidate in candidates:
        coords = coordinates_of(getattr(candidate, "position", None))
        if coords is None:
            continue
        km = haversine_km(origin_coords[0], origin_coords[1], coords[0], coords[1])
        if km <= radius:
            ranked.append((candidate, km))
    ranked.sort(key=lambda item: item[1])
    return ranked


def destination(origin: Any, bearing_deg: float, distance_km: float) -> Optional[Tuple[float, float]]:
    """Point reached from ``origin`` after ``distance_km`` along ``bearing_deg``."""
    lat_lng = coordinates_of(origin)
    if lat_lng is None:
        return None
    phi1 = math.radians(lat_lng[0])
    lambda1 = math.radians(lat_lng[1])
    theta = math.radians(bearing_deg)
    delta = distance_km / EARTH_RADIUS_KM
    phi2 = math.asin(math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta))
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    lng = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    return math.degrees(phi2), lng
