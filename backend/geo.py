"""
GEOTIME Geo Module - Spherical geometry for tactical overlays

This module provides:
- GeoPoint, the lat/lng value used by every map entity
- Finite-number guards applied to all untrusted coordinates and numbers
- Destination point projection (bearing + range on a spherical Earth)
- View cone fan polygons built from projected rays
- Great-circle distance and initial bearing between two points
"""

import math
from dataclasses import dataclass, asdict
from typing import List, Optional

EARTH_RADIUS_M = 6371e3
CONE_SEGMENTS = 20  # 21 rays across the spread


@dataclass
class GeoPoint:
    """Geographic point in degrees."""
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "GeoPoint":
        return cls(lat=data["lat"], lng=data["lng"])


SENTINEL = GeoPoint(0.0, 0.0)


def is_finite_number(value) -> bool:
    """True for int/float values that are neither NaN nor infinite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def to_finite_float(value) -> float:
    """float(value) for stored numeric fields. Raises TypeError/ValueError on bools, NaN, infinities."""
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"expected a finite number, got {value!r}")
    return result


def is_finite_point(point) -> bool:
    if point is None:
        return False
    return is_finite_number(getattr(point, "lat", None)) and is_finite_number(getattr(point, "lng", None))


def coerce_point(data) -> Optional[GeoPoint]:
    """Build a GeoPoint from untrusted input (dict or GeoPoint), or None if it is not finite."""
    if isinstance(data, GeoPoint):
        return data if is_finite_point(data) else None
    if not isinstance(data, dict):
        return None
    lat = data.get("lat")
    lng = data.get("lng", data.get("lon"))
    if not (is_finite_number(lat) and is_finite_number(lng)):
        return None
    return GeoPoint(float(lat), float(lng))


def project(origin: GeoPoint, distance_m: float, bearing_deg: float) -> Optional[GeoPoint]:
    """Point reached from origin after distance_m along bearing_deg, or None on invalid input."""
    if not is_finite_point(origin):
        return None
    if not (is_finite_number(distance_m) and is_finite_number(bearing_deg)):
        return None

    bearing = math.radians(bearing_deg)
    lat1 = math.radians(origin.lat)
    lon1 = math.radians(origin.lng)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lon2 = lon1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )

    result = GeoPoint(math.degrees(lat2), math.degrees(lon2))
    if not is_finite_point(result):
        return None
    return result


def destination_point(origin: GeoPoint, distance_m: float, bearing_deg: float) -> GeoPoint:
    """Like project(), but failures collapse to the (0, 0) sentinel.

    Callers that render geometry should use project() so a failure can be
    told apart from a genuine point on the equator/prime meridian.
    """
    result = project(origin, distance_m, bearing_deg)
    if result is None:
        return GeoPoint(SENTINEL.lat, SENTINEL.lng)
    return result


def view_cone_polygon(center: GeoPoint, range_m: float, direction_deg: float,
                      spread_deg: float) -> List[GeoPoint]:
    """Closed fan polygon: center, 21 rays across the spread, center again.

    Rays that cannot be projected are dropped. An invalid center yields [].
    """
    if not is_finite_point(center):
        return []

    points = [center]
    start = direction_deg - spread_deg / 2
    end = direction_deg + spread_deg / 2
    for i in range(CONE_SEGMENTS + 1):
        bearing = start + (end - start) * i / CONE_SEGMENTS
        point = project(center, range_m, bearing)
        if point is not None:
            points.append(point)
    points.append(center)
    return points


def great_circle_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance in meters."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def initial_bearing(a: GeoPoint, b: GeoPoint) -> float:
    """Initial bearing from a to b in degrees, normalized to [0, 360)."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlon = math.radians(b.lng - a.lng)
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def path_length(path: List[GeoPoint]) -> float:
    """Total length in meters of a polyline (measurement tool)."""
    return sum(great_circle_distance(p, q) for p, q in zip(path, path[1:]))
