"""
Geodesic and planar primitives shared by discovery, chaining, resampling and the
terrain model. Everything here is pure; degenerate input yields NaN or None and
the caller decides what to skip.
"""

import math
from collections.abc import Iterable, Sequence

from road_cam.domain.entities.geography import Bounds, LngLat

EARTH_RADIUS_KM = 6371.0
PARALLEL_EPS = 1e-10
# Rough equatorial size of one degree, used where the original tuning works in degrees
KM_PER_DEGREE = 111.0

# (angle, label) for the 8 compass rays used by discovery and cardinal search
CARDINAL_DIRECTIONS_8: tuple[tuple[float, str], ...] = (
    (0.0, "N"),
    (45.0, "NE"),
    (90.0, "E"),
    (135.0, "SE"),
    (180.0, "S"),
    (225.0, "SW"),
    (270.0, "W"),
    (315.0, "NW"),
)


def bearing(a: Sequence[float], b: Sequence[float]) -> float:
    """Initial great-circle bearing from a to b, degrees in [0, 360)."""
    d_lng = math.radians(b[0] - a[0])
    lat1, lat2 = math.radians(a[1]), math.radians(b[1])
    y = math.sin(d_lng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lng)
    deg = math.degrees(math.atan2(y, x))
    return (deg + 360.0) % 360.0


def distance_km(a: Sequence[float], b: Sequence[float]) -> float:
    """Haversine great-circle distance in kilometers."""
    d_lat = math.radians(b[1] - a[1])
    d_lng = math.radians(b[0] - a[0])
    lat1, lat2 = math.radians(a[1]), math.radians(b[1])
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def normalize_bearing_delta(d: float) -> float:
    """Wrap an angular difference into [-180, 180]."""
    if not math.isfinite(d):
        return math.nan
    while d > 180.0:
        d -= 360.0
    while d < -180.0:
        d += 360.0
    return d


def bearing_delta(to_deg: float, from_deg: float) -> float:
    """Absolute turn angle between two headings, [0, 180] (NaN if either is NaN)."""
    return abs(normalize_bearing_delta(to_deg - from_deg))


def segment_intersection(
    p1: Sequence[float], p2: Sequence[float], p3: Sequence[float], p4: Sequence[float]
) -> float | None:
    """
    Parametric intersection of p1-p2 with p3-p4.
    Returns the planar distance from p1 to the crossing point, or None when the
    lines are parallel or the crossing lies outside either segment.
    """
    x1, y1 = p1[0], p1[1]
    x2, y2 = p2[0], p2[1]
    x3, y3 = p3[0], p3[1]
    x4, y4 = p4[0], p4[1]

    det = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if abs(det) < PARALLEL_EPS:
        return None

    t = ((x1 - x3) * (y3 - y4) - (y1 - y3) * (x3 - x4)) / det
    u = -((x1 - x2) * (y1 - y3) - (y1 - y2) * (x1 - x3)) / det
    if not (0.0 <= t <= 1.0 and 0.0 <= u <= 1.0):
        return None

    ix = x1 + t * (x2 - x1)
    iy = y1 + t * (y2 - y1)
    return math.hypot(ix - x1, iy - y1)


def planar_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance in raw degree space."""
    return math.hypot(b[0] - a[0], b[1] - a[1])


def offset(p: Sequence[float], bearing_deg: float, distance_deg: float) -> LngLat:
    """Step `distance_deg` from p along a compass bearing, planar in degree space."""
    r = math.radians(bearing_deg)
    return (p[0] + distance_deg * math.sin(r), p[1] + distance_deg * math.cos(r))


def bounds(points: Iterable[Sequence[float]], pad: float = 0.1) -> Bounds | None:
    """Bounding box of the points, grown by `pad` of its span on each side."""
    pts = list(points)
    if not pts:
        return None
    west = min(p[0] for p in pts)
    east = max(p[0] for p in pts)
    south = min(p[1] for p in pts)
    north = max(p[1] for p in pts)
    pad_lng = (east - west) * pad
    pad_lat = (north - south) * pad
    return Bounds(west - pad_lng, south - pad_lat, east + pad_lng, north + pad_lat)


def bounds_ahead(p: Sequence[float], bearing_deg: float, reach_deg: float) -> Bounds:
    """Box covering p and the point `reach_deg` ahead, with a 50% lateral margin."""
    ahead = offset(p, bearing_deg, reach_deg)
    margin = reach_deg * 0.5
    return Bounds(
        min(p[0], ahead[0]) - margin,
        min(p[1], ahead[1]) - margin,
        max(p[0], ahead[0]) + margin,
        max(p[1], ahead[1]) + margin,
    )


def is_valid_coord(c) -> bool:
    try:
        return len(c) >= 2 and all(
            isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
            for v in (c[0], c[1])
        )
    except TypeError:
        return False


def path_length_km(coords: Sequence[Sequence[float]]) -> float:
    return sum(distance_km(coords[i - 1], coords[i]) for i in range(1, len(coords)))
