import math
from collections.abc import Sequence

import numpy as np

from road_cam.app.protocols import Resampler
from road_cam.domain.entities.geography import LngLat, as_lnglat
from road_cam.domain.mechanics.mechanics_geometry import distance_km

DEFAULT_SPACING_KM = 0.01  # 10 m between camera steps
DEFAULT_TENSION = 0.3
SPLINE_POINTS_PER_SPAN = 30
# float slack so already-uniform chains reproduce their own vertices
_ACC_TOL_KM = 1e-12
_COINCIDENT_DEG = 1e-12


def _coincident(a: Sequence[float], b: Sequence[float]) -> bool:
    return abs(a[0] - b[0]) <= _COINCIDENT_DEG and abs(a[1] - b[1]) <= _COINCIDENT_DEG


def uniform_resample(coords: Sequence[Sequence[float]], spacing_km: float = DEFAULT_SPACING_KM):
    """
    Re-space a polyline so consecutive points sit `spacing_km` apart along it.
    The first point is always kept; the last original point is appended unless the
    walk already landed on it. Fewer than 2 points come back untouched.
    """
    if coords is None or len(coords) < 2:
        return coords
    if not spacing_km > 0:
        raise ValueError(f"spacing_km must be > 0, got {spacing_km!r}")

    out: list[LngLat] = [as_lnglat(coords[0])]
    acc = 0.0
    for i in range(1, len(coords)):
        a, b = coords[i - 1], coords[i]
        d = distance_km(a, b)
        if d <= 0.0:
            continue
        acc += d
        while acc >= spacing_km - _ACC_TOL_KM:
            overshoot = acc - spacing_km
            t = min(1.0, max(0.0, 1.0 - overshoot / d))
            out.append((a[0] + t * (b[0] - a[0]), a[1] + t * (b[1] - a[1])))
            acc -= spacing_km

    last = as_lnglat(coords[-1])
    if len(out) > 1 and _coincident(out[-1], last):
        out[-1] = last
    elif not _coincident(out[-1], last) or len(out) == 1:
        out.append(last)
    return out


def catmull_rom_point(p0, p1, p2, p3, t: float, tension: float = 0.5) -> LngLat:
    """Point at parameter t in [0, 1] on the span p1->p2 (cubic Hermite form)."""
    t2 = t * t
    t3 = t2 * t
    res = []
    for k in (0, 1):
        v0 = (p2[k] - p0[k]) * tension
        v1 = (p3[k] - p1[k]) * tension
        res.append(
            (2 * p1[k] - 2 * p2[k] + v0 + v1) * t3
            + (-3 * p1[k] + 3 * p2[k] - 2 * v0 - v1) * t2
            + v0 * t
            + p1[k]
        )
    return (res[0], res[1])


def _dense_catmull_rom(coords: Sequence[Sequence[float]], tension: float) -> list[LngLat]:
    pts = np.asarray([(c[0], c[1]) for c in coords], dtype=float)
    n = len(pts)
    span = np.arange(n - 1)
    p0 = pts[np.maximum(span - 1, 0)]
    p1 = pts[span]
    p2 = pts[span + 1]
    p3 = pts[np.minimum(span + 2, n - 1)]
    v0 = (p2 - p0) * tension
    v1 = (p3 - p1) * tension

    t = (np.arange(SPLINE_POINTS_PER_SPAN) / SPLINE_POINTS_PER_SPAN)[None, :, None]
    t2, t3 = t * t, t * t * t
    curve = (
        (2 * p1 - 2 * p2 + v0 + v1)[:, None, :] * t3
        + (-3 * p1 + 3 * p2 - 2 * v0 - v1)[:, None, :] * t2
        + v0[:, None, :] * t
        + p1[:, None, :]
    )
    dense = [(float(x), float(y)) for x, y in curve.reshape(-1, 2)]
    dense.append(as_lnglat(coords[-1]))
    return dense


def spline_resample(
    coords: Sequence[Sequence[float]],
    spacing_km: float = DEFAULT_SPACING_KM,
    tension: float = DEFAULT_TENSION,
):
    """Smooth the chain with Catmull-Rom, then re-space it uniformly."""
    if coords is None or len(coords) < 2:
        return coords
    if len(coords) == 2:
        return uniform_resample(coords, spacing_km)
    if not math.isfinite(tension):
        raise ValueError("tension must be finite")
    return uniform_resample(_dense_catmull_rom(coords, tension), spacing_km)


class UniformResampler(Resampler):
    def __init__(self, spacing_km: float = DEFAULT_SPACING_KM):
        self.spacing_km = spacing_km

    def resample(self, coords):
        return uniform_resample(coords, self.spacing_km)


class CatmullRomResampler(Resampler):
    def __init__(self, spacing_km: float = DEFAULT_SPACING_KM, tension: float = DEFAULT_TENSION):
        self.spacing_km, self.tension = spacing_km, tension

    def resample(self, coords):
        return spline_resample(coords, self.spacing_km, self.tension)
