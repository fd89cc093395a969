"""
Terrain clearance model.

A steep camera looks far ahead, so the ground under the center is not enough: the
model samples the center plus concentric rings whose reach grows with pitch and
derives the lowest zoom that keeps the camera above the highest sample.
"""

import math
from collections import deque
from collections.abc import Sequence

import numpy as np

from road_cam.app.protocols import CameraHost, ElevationSampler

DEFAULT_MIN_ZOOM = 3.0
SAFETY_MARGIN = 3.0
MAX_PITCH = 85.0
BASE_RADIUS_DEG = 0.01
RING_RADII: tuple[float, ...] = (0.25, 0.5, 0.85, 1.3)
RING_DIRECTIONS = 16

# per-step follow zoom while driving
FOLLOW_ZOOM_PER_KM = 1.5
FOLLOW_ZOOM_FLOOR = 10.0


def view_distance_factor(pitch: float) -> float:
    return 1.0 + (pitch / MAX_PITCH) * 9.0


def pitch_factor(pitch: float) -> float:
    return 1.0 + (pitch / MAX_PITCH) ** 2 * 3.0


def sample_points(center: Sequence[float], pitch: float) -> np.ndarray:
    """(65, 2) array of lng/lat: the center, then 4 rings of 16 directions."""
    reach = BASE_RADIUS_DEG * view_distance_factor(pitch)
    radii = np.asarray(RING_RADII) * reach
    angles = np.arange(RING_DIRECTIONS) * (2 * math.pi / RING_DIRECTIONS)
    r, a = np.meshgrid(radii, angles, indexing="ij")
    ring = np.column_stack(
        (center[0] + (r * np.cos(a)).ravel(), center[1] + (r * np.sin(a)).ravel())
    )
    return np.vstack(([center[0], center[1]], ring))


def max_elevation_m(terrain: ElevationSampler, points: np.ndarray) -> float:
    """Highest known elevation among the points; unknown samples are ignored, floor 0."""
    best = 0.0
    for lng, lat in points:
        e = terrain.elevation_at((float(lng), float(lat)))
        if e is not None and math.isfinite(e) and e > best:
            best = e
    return best


def safe_zoom_for_elevation(elevation_m: float, pitch: float) -> float:
    if not elevation_m > 0:
        return DEFAULT_MIN_ZOOM
    km = elevation_m / 1000.0
    return max(DEFAULT_MIN_ZOOM, math.log2(km + 1.0) * 2.0 * pitch_factor(pitch) + SAFETY_MARGIN)


def terrain_aware_zoom_at_point(
    terrain: ElevationSampler | None, center: Sequence[float], pitch: float
) -> float:
    """Minimum zoom keeping a camera at `pitch` over `center` above sampled terrain."""
    if terrain is None:
        return DEFAULT_MIN_ZOOM
    return safe_zoom_for_elevation(max_elevation_m(terrain, sample_points(center, pitch)), pitch)


def terrain_aware_zoom(camera: CameraHost, terrain: ElevationSampler | None, pitch: float) -> float:
    return terrain_aware_zoom_at_point(terrain, camera.current_state().center, pitch)


def elevation_follow_zoom(
    elevation_m: float | None,
    base_zoom: float,
    *,
    per_km: float = FOLLOW_ZOOM_PER_KM,
    floor: float = FOLLOW_ZOOM_FLOOR,
) -> float:
    # Pull the camera closer to the ground as it rises
    if elevation_m is None or not math.isfinite(elevation_m) or elevation_m < 0:
        return base_zoom
    return max(floor, base_zoom - (elevation_m / 1000.0) * per_km)


class ZoomSmoother:
    """Rolling mean over the last `window` zoom values."""

    def __init__(self, window: int):
        self._buf: deque[float] = deque(maxlen=max(1, int(window)))

    def push(self, zoom: float) -> float:
        self._buf.append(zoom)
        return sum(self._buf) / len(self._buf)

    def reset(self) -> None:
        self._buf.clear()

    def __len__(self) -> int:
        return len(self._buf)
