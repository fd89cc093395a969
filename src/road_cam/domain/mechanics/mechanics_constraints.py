from collections.abc import Sequence
from dataclasses import dataclass, replace

from road_cam.app.protocols import ElevationSampler
from road_cam.domain.entities.geography import Bounds, LngLat, as_lnglat
from road_cam.domain.entities.motion import CameraTarget
from road_cam.domain.mechanics.mechanics_terrain import terrain_aware_zoom_at_point


@dataclass(frozen=True)
class PathPoint:
    center: LngLat
    min_zoom: float


@dataclass(frozen=True)
class CameraConstraints:
    """
    Geographic and zoom limits for camera moves.
    In strict mode generated paths are clamped point by point; otherwise only
    explicit `apply` calls clamp.
    """

    max_bounds: Bounds | None = None
    min_zoom: float | None = None
    max_zoom: float | None = None
    strict: bool = False

    def is_within_bounds(self, center: Sequence[float]) -> bool:
        if self.max_bounds is None:
            return True
        return self.max_bounds.contains(as_lnglat(center))

    def is_within_zoom_limits(self, zoom: float) -> bool:
        if self.min_zoom is not None and zoom < self.min_zoom:
            return False
        if self.max_zoom is not None and zoom > self.max_zoom:
            return False
        return True

    def constrain_center(self, center: Sequence[float]) -> LngLat:
        if self.max_bounds is None:
            return as_lnglat(center)
        b = self.max_bounds
        return (max(b.west, min(b.east, center[0])), max(b.south, min(b.north, center[1])))

    def constrain_zoom(self, zoom: float) -> float:
        if self.min_zoom is not None and zoom < self.min_zoom:
            return self.min_zoom
        if self.max_zoom is not None and zoom > self.max_zoom:
            return self.max_zoom
        return zoom

    def apply(self, target: CameraTarget) -> CameraTarget:
        out = target
        if target.center is not None:
            out = replace(out, center=self.constrain_center(target.center))
        if target.zoom is not None:
            out = replace(out, zoom=self.constrain_zoom(target.zoom))
        return out

    def safe_path(
        self, from_center: Sequence[float], to_center: Sequence[float], steps: int = 10
    ) -> list[LngLat]:
        steps = max(1, steps)
        path = []
        for i in range(steps + 1):
            t = i / steps
            p = (
                from_center[0] + (to_center[0] - from_center[0]) * t,
                from_center[1] + (to_center[1] - from_center[1]) * t,
            )
            path.append(self.constrain_center(p) if self.strict else p)
        return path

    def terrain_aware_path(
        self,
        terrain: ElevationSampler | None,
        from_center: Sequence[float],
        to_center: Sequence[float],
        pitch: float = 60.0,
        steps: int = 10,
    ) -> list[PathPoint]:
        return [
            PathPoint(p, terrain_aware_zoom_at_point(terrain, p, pitch))
            for p in self.safe_path(from_center, to_center, steps)
        ]
