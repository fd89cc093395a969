"""
In-process collaborators: a segment index standing in for the vector-tile query
service, elevation functions, a camera host that records its transitions and a
status/cancel channel. Used by the demo and the tests.
"""

import asyncio
from collections.abc import Callable, Iterable, Mapping, Sequence

from road_cam.domain.entities.geography import Bounds, FeatureFilter, LngLat, RoadSegment, SourceLayer
from road_cam.domain.entities.motion import CameraState, CameraTarget
from road_cam.domain.mechanics.mechanics_geometry import bounds
from road_cam.errors import FollowCancelled, NoDataError
from road_cam.runtime.resources import load_feature_collection, segments_from_geojson
from road_cam.sim.clock import VirtualClock

DEFAULT_LAYERS: dict[str, SourceLayer] = {
    "road": SourceLayer("openmaptiles", "transportation"),
    "rail": SourceLayer("openmaptiles", "transportation"),
    "waterway": SourceLayer("openmaptiles", "waterway"),
}


class InMemoryFeatureIndex:
    """
    FeatureQuery over a fixed list of segments.

    With `region_limited`, only segments touching the last preloaded region are
    returned, mimicking a tile query that only sees loaded data. `by_level`
    adds segments that only show up at a given detail level.
    """

    def __init__(
        self,
        segments: Iterable[RoadSegment],
        *,
        layers: Mapping[str, SourceLayer] | None = None,
        detail_level: float = 18.0,
        region_limited: bool = False,
        by_level: Mapping[float, Iterable[RoadSegment]] | None = None,
    ):
        self.segments = list(segments)
        self.layers = dict(DEFAULT_LAYERS if layers is None else layers)
        self._detail_level = detail_level
        self.region_limited = region_limited
        self.by_level = {k: list(v) for k, v in (by_level or {}).items()}
        self.region: Bounds | None = None
        self.preloads: list[tuple[Bounds | None, float]] = []
        self.released = False

    @classmethod
    def from_geojson(cls, doc_or_path, **kw) -> "InMemoryFeatureIndex":
        if isinstance(doc_or_path, Mapping):
            return cls(segments_from_geojson(doc_or_path), **kw)
        return cls(load_feature_collection(str(doc_or_path)), **kw)

    @property
    def detail_level(self) -> float:
        return self._detail_level

    def transport_layers(self) -> Mapping[str, SourceLayer]:
        return self.layers

    def query_features(self, source_id: str, layer: str, flt: FeatureFilter) -> list[RoadSegment]:
        if SourceLayer(source_id, layer) not in self.layers.values():
            raise NoDataError(f"unknown source/layer {source_id}/{layer}")
        pool = self.segments + self.by_level.get(self._detail_level, [])
        if self.region_limited and self.region is not None:
            pool = [s for s in pool if bounds(s.coordinates, pad=0.0).intersects(self.region)]
        return [s for s in pool if flt.accepts(s)]

    async def preload(self, bounds: Bounds, *, detail_level: float | None = None) -> None:
        if detail_level is not None:
            self._detail_level = detail_level
        self.region = bounds
        self.preloads.append((bounds, self._detail_level))
        await asyncio.sleep(0)

    def release(self) -> None:
        self.released = True


class FunctionElevation:
    """Elevation from a plain function of (lng, lat); None means unknown."""

    def __init__(self, fn: Callable[[float, float], float | None]):
        self.fn = fn
        self.samples = 0

    def elevation_at(self, point: LngLat) -> float | None:
        self.samples += 1
        return self.fn(point[0], point[1])


class FlatElevation(FunctionElevation):
    def __init__(self, meters: float | None):
        super().__init__(lambda _lng, _lat: meters)


class RecordingCamera:
    """
    CameraHost that jumps straight to each target and records it. When given a
    VirtualClock it advances the clock by every transition's duration.
    """

    def __init__(
        self,
        center: Sequence[float] = (0.0, 0.0),
        *,
        bearing: float = 0.0,
        zoom: float = 15.0,
        pitch: float = 0.0,
        clock: VirtualClock | None = None,
    ):
        self.state = CameraState((float(center[0]), float(center[1])), bearing, zoom, pitch)
        self.clock = clock
        self.transitions: list[tuple[CameraTarget, float]] = []

    def current_state(self) -> CameraState:
        return self.state

    async def transition_to(self, target: CameraTarget, duration_ms: float) -> None:
        s = self.state
        self.state = CameraState(
            target.center if target.center is not None else s.center,
            target.bearing if target.bearing is not None else s.bearing,
            target.zoom if target.zoom is not None else s.zoom,
            target.pitch if target.pitch is not None else s.pitch,
        )
        self.transitions.append((target, duration_ms))
        if self.clock is not None and not self.clock.is_frozen():
            self.clock.advance(duration_ms)
        await asyncio.sleep(0)

    @property
    def centers(self) -> list[LngLat]:
        return [t.center for t, _ in self.transitions if t.center is not None]


class ScriptedControl:
    """ControlChannel that records statuses and cancels after `cancel_after` checks."""

    def __init__(self, cancel_after: int | None = None):
        self.statuses: list[str] = []
        self.cancel_after = cancel_after
        self.checks = 0
        self.cancelled = False

    def update_status(self, text: str) -> None:
        self.statuses.append(text)

    def cancel(self) -> None:
        self.cancelled = True

    def check_cancelled(self) -> None:
        self.checks += 1
        if self.cancel_after is not None and self.checks > self.cancel_after:
            self.cancelled = True
        if self.cancelled:
            raise FollowCancelled("cancelled by caller")


class MemoryOverlay:
    def __init__(self):
        self.shown: list[dict] = []
        self.cleared = 0

    def show(self, feature_collection: Mapping) -> None:
        self.shown.append(dict(feature_collection))

    def clear(self) -> None:
        self.cleared += 1

    @property
    def last(self) -> dict | None:
        return self.shown[-1] if self.shown else None
