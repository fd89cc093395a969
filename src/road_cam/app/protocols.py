from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from road_cam.domain.entities.geography import Bounds, FeatureFilter, LngLat, RoadSegment, SourceLayer
from road_cam.domain.entities.motion import CameraState, CameraTarget


# ------------- Mechanics --------------------
@runtime_checkable
class Resampler(Protocol):
    """
    Responsibilities:
      • Turn an irregular vertex chain into evenly spaced camera steps.
    Units: degrees for coordinates, kilometers for spacing.
    """

    def resample(self, coords: Sequence[LngLat]) -> list[LngLat]: ...


# ------------- Collaborators ----------------
@runtime_checkable
class FeatureQuery(Protocol):
    """
    Responsibilities:
      • Report where roads, rail and waterways live in the loaded tile data.
      • Return line features for a source/layer, restricted to the loaded region.
      • Load (preload) a region, optionally at a coarser detail level.
    Results are assumed incomplete near the edge of whatever region is loaded.
    """

    @property
    def detail_level(self) -> float: ...

    def transport_layers(self) -> Mapping[str, SourceLayer]:
        """Map of transport kind ('road', 'rail', 'waterway') to its source/layer."""

    def query_features(
        self, source_id: str, layer: str, flt: FeatureFilter
    ) -> list[RoadSegment]: ...

    async def preload(self, bounds: Bounds, *, detail_level: float | None = None) -> None: ...

    def release(self) -> None: ...


@runtime_checkable
class ElevationSampler(Protocol):
    """Meters above sea level at a point; None means 'unknown', not an error."""

    def elevation_at(self, point: LngLat) -> float | None: ...


@runtime_checkable
class CameraHost(Protocol):
    """
    Responsibilities:
      • Execute a pan/zoom/tilt transition; the coroutine finishes when the move does.
      • Report the current camera state.
    """

    async def transition_to(self, target: CameraTarget, duration_ms: float) -> None: ...

    def current_state(self) -> CameraState: ...


@runtime_checkable
class ControlChannel(Protocol):
    """
    Owned by the caller. `check_cancelled` raises FollowCancelled when the run
    should stop; it never returns a flag.
    """

    def update_status(self, text: str) -> None: ...

    def check_cancelled(self) -> None: ...


@runtime_checkable
class DebugOverlay(Protocol):
    def show(self, feature_collection: Mapping[str, Any]) -> None: ...

    def clear(self) -> None: ...


@runtime_checkable
class Clock(Protocol):
    """Milliseconds since an arbitrary origin. A frozen clock never advances on its own."""

    def now_ms(self) -> float: ...

    def is_frozen(self) -> bool: ...
