from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum

from road_cam.domain.entities.geography import LngLat, RoadSegment, as_lnglat
from road_cam.errors import ChainStateError


@dataclass(frozen=True)
class CameraState:
    center: LngLat
    bearing: float
    zoom: float
    pitch: float


@dataclass(frozen=True)
class CameraTarget:
    """A requested camera pose; None fields keep the current value."""

    center: LngLat | None = None
    bearing: float | None = None
    zoom: float | None = None
    pitch: float | None = None

    def with_zoom(self, zoom: float) -> "CameraTarget":
        return replace(self, zoom=zoom)


class ChainState(StrEnum):
    SEEKING_INITIAL = "seeking_initial"
    FOLLOWING = "following"
    END_OF_SEGMENT = "end_of_segment"
    DIRECT_CONNECTION = "direct_connection"
    CARDINAL_SEARCH = "cardinal_search"
    EXPLORATION = "exploration"
    SYNTHETIC = "synthetic"
    DEAD_END = "dead_end"

    @property
    def found(self) -> bool:
        return self in _FOUND

    def can_transition(self, to: "ChainState") -> bool:
        return to in _TRANSITIONS[self]

    def transition(self, to: "ChainState") -> "ChainState":
        if not self.can_transition(to):
            raise ChainStateError(
                f"illegal chain transition {self.value} -> {to.value}",
                details={"from": self.value, "to": to.value},
            )
        return to


_FOUND = frozenset(
    {
        ChainState.DIRECT_CONNECTION,
        ChainState.CARDINAL_SEARCH,
        ChainState.EXPLORATION,
        ChainState.SYNTHETIC,
    }
)

_TRANSITIONS: dict[ChainState, frozenset[ChainState]] = {
    ChainState.SEEKING_INITIAL: frozenset({ChainState.FOLLOWING, ChainState.DEAD_END}),
    ChainState.FOLLOWING: frozenset({ChainState.END_OF_SEGMENT}),
    ChainState.END_OF_SEGMENT: _FOUND | {ChainState.DEAD_END},
    ChainState.DIRECT_CONNECTION: frozenset({ChainState.FOLLOWING}),
    ChainState.CARDINAL_SEARCH: frozenset({ChainState.FOLLOWING}),
    ChainState.EXPLORATION: frozenset({ChainState.FOLLOWING}),
    ChainState.SYNTHETIC: frozenset({ChainState.FOLLOWING}),
    ChainState.DEAD_END: frozenset(),
}


@dataclass(frozen=True)
class RouteIdentity:
    """Continuity keys of the segment being followed; all None after a synthetic one."""

    ref: str | None = None
    name: str | None = None
    road_class: str | None = None

    @classmethod
    def of(cls, segment: RoadSegment) -> "RouteIdentity":
        if segment.synthetic:
            return cls()
        return cls(segment.ref, segment.name, segment.road_class)


@dataclass(frozen=True)
class Candidate:
    """
    One scored continuation option; `coords` are already oriented for travel.
    `distance` is the jump from the current endpoint in kilometers.
    """

    segment: RoadSegment
    coords: tuple[LngLat, ...]
    reversed: bool = False
    bearing_delta: float = 0.0
    distance: float = 0.0
    score: float = 0.0
    source: ChainState = ChainState.DIRECT_CONNECTION

    @property
    def synthetic(self) -> bool:
        return self.segment.synthetic

    def with_prefix(self, points: Sequence[LngLat], source: ChainState) -> "Candidate":
        return replace(self, coords=tuple(points) + self.coords, source=source)


@dataclass
class PathCursor:
    """Traversal state owned by one follow run."""

    coords: list[LngLat]
    road_class: str | None = None
    road_name: str | None = None
    road_ref: str | None = None
    index: int = 0
    used_segment_ids: set = field(default_factory=set)
    segment_count: int = 0
    total_points_visited: int = 0
    synthetic_count: int = 0
    bearing: float = 0.0
    origin_class: str | None = None

    @classmethod
    def start(cls, candidate: Candidate, coords: Sequence[LngLat], bearing: float) -> "PathCursor":
        cur = cls(coords=[], bearing=bearing)
        cur.load(candidate, coords)
        cur.origin_class = candidate.segment.road_class
        return cur

    def load(self, candidate: Candidate, coords: Sequence[LngLat]) -> None:
        """Replace the walked points with a freshly accepted segment."""
        self.coords = [as_lnglat(c) for c in coords]
        self.index = 0
        self.segment_count += 1
        seg = candidate.segment
        if seg.synthetic:
            # synthetic geometry must never match route identity
            self.road_class = self.road_name = self.road_ref = None
            self.synthetic_count += 1
        else:
            self.road_class, self.road_name, self.road_ref = seg.road_class, seg.name, seg.ref
            self.used_segment_ids.add(seg.id)

    @property
    def identity(self) -> RouteIdentity:
        return RouteIdentity(self.road_ref, self.road_name, self.road_class)

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.coords)

    @property
    def endpoint(self) -> LngLat:
        return self.coords[-1]

    @property
    def current(self) -> LngLat:
        return self.coords[min(self.index, len(self.coords) - 1)]

    def advance(self) -> None:
        self.index += 1
        self.total_points_visited += 1

    def forget_history(self) -> None:
        self.used_segment_ids.clear()
