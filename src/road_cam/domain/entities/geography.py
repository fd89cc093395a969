from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# (longitude, latitude) in degrees
LngLat = tuple[float, float]


def as_lnglat(p: Sequence[float]) -> LngLat:
    return (float(p[0]), float(p[1]))


@dataclass(frozen=True)
class Bounds:
    west: float
    south: float
    east: float
    north: float

    def contains(self, p: LngLat) -> bool:
        return self.west <= p[0] <= self.east and self.south <= p[1] <= self.north

    def intersects(self, other: "Bounds") -> bool:
        return not (
            other.west > self.east
            or other.east < self.west
            or other.south > self.north
            or other.north < self.south
        )

    @property
    def center(self) -> LngLat:
        return ((self.west + self.east) / 2, (self.south + self.north) / 2)


@dataclass(frozen=True)
class SourceLayer:
    """Where a kind of transport feature lives in the tile data."""

    source_id: str
    layer: str


@dataclass(frozen=True)
class FeatureFilter:
    geometry_type: str = "LineString"
    classes: tuple[str, ...] = ()

    def accepts(self, segment: "RoadSegment") -> bool:
        if not self.classes:
            return True
        return segment.road_class in self.classes


@dataclass(frozen=True, eq=False)
class RoadSegment:
    """
    One line-shaped transport feature as returned by the spatial query service.
    Identity is `id`; the record is never mutated.
    """

    id: Hashable
    coordinates: tuple[LngLat, ...]
    properties: Mapping[str, Any] = field(default_factory=dict)
    synthetic: bool = False

    def __post_init__(self):
        object.__setattr__(self, "coordinates", tuple(as_lnglat(c) for c in self.coordinates))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @property
    def road_class(self) -> str | None:
        return self.properties.get("class")

    @property
    def name(self) -> str | None:
        return self.properties.get("name")

    @property
    def ref(self) -> str | None:
        return self.properties.get("ref")

    @property
    def start(self) -> LngLat:
        return self.coordinates[0]

    @property
    def end(self) -> LngLat:
        return self.coordinates[-1]

    @property
    def identity(self) -> str:
        """Human label: route code, then name, then class."""
        return self.ref or self.name or self.road_class or "road"

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other) -> bool:
        return isinstance(other, RoadSegment) and other.id == self.id


# Transport classes known to the default OpenMapTiles-style schema
ROAD_CLASSES: tuple[str, ...] = (
    "motorway",
    "trunk",
    "primary",
    "secondary",
    "tertiary",
    "minor",
    "service",
    "track",
    "path",
)
RAIL_CLASSES: tuple[str, ...] = ("rail", "transit")
WATERWAY_CLASSES: tuple[str, ...] = ("river", "canal", "stream")
