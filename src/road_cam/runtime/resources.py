# road_cam/runtime/resources.py
import json
from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType

from road_cam.app.protocols import FeatureQuery
from road_cam.domain.entities.geography import RoadSegment, SourceLayer
from road_cam.errors import NoDataError


@lru_cache(maxsize=8)
def load_feature_collection(file: str) -> tuple[RoadSegment, ...]:
    """LineString features of a GeoJSON FeatureCollection as segments (cached per path)."""
    with open(file, encoding="utf-8") as f:
        doc = json.load(f)
    return tuple(segments_from_geojson(doc))


def segments_from_geojson(doc: Mapping) -> list[RoadSegment]:
    if doc.get("type") != "FeatureCollection":
        raise ValueError(f"Unsupported GeoJSON type {doc.get('type')!r}")
    out = []
    for i, feat in enumerate(doc.get("features", ())):
        geom = feat.get("geometry") or {}
        if geom.get("type") != "LineString":
            continue
        fid = feat.get("id", (feat.get("properties") or {}).get("id", i))
        out.append(RoadSegment(fid, geom.get("coordinates", ()), feat.get("properties") or {}))
    return out


@dataclass(frozen=True)
class MapCapabilities:
    """What one map session can answer: transport kind -> source/layer."""

    layers: Mapping[str, SourceLayer]

    def layer_for(self, kind: str) -> SourceLayer:
        try:
            return self.layers[kind]
        except KeyError:
            raise NoDataError(
                f"no {kind} source in the loaded map data", details={"kind": kind}
            ) from None


class CapabilityCache:
    """
    Introspection results per map session. Keys are opaque session handles
    chosen by the caller; entries live until invalidated.
    """

    def __init__(self):
        self._entries: dict[Hashable, MapCapabilities] = {}

    def get(self, handle: Hashable, query: FeatureQuery) -> MapCapabilities:
        caps = self._entries.get(handle)
        if caps is None:
            caps = MapCapabilities(MappingProxyType(dict(query.transport_layers())))
            self._entries[handle] = caps
        return caps

    def invalidate(self, handle: Hashable) -> None:
        self._entries.pop(handle, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, handle: Hashable) -> bool:
        return handle in self._entries

    def __len__(self) -> int:
        return len(self._entries)
