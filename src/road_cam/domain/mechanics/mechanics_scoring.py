import logging
import math
from collections.abc import Collection, Hashable, Iterable, Sequence

from road_cam.config.models import ScoringWeights
from road_cam.domain.entities.geography import LngLat, RoadSegment
from road_cam.domain.entities.motion import Candidate, ChainState, RouteIdentity
from road_cam.domain.mechanics.mechanics_geometry import (
    bearing,
    bearing_delta,
    distance_km,
    is_valid_coord,
    planar_distance,
)

log = logging.getLogger(__name__)

TIER_REF, TIER_NAME, TIER_CLASS, TIER_OTHER = "ref", "name", "class", "other"


def orient(segment: RoadSegment, point: Sequence[float]) -> tuple[tuple[LngLat, ...], bool, float]:
    """Coordinates oriented to start at the end closer to `point`, reversed flag, planar gap."""
    coords = segment.coordinates
    d_start = planar_distance(point, coords[0])
    d_end = planar_distance(point, coords[-1])
    if d_end < d_start:
        return tuple(reversed(coords)), True, d_end
    return coords, False, d_start


def continuity_tier(segment: RoadSegment, current: RouteIdentity) -> str:
    if segment.ref and current.ref and segment.ref == current.ref:
        return TIER_REF
    if segment.name and current.name and segment.name == current.name:
        return TIER_NAME
    if segment.road_class and current.road_class and segment.road_class == current.road_class:
        return TIER_CLASS
    return TIER_OTHER


def tier_score(tier: str, distance_deg: float, delta: float, w: ScoringWeights) -> float:
    if tier == TIER_REF:
        return w.same_ref_offset + distance_deg * w.identity_distance_weight + delta * w.identity_bearing_weight
    if tier == TIER_NAME:
        return w.same_name_offset + distance_deg * w.identity_distance_weight + delta * w.identity_bearing_weight
    if tier == TIER_CLASS:
        return w.same_class_offset + distance_deg * w.class_distance_weight + delta * w.class_bearing_weight
    return w.other_offset + distance_deg * w.other_distance_weight + delta * w.other_bearing_weight


def _connected(
    segment: RoadSegment, endpoint: Sequence[float], travel_bearing: float, w: ScoringWeights
) -> tuple[tuple[LngLat, ...], bool, float, float] | None:
    """Shared gate: within the connection threshold, well-formed, not a U-turn."""
    if len(segment.coordinates) < 2:
        log.debug("skip %r: fewer than 2 points", segment.id)
        return None
    coords, rev, gap = orient(segment, endpoint)
    if gap >= w.connection_threshold_deg:
        return None
    if not (is_valid_coord(coords[0]) and is_valid_coord(coords[1])):
        log.debug("skip %r: invalid coordinates", segment.id)
        return None
    delta = bearing_delta(bearing(coords[0], coords[1]), travel_bearing)
    if math.isnan(delta):
        log.debug("skip %r: NaN bearing", segment.id)
        return None
    if delta > w.u_turn_deg:
        return None
    return coords, rev, gap, delta


def score_continuation(
    segment: RoadSegment,
    endpoint: Sequence[float],
    travel_bearing: float,
    current: RouteIdentity,
    weights: ScoringWeights,
) -> Candidate | None:
    """Score one segment as the continuation of the current one; None when rejected."""
    gate = _connected(segment, endpoint, travel_bearing, weights)
    if gate is None:
        return None
    coords, rev, gap, delta = gate
    score = tier_score(continuity_tier(segment, current), gap, delta, weights)
    return Candidate(
        segment=segment,
        coords=coords,
        reversed=rev,
        bearing_delta=delta,
        distance=distance_km(endpoint, coords[0]),
        score=score,
        source=ChainState.DIRECT_CONNECTION,
    )


def best_continuation(
    segments: Iterable[RoadSegment],
    endpoint: Sequence[float],
    travel_bearing: float,
    current: RouteIdentity,
    used_ids: Collection[Hashable],
    weights: ScoringWeights,
) -> Candidate | None:
    """Lowest-scoring acceptable continuation; ties keep the first seen."""
    best: Candidate | None = None
    for seg in segments:
        if seg.id in used_ids:
            continue
        cand = score_continuation(seg, endpoint, travel_bearing, current, weights)
        if cand is not None and (best is None or cand.score < best.score):
            best = cand
    return best


def first_connected(
    segments: Iterable[RoadSegment],
    endpoint: Sequence[float],
    travel_bearing: float,
    used_ids: Collection[Hashable],
    weights: ScoringWeights,
) -> Candidate | None:
    """Coarse-detail retry: accept the first connected segment that is not a U-turn."""
    for seg in segments:
        if seg.id in used_ids:
            continue
        gate = _connected(seg, endpoint, travel_bearing, weights)
        if gate is None:
            continue
        coords, rev, _, delta = gate
        return Candidate(
            segment=seg,
            coords=coords,
            reversed=rev,
            bearing_delta=delta,
            distance=distance_km(endpoint, coords[0]),
            score=weights.retry_offset + delta * weights.retry_bearing_weight,
            source=ChainState.DIRECT_CONNECTION,
        )
    return None
