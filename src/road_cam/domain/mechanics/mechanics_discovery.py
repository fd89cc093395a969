"""
Spatial search over an unordered bag of segments: picking the first segment to
follow, and the radial searches used to bridge gaps in the network.
"""

import logging
import math
from collections.abc import Callable, Collection, Hashable, Iterable, Sequence

from road_cam.domain.entities.geography import LngLat, RoadSegment
from road_cam.domain.entities.motion import Candidate, ChainState
from road_cam.domain.mechanics.mechanics_geometry import (
    CARDINAL_DIRECTIONS_8,
    KM_PER_DEGREE,
    bearing,
    bearing_delta,
    distance_km,
    is_valid_coord,
    normalize_bearing_delta,
    offset,
    planar_distance,
    segment_intersection,
)

log = logging.getLogger(__name__)

Checkpoint = Callable[[], None]

DEFAULT_RAY_LENGTH_DEG = 0.002  # ~200 m
DEFAULT_MAX_JUMP_KM = 0.25


def _usable(seg: RoadSegment) -> bool:
    return len(seg.coordinates) >= 2 and all(is_valid_coord(c) for c in (seg.start, seg.end))


class _Ticker:
    """Calls `checkpoint` once every `every` ticks."""

    def __init__(self, checkpoint: Checkpoint | None, every: int):
        self.checkpoint, self.every, self.n = checkpoint, max(1, every), 0

    def tick(self) -> None:
        self.n += 1
        if self.checkpoint is not None and self.n % self.every == 0:
            self.checkpoint()


def find_initial_segment(
    segments: Sequence[RoadSegment],
    start: Sequence[float],
    facing_bearing: float,
    *,
    ray_length_deg: float = DEFAULT_RAY_LENGTH_DEG,
    checkpoint: Checkpoint | None = None,
    check_every: int = 64,
) -> Candidate | None:
    """
    Pick the segment to start on.

    Eight compass rays are cast from `start`; the nearest ray/segment crossing
    wins. Without any crossing the segment owning the nearest vertex wins. The
    result is flipped when its end-to-end direction opposes `facing_bearing` by
    more than 90 degrees.
    """
    usable = [s for s in segments if _usable(s)]
    if not usable:
        return None
    ticker = _Ticker(checkpoint, check_every)

    best: RoadSegment | None = None
    best_d = math.inf
    for angle, _label in CARDINAL_DIRECTIONS_8:
        ray_end = offset(start, angle, ray_length_deg)
        for seg in usable:
            ticker.tick()
            pts = seg.coordinates
            for i in range(1, len(pts)):
                d = segment_intersection(start, ray_end, pts[i - 1], pts[i])
                if d is not None and d < best_d:
                    best, best_d = seg, d

    if best is None:
        log.debug("no ray crossing from %s, falling back to nearest vertex", start)
        for seg in usable:
            ticker.tick()
            for c in seg.coordinates:
                d = planar_distance(start, c)
                if d < best_d:
                    best, best_d = seg, d
    if best is None:
        return None

    coords = best.coordinates
    delta = normalize_bearing_delta(bearing(coords[0], coords[-1]) - facing_bearing)
    flipped = abs(delta) > 90.0
    if flipped:
        coords = tuple(reversed(coords))
        delta = normalize_bearing_delta(bearing(coords[0], coords[-1]) - facing_bearing)
    return Candidate(
        segment=best,
        coords=coords,
        reversed=flipped,
        bearing_delta=abs(delta),
        distance=distance_km(start, coords[0]),
        score=best_d,
        source=ChainState.SEEKING_INITIAL,
    )


def cardinal_search(
    segments: Iterable[RoadSegment],
    origin: Sequence[float],
    travel_bearing: float,
    used_ids: Collection[Hashable],
    *,
    radius_deg: float,
    prefer_classes: Collection[str] = (),
    direction_penalty: float = 0.001,
    preferred_factor: float = 0.5,
    max_jump_km: float = DEFAULT_MAX_JUMP_KM,
    checkpoint: Checkpoint | None = None,
    check_every: int = 64,
) -> Candidate | None:
    """
    Check 8 compass points `radius_deg` away from `origin` and return the segment
    whose nearer end is closest to a search point, penalised by how far the point
    direction strays from `travel_bearing`. The winner is discarded outright
    when its real jump from `origin` exceeds `max_jump_km`.
    """
    pool = [s for s in segments if s.id not in used_ids and _usable(s)]
    if not pool:
        return None
    radius_km = radius_deg * KM_PER_DEGREE
    ticker = _Ticker(checkpoint, check_every)

    best: Candidate | None = None
    for angle, _label in CARDINAL_DIRECTIONS_8:
        spot = offset(origin, angle, radius_deg)
        delta = bearing_delta(angle, travel_bearing)
        for seg in pool:
            ticker.tick()
            d_spot = min(distance_km(spot, seg.start), distance_km(spot, seg.end))
            if d_spot > radius_km:
                continue
            score = d_spot + (delta / 180.0) * direction_penalty
            if seg.road_class is not None and seg.road_class in prefer_classes:
                score *= preferred_factor
            if best is not None and not score < best.score:
                continue
            from_start = distance_km(origin, seg.start)
            from_end = distance_km(origin, seg.end)
            rev = from_end < from_start
            best = Candidate(
                segment=seg,
                coords=tuple(reversed(seg.coordinates)) if rev else seg.coordinates,
                reversed=rev,
                bearing_delta=delta,
                distance=min(from_start, from_end),
                score=score,
                source=ChainState.CARDINAL_SEARCH,
            )

    if best is not None and best.distance > max_jump_km:
        log.debug("cardinal winner %r rejected: %.3f km jump", best.segment.id, best.distance)
        return None
    return best


def exploration_points(origin: Sequence[float], travel_bearing: float, step_deg: float, steps: int) -> list[LngLat]:
    """Points 1..steps of `step_deg` each straight ahead of origin."""
    return [offset(origin, travel_bearing, step_deg * i) for i in range(1, steps + 1)]


def synthetic_segment(
    origin: Sequence[float], travel_bearing: float, reach_deg: float, points: int, seq: int
) -> RoadSegment:
    """Straight continuation of `points` evenly spread over `reach_deg`; origin excluded."""
    coords = [offset(origin, travel_bearing, reach_deg * i / points) for i in range(1, points + 1)]
    return RoadSegment(
        id=f"synthetic-{seq}",
        coordinates=coords,
        properties={"class": "aerial"},
        synthetic=True,
    )
