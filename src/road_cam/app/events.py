# app/events.py
from dataclasses import dataclass, field
from typing import Literal

from road_cam.domain.entities.geography import LngLat
from road_cam.sim.event import BaseEvent

Outcome = Literal["completed", "segment_cap", "dead_end", "fallback"]


@dataclass(order=True)
class RunStarted(BaseEvent):
    run_id: str
    vehicle: str
    duration_ms: float
    start: LngLat


@dataclass(order=True)
class SegmentFollowed(BaseEvent):
    segment_id: str
    segment_num: int
    source: str  # chain state that produced it
    road_class: str | None
    name: str | None
    ref: str | None
    reversed: bool
    bearing_delta: float
    distance_m: float
    score: float | None
    points: int
    synthetic: bool = False
    coords: list[LngLat] = field(default_factory=list, compare=False)


@dataclass(order=True)
class FallbackEngaged(BaseEvent):
    reason: str  # no_road | no_source | degraded | dead_end
    animation: str  # terrain_following | orbit
    remaining_ms: float


@dataclass(order=True)
class RunFinished(BaseEvent):
    outcome: Outcome
    segments: int
    points: int
    synthetic_segments: int
    elapsed_ms: float
