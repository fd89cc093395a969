import math
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from road_cam.domain.entities.geography import (
    RAIL_CLASSES,
    ROAD_CLASSES,
    WATERWAY_CLASSES,
    Bounds,
    FeatureFilter,
)

TransportKind = Literal["road", "rail", "waterway"]

_DEFAULT_CLASSES: dict[str, tuple[str, ...]] = {
    "road": ROAD_CLASSES,
    "rail": RAIL_CLASSES,
    "waterway": WATERWAY_CLASSES,
}


class LogModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False
    sample_every: int = Field(default=30, ge=1)  # debug step records every N points
    async_sinks: bool = False  # write records from a background thread


# ----------------- VEHICLES ---------------------


class VehicleProfileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    name: str
    icon: str = ""
    speed_kmh: float = Field(default=30.0, gt=0)
    pitch: float = Field(default=60.0, ge=0, le=85)
    zoom: float | None = None
    altitude_m: float = Field(default=10.0, gt=0)
    smoothing: int = Field(default=5, ge=1)
    search_radius_deg: float = Field(default=0.002, gt=0)
    preload_distance_deg: float = Field(default=0.002, ge=0)
    transport: TransportKind = "road"
    transport_classes: tuple[str, ...] | None = None
    supports_exploration: bool = True
    smooth_path: bool = True

    @field_validator("transport_classes", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        if v is not None and len(v) == 0:
            return None
        return v

    @property
    def camera_zoom(self) -> float:
        if self.zoom is not None:
            return self.zoom
        return max(10.0, min(22.0, 22.0 - math.log2(self.altitude_m)))

    def feature_filter(self) -> FeatureFilter:
        return FeatureFilter(classes=self.transport_classes or _DEFAULT_CLASSES[self.transport])


def _preset(name: str, icon: str, altitude, zoom, pitch, smoothing, speed, radius, preload, **kw):
    return VehicleProfileModel(
        name=name,
        icon=icon,
        altitude_m=altitude,
        zoom=zoom,
        pitch=pitch,
        smoothing=smoothing,
        speed_kmh=speed,
        search_radius_deg=radius,
        preload_distance_deg=preload,
        **kw,
    )


# altitude m, zoom, pitch, smoothing, km/h, search radius deg, preload deg
VEHICLE_PRESETS: dict[str, VehicleProfileModel] = {
    "tractor": _preset("Tractor Road Trip", "🚜", 8, 20, 60, 5, 30, 0.002, 0.002),
    "car": _preset("Car Road Trip", "🚗", 15, 19, 60, 5, 70, 0.002, 0.005),
    "sports_car": _preset("Sports Car Race", "🏎️", 25, 17.5, 60, 5, 130, 0.003, 0.010),
    "plane": _preset("Plane Flight", "✈️", 200, 15, 45, 8, 200, 0.01, 0.015),
    "helicopter": _preset("Helicopter Tour", "🚁", 50, 17.5, 70, 6, 60, 0.005, 0.005),
    "drone": _preset("Drone Follow", "🛸", 30, 18.5, 65, 4, 60, 0.005, 0.004),
    "birds_eye": _preset("Bird's Eye Road", "🦅", 100, 16, 40, 7, 50, 0.01, 0.004),
    "train": _preset(
        "Train Ride", "🚂", 12, 19, 55, 8, 70, 0.002, 0.005,
        transport="rail", transport_classes=("rail", "transit"),
    ),
    "speedboat": _preset(
        "Speedboat", "🚤", 8, 18, 55, 4, 90, 0.005, 0.007,
        transport="waterway", transport_classes=("river", "canal", "stream"),
    ),
    "sailboat": _preset(
        "Sailboat", "⛵", 10, 17, 55, 7, 28, 0.004, 0.002,
        transport="waterway", transport_classes=("river", "canal"),
    ),
    "cruise_ship": _preset(
        "Cruise Ship", "🛥️", 18, 15, 45, 11, 22, 0.004, 0.002,
        transport="waterway", transport_classes=("river", "canal"),
    ),
}


# ----------------- CHAINING ---------------------


class ScoringWeights(BaseModel):
    """
    Empirically tuned continuation-scoring constants. Lower score wins; each
    continuity tier starts at an offset large enough to outrank the next tier.
    Distances are planar degrees, bearing deltas are degrees.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)
    connection_threshold_deg: float = Field(default=0.0005, gt=0)
    u_turn_deg: float = Field(default=150.0, gt=0, le=180)

    same_ref_offset: float = 0.0
    same_name_offset: float = 100.0
    same_class_offset: float = 1000.0
    other_offset: float = 10000.0

    identity_distance_weight: float = 10.0
    identity_bearing_weight: float = 0.01
    class_distance_weight: float = 10.0
    class_bearing_weight: float = 50.0
    other_distance_weight: float = 100.0
    other_bearing_weight: float = 200.0

    retry_offset: float = 1000.0
    retry_bearing_weight: float = 50.0

    @model_validator(mode="after")
    def _tiers_ordered(self):
        offsets = (self.same_ref_offset, self.same_name_offset, self.same_class_offset, self.other_offset)
        if any(b <= a for a, b in zip(offsets, offsets[1:])):
            raise ValueError("tier offsets must be strictly increasing (ref < name < class < other)")
        return self


class ChainingModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    synthetic_fallback: bool = True
    max_segments: int = Field(default=10000, ge=1)
    reposition_ahead: bool = True
    settle_delay_ms: float = Field(default=200.0, ge=0)
    base_detail_level: float = 18.0
    retry_detail_levels: tuple[float, ...] = (16.0, 17.0)
    ray_length_deg: float = Field(default=0.002, gt=0)
    cardinal_radius_cap_deg: float = Field(default=0.002, gt=0)
    cardinal_direction_penalty: float = 0.001
    preferred_class_factor: float = Field(default=0.5, gt=0, le=1)
    max_jump_km: float = Field(default=0.25, gt=0)
    exploration_step_deg: float = Field(default=0.0005, gt=0)
    exploration_max_steps: int = Field(default=4, ge=1)
    exploration_radius_factor: float = Field(default=0.5, gt=0)
    synthetic_points: int = Field(default=10, ge=2)
    cancel_check_every: int = Field(default=64, ge=1)


# ----------------- TERRAIN ---------------------


class TerrainModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    follow_zoom_per_km: float = Field(default=1.5, ge=0)
    follow_zoom_floor: float = 10.0
    fallback_steps: int = Field(default=120, ge=1)
    fallback_pitch: float = Field(default=60.0, ge=0, le=85)
    fallback_base_zoom: float = 17.0
    fallback_smoothing: int = Field(default=5, ge=1)
    orbit_degrees_per_step: float = Field(default=2.0, gt=0, le=360)


class ConstraintsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_bounds: tuple[float, float, float, float] | None = None  # west, south, east, north
    min_zoom: float | None = None
    max_zoom: float | None = None
    strict: bool = False

    @model_validator(mode="after")
    def _check(self):
        if self.max_bounds is not None:
            w, s, e, n = self.max_bounds
            if w > e or s > n:
                raise ValueError("max_bounds must be (west, south, east, north) with west<=east, south<=north")
        if self.min_zoom is not None and self.max_zoom is not None and self.min_zoom > self.max_zoom:
            raise ValueError("min_zoom must be <= max_zoom")
        return self

    def bounds(self) -> Bounds | None:
        return Bounds(*self.max_bounds) if self.max_bounds else None


# ----------------- RESAMPLERS ---------------------


class UniformResamplerModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["uniform"] = "uniform"
    spacing_km: float = Field(default=0.01, gt=0)


class CatmullRomResamplerModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["catmull_rom"] = "catmull_rom"
    spacing_km: float = Field(default=0.01, gt=0)
    tension: float = 0.3

    @field_validator("tension")
    @classmethod
    def _finite(cls, v: float, info: ValidationInfo) -> float:
        if not math.isfinite(v):
            raise ValueError(f"{info.field_name} must be finite")
        return v


ResamplerUnion = Annotated[
    UniformResamplerModel | CatmullRomResamplerModel, Field(discriminator="kind")
]


# ----------------- CLOCKS ---------------------


class MonotonicClockModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["monotonic"] = "monotonic"


class VirtualClockModel(BaseModel):
    """Advanced by the camera host; `frozen` disables duration-based termination."""

    model_config = ConfigDict(extra="forbid")
    kind: Literal["virtual"] = "virtual"
    start_ms: float = 0.0
    frozen: bool = False


ClockUnion = Annotated[MonotonicClockModel | VirtualClockModel, Field(discriminator="kind")]


# ------------------------------------------------------------------


class FollowScenarioModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str = "follow"
    run_id: str = "local"
    vehicle: str | VehicleProfileModel = "car"
    duration_ms: float = Field(default=30000.0, gt=0)
    start: tuple[float, float] | None = None  # lng, lat; None = camera center
    facing_bearing: float | None = None  # None = camera bearing
    chaining: ChainingModel = Field(default_factory=ChainingModel)
    terrain: TerrainModel = Field(default_factory=TerrainModel)
    resampler: ResamplerUnion | None = None  # None = chosen by vehicle.smooth_path
    clock: ClockUnion = Field(default_factory=MonotonicClockModel)
    constraints: ConstraintsModel | None = None
    debug_overlay: bool = True
    log: LogModel = LogModel()

    @field_validator("vehicle", mode="before")
    @classmethod
    def _normalize_name(cls, v):
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_").replace(" ", "_")
        return v

    @field_validator("start")
    @classmethod
    def _check_start(cls, v):
        if v is None:
            return v
        lng, lat = v
        if not (math.isfinite(lng) and math.isfinite(lat)) or not (-90 <= lat <= 90):
            raise ValueError("start must be finite (lng, lat) with -90 <= lat <= 90")
        return v
