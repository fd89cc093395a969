# runtime/registries.py
from collections.abc import Callable
from typing import Any

from road_cam.app.protocols import Clock, Resampler
from road_cam.config.models import (
    VEHICLE_PRESETS,
    CatmullRomResamplerModel,
    ClockUnion,
    MonotonicClockModel,
    ResamplerUnion,
    UniformResamplerModel,
    VehicleProfileModel,
    VirtualClockModel,
)
from road_cam.domain.mechanics.mechanics_resamplers import CatmullRomResampler, UniformResampler
from road_cam.sim.clock import MonotonicClock, VirtualClock

ResamplerFactory = Callable[[ResamplerUnion, dict], Resampler]
ClockFactory = Callable[[ClockUnion, dict], Clock]

_resampler_registry: dict[str, ResamplerFactory] = {}
_clock_registry: dict[str, ClockFactory] = {}
_vehicle_registry: dict[str, VehicleProfileModel] = dict(VEHICLE_PRESETS)


# ------------------- Resamplers ---------------------------


def register_resampler(kind: str):
    def deco(fn: ResamplerFactory):
        _resampler_registry[kind] = fn
        return fn

    return deco


def make_resampler(cfg: ResamplerUnion, *, deps: dict | None = None) -> Resampler:
    try:
        factory = _resampler_registry[cfg.kind]
    except KeyError:
        raise ValueError(f"Unknown resampler kind {cfg.kind!r}") from None
    return factory(cfg, deps or {})


def resampler_for(profile: VehicleProfileModel, override: ResamplerUnion | None = None) -> Resampler:
    """Explicit config wins; otherwise the profile's smooth_path flag picks the spline."""
    if override is None:
        override = CatmullRomResamplerModel() if profile.smooth_path else UniformResamplerModel()
    return make_resampler(override)


@register_resampler("uniform")
def _make_uniform(cfg: UniformResamplerModel, deps):
    return UniformResampler(cfg.spacing_km)


@register_resampler("catmull_rom")
def _make_catmull_rom(cfg: CatmullRomResamplerModel, deps):
    return CatmullRomResampler(cfg.spacing_km, cfg.tension)


# ------------------- Clocks ---------------------------


def register_clock(kind: str):
    def deco(fn: ClockFactory):
        _clock_registry[kind] = fn
        return fn

    return deco


def make_clock(cfg: ClockUnion, *, deps: dict | None = None) -> Clock:
    try:
        factory = _clock_registry[cfg.kind]
    except KeyError:
        raise ValueError(f"Unknown clock kind {cfg.kind!r}") from None
    return factory(cfg, deps or {})


@register_clock("monotonic")
def _make_monotonic(cfg: MonotonicClockModel, deps):
    return MonotonicClock()


@register_clock("virtual")
def _make_virtual(cfg: VirtualClockModel, deps):
    return VirtualClock(t_ms=cfg.start_ms, frozen=cfg.frozen)


# ------------------- Vehicles ---------------------------


def register_vehicle(key: str, profile: VehicleProfileModel) -> VehicleProfileModel:
    _vehicle_registry[key] = profile
    return profile


def vehicle_profile(ref: Any) -> VehicleProfileModel:
    """Preset key or inline profile -> profile."""
    if isinstance(ref, VehicleProfileModel):
        return ref
    if isinstance(ref, dict):
        return VehicleProfileModel.model_validate(ref)
    try:
        return _vehicle_registry[ref]
    except KeyError:
        known = ", ".join(sorted(_vehicle_registry))
        raise ValueError(f"Unknown vehicle {ref!r} (known: {known})") from None


def vehicle_names() -> list[str]:
    return sorted(_vehicle_registry)
