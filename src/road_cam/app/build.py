# road_cam/app/build.py
from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass

from road_cam.app.camera import CameraMover
from road_cam.app.controllers.follow import FollowResult, PathFollower
from road_cam.app.protocols import (
    CameraHost,
    Clock,
    ControlChannel,
    DebugOverlay,
    ElevationSampler,
    FeatureQuery,
)
from road_cam.config.models import FollowScenarioModel, VehicleProfileModel
from road_cam.domain.mechanics.mechanics_constraints import CameraConstraints
from road_cam.io.follow_logging import FollowLogging  # JSON logs
from road_cam.io.recorder import AsyncSink, JsonlSink, OverlaySink, Recorder, Sink
from road_cam.runtime.registries import make_clock, resampler_for, vehicle_profile
from road_cam.runtime.resources import CapabilityCache
from road_cam.sim.hooks import NoopHooks


@dataclass
class App:
    cfg: FollowScenarioModel
    profile: VehicleProfileModel
    clock: Clock
    camera: CameraMover
    follower: PathFollower
    recorder: Recorder | None

    async def run(self) -> FollowResult:
        try:
            return await self.follower.follow(
                self.cfg.duration_ms, start=self.cfg.start, facing_bearing=self.cfg.facing_bearing
            )
        finally:
            if self.recorder is not None:
                self.recorder.flush()


def build(
    cfg: FollowScenarioModel | Mapping,
    *,
    query: FeatureQuery | None,
    camera_host: CameraHost,
    control: ControlChannel,
    terrain: ElevationSampler | None = None,
    overlay: DebugOverlay | None = None,
    clock: Clock | None = None,
    capabilities: CapabilityCache | None = None,
    map_handle: Hashable = "default",
    sinks: Sequence[Sink] | None = None,
    use_logging: bool = True,
) -> App:
    # 0) Validate config
    model = cfg if isinstance(cfg, FollowScenarioModel) else FollowScenarioModel.model_validate(cfg)

    # 1) Vehicle, clock, resampler
    profile = vehicle_profile(model.vehicle)
    clock = clock if clock is not None else make_clock(model.clock)
    resampler = resampler_for(profile, model.resampler)

    # 2) Hooks: structured logs + recorder (overlay gets the followed geometry)
    recorder = None
    hooks = NoopHooks()
    if use_logging:
        all_sinks = list(sinks) if sinks is not None else [JsonlSink()]
        if model.log.async_sinks:
            all_sinks = [AsyncSink(s) for s in all_sinks]
        if overlay is not None and model.debug_overlay:
            all_sinks.append(OverlaySink(overlay))
        recorder = Recorder(*all_sinks)
        hooks = FollowLogging(
            run_id=model.run_id,
            level=model.log.level,
            debug=model.log.debug,
            sample_every=model.log.sample_every,
            recorder=recorder,
        )

    # 3) Camera with terrain clearance and optional limits
    constraints = None
    if model.constraints is not None:
        c = model.constraints
        constraints = CameraConstraints(c.bounds(), c.min_zoom, c.max_zoom, c.strict)
    camera = CameraMover(camera_host, terrain=terrain, control=control, constraints=constraints)

    # 4) Follower (inject deps explicitly)
    follower = PathFollower(
        camera=camera,
        query=query,
        terrain=terrain,
        control=control,
        clock=clock,
        profile=profile,
        resampler=resampler,
        chaining=model.chaining,
        terrain_cfg=model.terrain,
        capabilities=capabilities,
        map_handle=map_handle,
        overlay=overlay if model.debug_overlay else None,
        hooks=hooks,
        run_id=model.run_id,
    )
    return App(model, profile, clock, camera, follower, recorder)
