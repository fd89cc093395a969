import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass

from road_cam.app.camera import CameraMover
from road_cam.app.controllers.fallbacks import TerrainFollowing
from road_cam.app.events import FallbackEngaged, RunFinished, RunStarted, SegmentFollowed
from road_cam.app.protocols import (
    Clock,
    ControlChannel,
    DebugOverlay,
    ElevationSampler,
    FeatureQuery,
    Resampler,
)
from road_cam.config.models import ChainingModel, TerrainModel, VehicleProfileModel
from road_cam.domain.entities.geography import Bounds, LngLat, as_lnglat
from road_cam.domain.entities.motion import CameraTarget, Candidate, ChainState, PathCursor
from road_cam.domain.mechanics.mechanics_chaining import SegmentChainer
from road_cam.domain.mechanics.mechanics_geometry import bearing, distance_km
from road_cam.domain.mechanics.mechanics_terrain import ZoomSmoother, elevation_follow_zoom
from road_cam.errors import NoDataError, QueryContextError
from road_cam.runtime.resources import CapabilityCache
from road_cam.services.query_context import QueryContext
from road_cam.sim.hooks import FollowHooks, NoopHooks

log = logging.getLogger(__name__)

MIN_STEP_MS = 20.0
FINAL_STEP_MS = 100.0
PITCH_EASE_MS = 1000.0
POSITION_MS = 2000.0
STATUS_EVERY = 30

DEGRADED_STATUS = "⚠️ Helper map not available - using terrain following"
NO_SOURCE_STATUS = "⚠️ No vector source - using terrain following"
NO_ROAD_STATUS = "⚠️ No roads found - using terrain following"


@dataclass(frozen=True)
class FollowResult:
    outcome: str  # completed | segment_cap | dead_end | fallback
    segments: int
    points: int
    synthetic_segments: int
    elapsed_ms: float
    fallback: str | None = None  # animation that ran instead of / after chaining


@dataclass
class _Drive:
    outcome: str
    cursor: PathCursor | None = None
    fallback_reason: str | None = None
    status: str | None = None


def step_duration_ms(a: Sequence[float], b: Sequence[float], speed_kmh: float) -> float:
    """Constant ground speed: time to cover a->b, never below MIN_STEP_MS."""
    return max(MIN_STEP_MS, distance_km(a, b) / speed_kmh * 3600.0 * 1000.0)


class PathFollower:
    """
    Drives the camera along the road network at the vehicle's ground speed.

    Responsibilities:
      • open the helper query session and pick the first segment,
      • step the camera point by point with elevation-following zoom,
      • chain the next segment when the current one runs out,
      • fail over to a non-graph animation when chaining cannot start or stops.
    """

    def __init__(
        self,
        *,
        camera: CameraMover,
        query: FeatureQuery | None,
        terrain: ElevationSampler | None,
        control: ControlChannel,
        clock: Clock,
        profile: VehicleProfileModel,
        resampler: Resampler,
        chaining: ChainingModel | None = None,
        terrain_cfg: TerrainModel | None = None,
        capabilities: CapabilityCache | None = None,
        map_handle: Hashable = "default",
        overlay: DebugOverlay | None = None,
        hooks: FollowHooks | None = None,
        run_id: str = "local",
    ):
        self.camera, self.query, self.terrain = camera, query, terrain
        self.control, self.clock, self.profile, self.resampler = control, clock, profile, resampler
        self.chaining = chaining or ChainingModel()
        self.terrain_cfg = terrain_cfg or TerrainModel()
        self.capabilities = capabilities if capabilities is not None else CapabilityCache()
        self.map_handle, self.overlay = map_handle, overlay
        self.hooks = hooks or NoopHooks()
        self.run_id = run_id
        self.fallback = TerrainFollowing(camera, terrain, control, self.terrain_cfg)
        self._t0 = 0.0

    def _t(self) -> float:
        return self.clock.now_ms() - self._t0

    def _status(self, text: str) -> None:
        self.control.update_status(text)

    # ------------------------------------------------------------

    async def follow(
        self,
        duration_ms: float,
        *,
        start: Sequence[float] | None = None,
        facing_bearing: float | None = None,
    ) -> FollowResult:
        """One path-following run; raises FollowCancelled when the caller cancels."""
        async with self.camera.exclusive():
            return await self._follow(duration_ms, start, facing_bearing)

    async def _follow(self, duration_ms, start, facing_bearing) -> FollowResult:
        self._t0 = self.clock.now_ms()
        state = self.camera.current_state()
        origin = as_lnglat(start) if start is not None else state.center
        facing = facing_bearing if facing_bearing is not None else state.bearing
        self.hooks.run_start(RunStarted(0.0, self.run_id, self.profile.name, duration_ms, origin))

        drive = await self._chain_or_degrade(duration_ms, origin, facing)

        fallback_name = None
        if drive.fallback_reason is not None:
            remaining = duration_ms if drive.cursor is None else max(0.0, duration_ms - self._t())
            if drive.status:
                self._status(drive.status)
            self.hooks.fallback(
                FallbackEngaged(self._t(), drive.fallback_reason, self.fallback.name, remaining)
            )
            if remaining > 0:
                fallback_name = await self.fallback.run(remaining)

        cur = drive.cursor
        result = FollowResult(
            outcome=drive.outcome,
            segments=cur.segment_count if cur else 0,
            points=cur.total_points_visited if cur else 0,
            synthetic_segments=cur.synthetic_count if cur else 0,
            elapsed_ms=self._t(),
            fallback=fallback_name,
        )
        self.hooks.run_end(
            RunFinished(
                result.elapsed_ms,
                result.outcome,
                result.segments,
                result.points,
                result.synthetic_segments,
                result.elapsed_ms,
            )
        )
        if drive.fallback_reason is None or drive.cursor is not None:
            self._status(f"✅ {self.profile.name} complete!")
        return result

    async def _chain_or_degrade(self, duration_ms, origin: LngLat, facing: float) -> _Drive:
        if self.query is None:
            return _Drive("fallback", fallback_reason="degraded", status=DEGRADED_STATUS)
        reach = max(self.profile.preload_distance_deg, self.chaining.ray_length_deg)
        region = Bounds(origin[0] - reach, origin[1] - reach, origin[0] + reach, origin[1] + reach)
        try:
            async with QueryContext.session(
                self.query,
                kind=self.profile.transport,
                flt=self.profile.feature_filter(),
                initial_region=region,
                capabilities=self.capabilities,
                handle=self.map_handle,
                base_detail_level=self.chaining.base_detail_level,
                settle_delay_ms=self.chaining.settle_delay_ms,
                control=self.control,
                overlay=self.overlay,
            ) as ctx:
                return await self._drive(ctx, duration_ms, origin, facing)
        except QueryContextError as exc:
            log.warning("helper query context unavailable: %s", exc)
            self.hooks.error(reason="query_context", exc=exc, level="WARNING")
            return _Drive("fallback", fallback_reason="degraded", status=DEGRADED_STATUS)
        except NoDataError as exc:
            self.hooks.error(reason="no_data", exc=exc, level="WARNING")
            return _Drive("fallback", fallback_reason="no_source", status=NO_SOURCE_STATUS)

    # ------------------------------------------------------------

    async def _drive(self, ctx: QueryContext, duration_ms: float, origin: LngLat, facing: float) -> _Drive:
        p = self.profile
        self._status(f"🛣️ Finding nearest {'path' if p.transport_classes else 'road'}...")
        chainer = SegmentChainer(ctx, p, self.chaining, control=self.control)
        initial = await chainer.initial(origin, facing)
        if initial is None:
            return _Drive("fallback", fallback_reason="no_road", status=NO_ROAD_STATUS)

        # setup: tilt, then settle on the first point facing along the road
        self._status(f"{p.icon} Positioning at road start...")
        await self.camera.move(CameraTarget(pitch=p.pitch), PITCH_EASE_MS)
        first = initial.coords[0]
        heading = bearing(first, initial.coords[1]) if len(initial.coords) >= 2 else facing
        await self.camera.move(
            CameraTarget(center=first, bearing=heading, zoom=p.camera_zoom, pitch=p.pitch), POSITION_MS
        )

        cursor = PathCursor.start(initial, self.resampler.resample(initial.coords), heading)
        cursor.index = 1  # already standing on the first point
        cursor.total_points_visited = 1
        self._report(cursor, initial)
        self._status(f"{p.icon} Following road network...")

        smoother = ZoomSmoother(p.smoothing)
        started = self.clock.now_ms()
        while True:
            self.control.check_cancelled()
            elapsed = self.clock.now_ms() - started
            if not self.clock.is_frozen() and elapsed >= duration_ms:
                return _Drive("completed", cursor)

            if cursor.exhausted:
                if cursor.segment_count >= self.chaining.max_segments:
                    log.info("segment cap %d reached", self.chaining.max_segments)
                    return _Drive("segment_cap", cursor)
                try:
                    cand = await chainer.advance(cursor)
                except NoDataError as exc:
                    log.warning("feature query lost after %d segments: %s", cursor.segment_count, exc)
                    self.hooks.error(reason="no_data", exc=exc, level="WARNING")
                    cand = None
                if cand is None:
                    return _Drive(
                        "dead_end",
                        cursor,
                        fallback_reason="dead_end",
                        status=f"⚠️ No roads found after {cursor.segment_count} segments"
                        " - using terrain following",
                    )
                self._load(cursor, cand)

            await self._step(cursor, smoother)
            if cursor.total_points_visited % STATUS_EVERY == 0:
                percent = min(99, round(elapsed / max(duration_ms, 1e-9) * 100))
                self._status(f"{p.icon} Following road network: {percent}% ({cursor.segment_count} segments)")

    def _load(self, cursor: PathCursor, cand: Candidate) -> None:
        # the first point sits on the current position; keep 2-point segments whole
        pts = cand.coords[1:] if len(cand.coords) > 2 else cand.coords
        cursor.load(cand, self.resampler.resample(pts))
        self._report(cursor, cand)
        icon = self.profile.icon
        if cand.source is ChainState.CARDINAL_SEARCH:
            self._status(f"{icon} Jumping to nearby road...")
        elif cand.source is ChainState.EXPLORATION:
            self._status(f"{icon} Crossing terrain to next road...")
        elif cand.source is ChainState.SYNTHETIC:
            self._status(f"{icon} Flying over terrain (no roads)...")
        else:
            self._status(f"{icon} Following {cand.segment.identity} (segment {cursor.segment_count})...")

    def _report(self, cursor: PathCursor, cand: Candidate) -> None:
        seg = cand.segment
        self.hooks.segment(
            SegmentFollowed(
                self._t(),
                str(seg.id),
                cursor.segment_count,
                str(cand.source),
                seg.road_class,
                seg.name,
                seg.ref,
                cand.reversed,
                cand.bearing_delta,
                cand.distance * 1000.0,
                cand.score,
                len(cand.coords),
                seg.synthetic,
                list(cand.coords),
            )
        )

    async def _step(self, cursor: PathCursor, smoother: ZoomSmoother) -> None:
        coords, i = cursor.coords, cursor.index
        pt = coords[i]
        if i < len(coords) - 1:
            heading = bearing(pt, coords[i + 1])
            duration = step_duration_ms(pt, coords[i + 1], self.profile.speed_kmh)
        else:
            heading = bearing(coords[i - 1], pt) if i > 0 else cursor.bearing
            duration = FINAL_STEP_MS
        cursor.bearing = heading

        elev = self.terrain.elevation_at(pt) if self.terrain is not None else None
        zoom = smoother.push(
            elevation_follow_zoom(
                elev,
                self.profile.camera_zoom,
                per_km=self.terrain_cfg.follow_zoom_per_km,
                floor=self.terrain_cfg.follow_zoom_floor,
            )
        )
        await self.camera.move(
            CameraTarget(center=pt, bearing=heading, zoom=zoom, pitch=self.profile.pitch), duration
        )
        cursor.advance()
        self.hooks.step(
            t=self._t(), index=i, total=cursor.total_points_visited, zoom=zoom, duration_ms=duration
        )
