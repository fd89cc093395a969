import logging

from road_cam.app.camera import CameraMover
from road_cam.app.protocols import ControlChannel, ElevationSampler
from road_cam.config.models import TerrainModel
from road_cam.domain.entities.motion import CameraTarget
from road_cam.domain.mechanics.mechanics_terrain import ZoomSmoother, elevation_follow_zoom

log = logging.getLogger(__name__)

CANCEL_EVERY = 20
STATUS_EVERY = 30
PITCH_EASE_MS = 1000.0


def _wrap_bearing(b: float) -> float:
    """Into (-180, 180]."""
    while b > 180.0:
        b -= 360.0
    while b <= -180.0:
        b += 360.0
    return b


class OrbitRotation:
    """360 degree rotation around the current center, used when there is no terrain."""

    name = "orbit"

    def __init__(self, camera: CameraMover, control: ControlChannel, cfg: TerrainModel):
        self.camera, self.control, self.cfg = camera, control, cfg

    async def run(self, duration_ms: float) -> str:
        self.control.update_status("🔄 360° orbit...")
        step_deg = self.cfg.orbit_degrees_per_step
        steps = max(1, round(360.0 / step_deg))
        ms = duration_ms / steps
        b = self.camera.current_state().bearing
        for i in range(steps):
            if i % CANCEL_EVERY == 0:
                self.control.check_cancelled()
            b = _wrap_bearing(b + step_deg)
            await self.camera.move(CameraTarget(bearing=b), ms)
        return self.name


class TerrainFollowing:
    """
    Slow rotation at a cinematic pitch whose zoom tracks the ground under the
    center. Hands over to an orbit when no terrain is available.
    """

    name = "terrain_following"

    def __init__(
        self,
        camera: CameraMover,
        terrain: ElevationSampler | None,
        control: ControlChannel,
        cfg: TerrainModel,
        *,
        orbit: OrbitRotation | None = None,
    ):
        self.camera, self.terrain, self.control, self.cfg = camera, terrain, control, cfg
        self.orbit = orbit or OrbitRotation(camera, control, cfg)

    async def run(self, duration_ms: float) -> str:
        if self.terrain is None:
            self.control.update_status("⚠️ No 3D terrain - using standard rotation")
            return await self.orbit.run(duration_ms)

        self.control.update_status("🚁 Terrain following flight...")
        initial = self.camera.current_state()
        pitch = self.cfg.fallback_pitch
        self.control.update_status("📐 Setting terrain view angle...")
        await self.camera.move(CameraTarget(pitch=pitch), PITCH_EASE_MS)

        steps = self.cfg.fallback_steps
        deg = 360.0 / steps
        ms = duration_ms * 0.95 / steps
        smoother = ZoomSmoother(self.cfg.fallback_smoothing)
        self.control.update_status("🏔️ Following terrain contours...")
        for step in range(steps):
            if step % CANCEL_EVERY == 0:
                self.control.check_cancelled()
            elev = self.terrain.elevation_at(initial.center)
            if elev is None or elev < 0:
                target_zoom = self.camera.current_state().zoom
            else:
                target_zoom = elevation_follow_zoom(
                    elev,
                    self.cfg.fallback_base_zoom,
                    per_km=self.cfg.follow_zoom_per_km,
                    floor=self.cfg.follow_zoom_floor,
                )
            zoom = smoother.push(target_zoom)
            await self.camera.move(CameraTarget(bearing=initial.bearing + deg * step, zoom=zoom, pitch=pitch), ms)
            if step % STATUS_EVERY == 0:
                self.control.update_status(f"🏔️ Terrain following: {round(step / steps * 100)}%")

        self.control.update_status("🎯 Returning to start...")
        await self.camera.move(CameraTarget(bearing=initial.bearing, pitch=initial.pitch), duration_ms * 0.05)
        return self.name
