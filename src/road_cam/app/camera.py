import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from road_cam.app.protocols import CameraHost, ControlChannel, ElevationSampler
from road_cam.domain.entities.motion import CameraState, CameraTarget
from road_cam.domain.mechanics.mechanics_constraints import CameraConstraints
from road_cam.domain.mechanics.mechanics_terrain import terrain_aware_zoom
from road_cam.errors import CameraBusy

log = logging.getLogger(__name__)


class CameraMover:
    """
    Awaited camera transitions with terrain clearance.

    Any move with a positive pitch over known terrain gets its zoom raised to at
    least the terrain-safe zoom at the current center; a caller's higher zoom is
    kept. One follow run at a time may own the mover (`exclusive`).
    """

    def __init__(
        self,
        host: CameraHost,
        *,
        terrain: ElevationSampler | None = None,
        control: ControlChannel | None = None,
        constraints: CameraConstraints | None = None,
    ):
        self.host, self.terrain, self.control, self.constraints = host, terrain, control, constraints
        self._lock = asyncio.Lock()
        self.moves = 0

    def current_state(self) -> CameraState:
        return self.host.current_state()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator["CameraMover"]:
        if self._lock.locked():
            raise CameraBusy("a path-following run already owns this camera")
        async with self._lock:
            yield self

    def safe_target(self, target: CameraTarget) -> CameraTarget:
        state = self.host.current_state()
        pitch = target.pitch if target.pitch is not None else state.pitch
        if self.terrain is not None and pitch > 0:
            safe = terrain_aware_zoom(self.host, self.terrain, pitch)
            requested = target.zoom if target.zoom is not None else state.zoom
            if requested < safe:
                log.debug("zoom %.2f raised to terrain-safe %.2f", requested, safe)
                target = target.with_zoom(safe)
        if self.constraints is not None:
            target = self.constraints.apply(target)
        return target

    async def move(self, target: CameraTarget, duration_ms: float) -> CameraTarget:
        """Issue one transition, wait for it to finish, then honour a pending cancel."""
        target = self.safe_target(target)
        await self.host.transition_to(target, duration_ms)
        self.moves += 1
        if self.control is not None:
            self.control.check_cancelled()
        return target
