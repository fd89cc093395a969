import asyncio

import pytest

from road_cam.app.camera import CameraMover
from road_cam.app.controllers.fallbacks import OrbitRotation, TerrainFollowing
from road_cam.config.models import TerrainModel
from road_cam.domain.entities.geography import Bounds
from road_cam.domain.entities.motion import CameraTarget
from road_cam.domain.mechanics.mechanics_constraints import CameraConstraints
from road_cam.errors import CameraBusy, FollowCancelled
from road_cam.io.memory_backends import FlatElevation, RecordingCamera, ScriptedControl
from road_cam.sim.clock import VirtualClock

# ---------- Terrain clearance ----------


def test_safe_target_raises_zoom_over_high_ground():
    host = RecordingCamera((0.0, 0.0), zoom=15.0)
    mover = CameraMover(host, terrain=FlatElevation(3000.0))
    raised = mover.safe_target(CameraTarget(zoom=5.0, pitch=60.0))
    assert raised.zoom > 12.0

    kept = mover.safe_target(CameraTarget(zoom=16.0, pitch=60.0))
    assert kept.zoom == 16.0

    flat_view = mover.safe_target(CameraTarget(zoom=5.0, pitch=0.0))
    assert flat_view.zoom == 5.0


def test_constraints_apply_after_terrain_raise():
    limits = CameraConstraints(Bounds(0.0, 0.0, 1.0, 1.0), min_zoom=4.0, max_zoom=10.0)
    mover = CameraMover(RecordingCamera(), terrain=FlatElevation(3000.0), constraints=limits)
    t = mover.safe_target(CameraTarget(center=(2.0, -1.0), zoom=5.0, pitch=60.0))
    assert t.center == (1.0, 0.0)
    assert t.zoom == 10.0


def test_move_waits_then_honours_cancel():
    clock = VirtualClock()
    host = RecordingCamera(clock=clock)
    control = ScriptedControl()
    mover = CameraMover(host, control=control)

    asyncio.run(mover.move(CameraTarget(bearing=45.0), 500.0))
    assert clock.now_ms() == 500.0
    assert host.current_state().bearing == 45.0

    control.cancel()
    with pytest.raises(FollowCancelled):
        asyncio.run(mover.move(CameraTarget(bearing=90.0), 500.0))
    assert len(host.transitions) == 2
    assert mover.moves == 2


def test_exclusive_rejects_second_owner():
    mover = CameraMover(RecordingCamera())

    async def scenario():
        async with mover.exclusive():
            with pytest.raises(CameraBusy):
                async with mover.exclusive():
                    pass
        async with mover.exclusive():
            return "free"

    assert asyncio.run(scenario()) == "free"


# ---------- Constraints ----------


def test_constraints_clamp_and_limits():
    c = CameraConstraints(Bounds(-1.0, -1.0, 1.0, 1.0), min_zoom=3.0, max_zoom=18.0)
    assert c.constrain_center((5.0, -5.0)) == (1.0, -1.0)
    assert c.constrain_zoom(1.0) == 3.0 and c.constrain_zoom(20.0) == 18.0
    assert c.is_within_bounds((0.5, 0.5)) and not c.is_within_bounds((2.0, 0.0))
    assert c.is_within_zoom_limits(10.0) and not c.is_within_zoom_limits(25.0)

    unbounded = CameraConstraints()
    far = CameraTarget(center=(50.0, 50.0), zoom=30.0)
    assert unbounded.apply(far) == far


def test_safe_path_clamps_only_when_strict():
    loose = CameraConstraints(Bounds(0.0, 0.0, 1.0, 1.0))
    strict = CameraConstraints(Bounds(0.0, 0.0, 1.0, 1.0), strict=True)
    assert loose.safe_path((0.0, 0.0), (2.0, 0.0), steps=2)[-1] == (2.0, 0.0)
    path = strict.safe_path((0.0, 0.0), (2.0, 0.0), steps=2)
    assert len(path) == 3 and path[-1] == (1.0, 0.0)


def test_terrain_aware_path_min_zoom():
    c = CameraConstraints()
    pts = c.terrain_aware_path(FlatElevation(2000.0), (0.0, 0.0), (0.01, 0.0), pitch=60.0, steps=4)
    assert len(pts) == 5
    assert all(p.min_zoom > 3.0 for p in pts)
    assert c.terrain_aware_path(None, (0.0, 0.0), (0.01, 0.0))[0].min_zoom == 3.0


# ---------- Non-graph fallbacks ----------


def test_orbit_wraps_bearing_and_returns_home():
    host = RecordingCamera(bearing=170.0)
    control = ScriptedControl()
    orbit = OrbitRotation(CameraMover(host), control, TerrainModel())
    assert asyncio.run(orbit.run(3600.0)) == "orbit"

    bearings = [t.bearing for t, _ in host.transitions]
    assert len(bearings) == 180
    assert all(-180.0 < b <= 180.0 for b in bearings)
    assert abs(bearings[-1] - 170.0) < 1e-9
    assert all(abs(ms - 20.0) < 1e-9 for _, ms in host.transitions)


def test_terrain_following_pattern():
    host = RecordingCamera(bearing=10.0, zoom=15.0)
    control = ScriptedControl()
    terrain = FlatElevation(1000.0)
    fallback = TerrainFollowing(CameraMover(host, terrain=terrain), terrain, control, TerrainModel())
    assert asyncio.run(fallback.run(12000.0)) == "terrain_following"

    moves = host.transitions
    assert len(moves) == 122
    assert moves[0][0].pitch == 60.0 and moves[0][1] == 1000.0
    assert abs(moves[1][1] - 12000.0 * 0.95 / 120) < 1e-9
    assert abs(moves[1][0].zoom - 15.5) < 1e-9
    assert moves[-1][0].bearing == 10.0 and moves[-1][0].pitch == 0.0
    assert abs(moves[-1][1] - 600.0) < 1e-9
    assert "🏔️ Terrain following: 0%" in control.statuses


def test_terrain_following_keeps_zoom_over_unknown_ground():
    host = RecordingCamera(zoom=14.0)
    terrain = FlatElevation(None)
    cfg = TerrainModel(fallback_steps=4)
    fallback = TerrainFollowing(CameraMover(host, terrain=terrain), terrain, ScriptedControl(), cfg)
    asyncio.run(fallback.run(1000.0))
    assert all(abs(t.zoom - 14.0) < 1e-9 for t, _ in host.transitions[1:-1])


def test_terrain_following_checks_cancellation():
    control = ScriptedControl(cancel_after=3)
    terrain = FlatElevation(100.0)
    mover = CameraMover(RecordingCamera(), terrain=terrain)
    fallback = TerrainFollowing(mover, terrain, control, TerrainModel())
    with pytest.raises(FollowCancelled):
        asyncio.run(fallback.run(5000.0))
