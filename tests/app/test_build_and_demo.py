import asyncio

from main import grid_network, run
from road_cam.app.build import build
from road_cam.app.events import RunFinished, SegmentFollowed
from road_cam.app.protocols import CameraHost, ControlChannel, DebugOverlay, ElevationSampler, FeatureQuery
from road_cam.domain.entities.geography import RoadSegment
from road_cam.domain.mechanics.mechanics_resamplers import CatmullRomResampler
from road_cam.io.memory_backends import (
    FlatElevation,
    InMemoryFeatureIndex,
    MemoryOverlay,
    RecordingCamera,
    ScriptedControl,
)
from road_cam.io.recorder import AsyncSink, MemorySink, OverlaySink
from road_cam.sim.clock import VirtualClock
from road_cam.sim.hooks import NoopHooks

ROADS = [
    RoadSegment("a", [(0.0, 0.0), (0.001, 0.0)], {"class": "primary"}),
    RoadSegment("b", [(0.001, 0.0), (0.002, 0.0)], {"class": "primary"}),
]


def test_memory_backends_satisfy_protocols():
    assert isinstance(InMemoryFeatureIndex(ROADS), FeatureQuery)
    assert isinstance(RecordingCamera(), CameraHost)
    assert isinstance(ScriptedControl(), ControlChannel)
    assert isinstance(FlatElevation(0.0), ElevationSampler)
    assert isinstance(MemoryOverlay(), DebugOverlay)


def _app(clock, overlay, sinks, **cfg):
    return build(
        {
            "vehicle": "drone",
            "duration_ms": 20000,
            "start": (0.0002, -0.00005),
            "facing_bearing": 90.0,
            "chaining": {"settle_delay_ms": 0},
            **cfg,
        },
        query=InMemoryFeatureIndex(ROADS),
        camera_host=RecordingCamera(clock=clock),
        control=ScriptedControl(),
        terrain=FlatElevation(50.0),
        overlay=overlay,
        clock=clock,
        sinks=sinks,
    )


def test_build_wires_profile_recorder_and_overlay():
    clock = VirtualClock()
    overlay = MemoryOverlay()
    mem = MemorySink()
    app = _app(clock, overlay, [mem])

    assert app.profile.name == "Drone Follow"
    assert app.clock is clock
    assert isinstance(app.follower.resampler, CatmullRomResampler)

    res = asyncio.run(app.run())
    assert res.segments >= 2
    assert [e.segment_id for e in mem.of_type(SegmentFollowed)][:2] == ["a", "b"]
    assert mem.of_type(RunFinished)[0].outcome == res.outcome
    assert overlay.shown and len(overlay.last["features"]) == res.segments
    assert overlay.cleared == 1


def test_async_sinks_are_flushed_when_the_run_ends():
    clock = VirtualClock()
    mem = MemorySink()
    app = _app(clock, MemoryOverlay(), [mem], log={"async_sinks": True})
    first, overlay_sink = app.recorder.sinks
    assert isinstance(first, AsyncSink) and first.sink is mem
    assert isinstance(overlay_sink, OverlaySink)

    res = asyncio.run(app.run())
    first.stop()
    assert [e.segment_id for e in mem.of_type(SegmentFollowed)][:2] == ["a", "b"]
    assert mem.of_type(RunFinished)[0].outcome == res.outcome
    assert first.dropped == 0


def test_build_without_overlay_or_logging():
    clock = VirtualClock()
    overlay = MemoryOverlay()
    app = _app(clock, overlay, [MemorySink()], debug_overlay=False)
    asyncio.run(app.run())
    assert overlay.shown == [] and overlay.cleared == 0

    quiet = build(
        {"vehicle": "car"}, query=None, camera_host=RecordingCamera(), control=ScriptedControl(), use_logging=False
    )
    assert quiet.recorder is None
    assert isinstance(quiet.follower.hooks, NoopHooks)


def test_constraints_reach_the_camera():
    app = build(
        {"constraints": {"max_bounds": (0, 0, 1, 1), "max_zoom": 12}},
        query=None,
        camera_host=RecordingCamera(),
        control=ScriptedControl(),
    )
    assert app.camera.constraints.max_zoom == 12
    assert app.camera.constraints.max_bounds.east == 1


def test_grid_demo_runs():
    assert len(grid_network(blocks=2)) == 12
    res = run(duration_s=30.0)
    assert res.outcome == "completed"
    assert res.segments >= 2
    assert res.fallback is None
