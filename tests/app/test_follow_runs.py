import asyncio

import pytest

from road_cam.app.camera import CameraMover
from road_cam.app.controllers.follow import MIN_STEP_MS, PathFollower, step_duration_ms
from road_cam.app.events import FallbackEngaged, RunFinished, RunStarted, SegmentFollowed
from road_cam.config.models import ChainingModel, VehicleProfileModel
from road_cam.domain.entities.geography import RoadSegment, SourceLayer
from road_cam.domain.mechanics.mechanics_resamplers import UniformResampler
from road_cam.errors import FollowCancelled, NoDataError
from road_cam.io.memory_backends import (
    FlatElevation,
    InMemoryFeatureIndex,
    MemoryOverlay,
    RecordingCamera,
    ScriptedControl,
)
from road_cam.sim.clock import VirtualClock
from road_cam.sim.hooks import NoopHooks

START = (0.0002, -0.00005)


def road(sid, coords, cls="primary", ref="A1"):
    return RoadSegment(sid, coords, {"class": cls, "ref": ref})


CHAIN = [
    road("a", [(0.0, 0.0), (0.001, 0.0)]),
    road("b", [(0.001, 0.0), (0.002, 0.0)]),
    road("c", [(0.002, 0.0), (0.003, 0.0)]),
]

# ---------- Trace helper ----------


class Trace(NoopHooks):
    def __init__(self):
        self.events = []
        self.steps = 0
        self.errors = []

    def run_start(self, ev):
        self.events.append(ev)

    def run_end(self, ev):
        self.events.append(ev)

    def segment(self, ev):
        self.events.append(ev)

    def fallback(self, ev):
        self.events.append(ev)

    def step(self, **kw):
        self.steps += 1

    def error(self, *, reason, exc=None, **kw):
        self.errors.append(reason)

    def of(self, cls):
        return [e for e in self.events if isinstance(e, cls)]


# ---------- Builders ----------


def make_follower(
    query,
    *,
    terrain=FlatElevation(100.0),
    clock=None,
    control=None,
    chaining=None,
    overlay=None,
    **profile_kw,
):
    clock = clock or VirtualClock()
    host = RecordingCamera((0.0002, -0.00005), bearing=90.0, clock=clock)
    control = control or ScriptedControl()
    profile_kw.setdefault("speed_kmh", 30.0)
    profile_kw.setdefault("zoom", 18.0)
    trace = Trace()
    follower = PathFollower(
        camera=CameraMover(host, terrain=terrain, control=control),
        query=query,
        terrain=terrain,
        control=control,
        clock=clock,
        profile=VehicleProfileModel(name="Test", icon="🧪", **profile_kw),
        resampler=UniformResampler(0.01),
        chaining=chaining or ChainingModel(settle_delay_ms=0),
        overlay=overlay,
        hooks=trace,
    )
    return follower, host, control, trace


def run(follower, duration_ms, **kw):
    return asyncio.run(follower.follow(duration_ms, **kw))


# ---------- Tests ----------


def test_step_duration_is_ground_speed_with_floor():
    assert step_duration_ms((0.0, 0.0), (0.0, 0.0), 50.0) == MIN_STEP_MS
    # 10 m at 30 km/h
    d = step_duration_ms((0.0, 0.0), (0.0, 0.0000899322), 30.0)
    assert abs(d - 1200.0) < 1.0


def test_run_ends_on_duration():
    index = InMemoryFeatureIndex(CHAIN)
    follower, host, control, trace = make_follower(index)
    res = run(follower, 5000.0, start=START, facing_bearing=90.0)

    assert res.outcome == "completed"
    assert res.fallback is None
    assert res.segments == 1
    assert control.statuses[-1] == "✅ Test complete!"
    assert index.released

    # tilt first, then settle on the first point facing along the road
    (tilt, tilt_ms), (pos, pos_ms) = host.transitions[:2]
    assert tilt.pitch == 60.0 and tilt.center is None and tilt_ms == 1000.0
    assert pos.center == (0.0, 0.0) and abs(pos.bearing - 90.0) < 1e-6 and pos_ms == 2000.0

    # elevation-following zoom: 18 - 0.1 km * 1.5
    assert abs(host.transitions[-1][0].zoom - 17.85) < 1e-9
    assert len(trace.of(RunStarted)) == 1 and len(trace.of(RunFinished)) == 1
    assert trace.steps >= 4


def test_chains_then_falls_back_on_dead_end():
    index = InMemoryFeatureIndex(CHAIN)
    follower, _, control, trace = make_follower(index, supports_exploration=False)
    res = run(follower, 600000.0, start=START, facing_bearing=90.0)

    assert res.outcome == "dead_end"
    assert res.segments == 3
    assert res.fallback == "terrain_following"
    assert [e.segment_id for e in trace.of(SegmentFollowed)] == ["a", "b", "c"]
    sources = [e.source for e in trace.of(SegmentFollowed)]
    assert sources == ["seeking_initial", "direct_connection", "direct_connection"]
    (fb,) = trace.of(FallbackEngaged)
    assert fb.reason == "dead_end" and 0 < fb.remaining_ms < 600000.0
    assert "⚠️ No roads found after 3 segments - using terrain following" in control.statuses
    assert index.detail_level == 18.0


def test_no_road_without_exploration_falls_back_immediately():
    index = InMemoryFeatureIndex([])
    follower, _, control, trace = make_follower(index, supports_exploration=False)
    res = run(follower, 8000.0, start=START, facing_bearing=90.0)

    assert res.outcome == "fallback"
    assert res.segments == 0
    assert res.fallback == "terrain_following"
    (fb,) = trace.of(FallbackEngaged)
    assert fb.reason == "no_road" and fb.remaining_ms == 8000.0
    assert "⚠️ No roads found - using terrain following" in control.statuses
    assert not any("complete" in s for s in control.statuses)
    assert index.released


def test_degraded_without_helper_query():
    follower, host, control, trace = make_follower(None, terrain=None)
    res = run(follower, 3600.0)

    assert res.outcome == "fallback"
    assert res.fallback == "orbit"
    assert trace.of(FallbackEngaged)[0].reason == "degraded"
    assert "⚠️ Helper map not available - using terrain following" in control.statuses
    assert len(host.transitions) == 180


def test_broken_helper_is_degraded():
    class Broken(InMemoryFeatureIndex):
        def transport_layers(self):
            raise RuntimeError("no style")

    follower, _, _, trace = make_follower(Broken(CHAIN))
    res = run(follower, 1000.0)
    assert trace.of(FallbackEngaged)[0].reason == "degraded"
    assert "query_context" in trace.errors
    assert res.fallback == "terrain_following"


def test_missing_source_falls_back():
    index = InMemoryFeatureIndex(CHAIN, layers={"waterway": SourceLayer("openmaptiles", "waterway")})
    follower, _, control, trace = make_follower(index)
    res = run(follower, 1000.0)
    assert trace.of(FallbackEngaged)[0].reason == "no_source"
    assert "⚠️ No vector source - using terrain following" in control.statuses
    assert res.segments == 0


def test_cancel_cleans_up_and_frees_camera():
    index = InMemoryFeatureIndex(CHAIN)
    overlay = MemoryOverlay()
    follower, _, _, _ = make_follower(index, control=ScriptedControl(cancel_after=5), overlay=overlay)

    async def scenario():
        with pytest.raises(FollowCancelled):
            await follower.follow(600000.0, start=START, facing_bearing=90.0)
        async with follower.camera.exclusive():
            return True

    assert asyncio.run(scenario())
    assert index.released
    assert index.detail_level == 18.0
    assert overlay.cleared == 1


def test_frozen_clock_runs_to_segment_cap():
    index = InMemoryFeatureIndex(CHAIN)
    clock = VirtualClock(frozen=True)
    follower, _, control, _ = make_follower(
        index, clock=clock, chaining=ChainingModel(settle_delay_ms=0, max_segments=2)
    )
    res = run(follower, 1.0, start=START, facing_bearing=90.0)
    assert res.outcome == "segment_cap"
    assert res.segments == 2
    assert clock.now_ms() == 0.0
    assert control.statuses[-1] == "✅ Test complete!"


def test_synthetic_continuation_keeps_moving():
    index = InMemoryFeatureIndex(CHAIN[:1])
    follower, _, control, trace = make_follower(index)
    res = run(follower, 60000.0, start=START, facing_bearing=90.0)

    assert res.outcome == "completed"
    assert res.synthetic_segments >= 1
    synth = [e for e in trace.of(SegmentFollowed) if e.synthetic]
    assert synth and synth[0].segment_id == "synthetic-1" and synth[0].source == "synthetic"
    assert "🧪 Flying over terrain (no roads)..." in control.statuses


def test_progress_status_every_30_points():
    long_road = [road("long", [(0.0, 0.0), (0.005, 0.0)])]
    follower, _, control, _ = make_follower(InMemoryFeatureIndex(long_road), supports_exploration=False)
    run(follower, 600000.0, start=START, facing_bearing=90.0)
    progress = [s for s in control.statuses if "Following road network:" in s]
    assert progress and progress[0].startswith("🧪 Following road network: ")
    assert progress[0].endswith("(1 segments)")


class LosesSource(InMemoryFeatureIndex):
    """Answers `ok_calls` feature queries, then reports the source gone."""

    def __init__(self, *a, ok_calls=2, **kw):
        super().__init__(*a, **kw)
        self.ok_calls = ok_calls
        self.calls = 0

    def query_features(self, source_id, layer, flt):
        self.calls += 1
        if self.calls > self.ok_calls:
            raise NoDataError("source removed")
        return super().query_features(source_id, layer, flt)


class NoCoarseTiles(InMemoryFeatureIndex):
    async def preload(self, bounds, *, detail_level=None):
        if detail_level is not None and detail_level != 18.0:
            raise RuntimeError("tile server 503")
        await super().preload(bounds, detail_level=detail_level)


def test_source_lost_mid_run_keeps_progress_and_duration():
    index = LosesSource(CHAIN, ok_calls=2)
    follower, _, control, trace = make_follower(index)
    res = run(follower, 60000.0, start=START, facing_bearing=90.0)

    assert res.outcome == "dead_end"
    assert res.segments == 2 and res.points > 0
    assert res.fallback == "terrain_following"
    assert "no_data" in trace.errors
    (fb,) = trace.of(FallbackEngaged)
    assert fb.reason == "dead_end" and 0 < fb.remaining_ms < 60000.0
    # fallback fills the remaining time, plus its 1 s pitch ease
    assert res.elapsed_ms < 61000.0 + 1e-6
    assert "⚠️ No roads found after 2 segments - using terrain following" in control.statuses
    assert index.released


def test_failed_coarser_detail_level_is_skipped():
    index = NoCoarseTiles(CHAIN[:1])
    follower, _, _, trace = make_follower(index, supports_exploration=False)
    res = run(follower, 60000.0, start=START, facing_bearing=90.0)

    assert res.outcome == "dead_end"
    assert res.segments == 1
    assert res.fallback == "terrain_following"
    assert index.detail_level == 18.0
    assert all(level == 18.0 for _, level in index.preloads)
    assert index.released


def test_zero_duration_with_frozen_clock_reports_progress():
    long_road = [road("long", [(0.0, 0.0), (0.005, 0.0)])]
    follower, _, control, _ = make_follower(
        InMemoryFeatureIndex(long_road),
        clock=VirtualClock(frozen=True),
        chaining=ChainingModel(settle_delay_ms=0, max_segments=1),
        supports_exploration=False,
    )
    res = run(follower, 0.0, start=START, facing_bearing=90.0)
    assert res.outcome == "segment_cap"
    assert "🧪 Following road network: 0% (1 segments)" in control.statuses
