# sim/hooks.py
from typing import Protocol

from road_cam.app.events import FallbackEngaged, RunFinished, RunStarted, SegmentFollowed


class FollowHooks(Protocol):
    def run_start(self, ev: RunStarted): ...
    def run_end(self, ev: RunFinished): ...
    def segment(self, ev: SegmentFollowed): ...
    def fallback(self, ev: FallbackEngaged): ...
    def step(self, *, t, index, total, zoom, duration_ms): ...
    def error(self, *, reason: str, exc: BaseException | None = None, **kw): ...


class NoopHooks:
    def run_start(self, *_, **__):
        pass

    def run_end(self, *_, **__):
        pass

    def segment(self, *_, **__):
        pass

    def fallback(self, *_, **__):
        pass

    def step(self, *_, **__):
        pass

    def error(self, *_, **__):
        pass
