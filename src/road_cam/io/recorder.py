# io/recorder.py
import json
import logging
import queue
import sys
import threading
from dataclasses import asdict
from typing import Protocol

from road_cam.app.events import SegmentFollowed
from road_cam.app.protocols import DebugOverlay
from road_cam.domain.mechanics.mechanics_geometry import path_length_km

log = logging.getLogger(__name__)


class Sink(Protocol):
    def write(self, ev) -> None: ...


class JsonlSink:
    def __init__(self, fp=None):
        self.fp = fp if fp is not None else sys.stdout

    def write(self, ev) -> None:
        self.fp.write(json.dumps({"event": type(ev).__name__, **asdict(ev)}) + "\n")


class MemorySink:
    def __init__(self):
        self.events: list = []

    def write(self, ev) -> None:
        self.events.append(ev)

    def of_type(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]


class OverlaySink:
    """Keeps the followed segments as a GeoJSON FeatureCollection on a debug overlay."""

    def __init__(self, overlay: DebugOverlay):
        self.overlay = overlay
        self.features: list[dict] = []

    def write(self, ev) -> None:
        if not isinstance(ev, SegmentFollowed):
            return
        self.features.append(
            {
                "type": "Feature",
                "properties": {
                    "name": ev.name or "unnamed",
                    "ref": ev.ref or "",
                    "class": ev.road_class or "road",
                    "segmentNum": ev.segment_num,
                    "source": ev.source,
                    "reversed": ev.reversed,
                    "bearingDiff": round(ev.bearing_delta, 1),
                    "distanceM": round(ev.distance_m, 1),
                    "score": None if ev.score is None else round(ev.score, 1),
                    "numPoints": ev.points,
                    "lengthKm": round(path_length_km(ev.coords), 3),
                    "roadId": ev.segment_id,
                    "synthetic": ev.synthetic,
                    "timestampMs": round(ev.t),
                },
                "geometry": {"type": "LineString", "coordinates": [list(c) for c in ev.coords]},
            }
        )
        self.overlay.show(self.feature_collection())

    def feature_collection(self) -> dict:
        return {"type": "FeatureCollection", "features": list(self.features)}


# Async sink (non-blocking, drops on overflow)
class AsyncSink:
    def __init__(self, sink: Sink, maxsize: int = 10000):
        self.sink, self.q = sink, queue.Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._t = threading.Thread(target=self._run, daemon=True)
        self._t.start()
        self.dropped = 0

    def write(self, ev) -> None:
        try:
            self.q.put_nowait(ev)
        except queue.Full:
            self.dropped += 1  # never block the camera loop

    def _run(self):
        while not (self._stop.is_set() and self.q.empty()):
            try:
                ev = self.q.get(timeout=0.05)
            except queue.Empty:
                continue
            try:
                self.sink.write(ev)
            except Exception:
                log.warning("async sink write failed", exc_info=True)
            finally:
                self.q.task_done()

    def flush(self) -> None:
        self.q.join()

    def stop(self):
        self._stop.set()
        self._t.join(timeout=1.0)


class Recorder:
    def __init__(self, *sinks: Sink):
        self.sinks = sinks or (JsonlSink(),)

    def emit(self, ev):
        for s in self.sinks:
            try:
                s.write(ev)
            except Exception:
                # never break the run over telemetry
                log.warning("sink %s failed on %s", type(s).__name__, type(ev).__name__, exc_info=True)

    def flush(self) -> None:
        for s in self.sinks:
            if isinstance(s, AsyncSink):
                s.flush()
