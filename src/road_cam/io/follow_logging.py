# io/follow_logging.py
import json
import logging
import sys
from dataclasses import asdict

from road_cam.io.recorder import Recorder
from road_cam.sim.hooks import NoopHooks


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _default_json_logger(name="road_cam", level="INFO"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(_JsonFormatter())
        logger.addHandler(h)
    logger.setLevel(level)
    return logger


class FollowLogging(NoopHooks):
    """
    One place to shape and emit structured logs for a follow run, and to forward
    its domain events to the recorder.
    """

    def __init__(
        self,
        run_id: str = "local",
        level: str = "INFO",
        debug: bool = False,
        sample_every: int = 30,
        logger: logging.Logger | None = None,
        recorder: Recorder | None = None,
    ):
        self.run_id, self.debug, self.sample_every = run_id, debug, max(1, sample_every)
        self.recorder = recorder
        self.log = logger or _default_json_logger(level=level)

    # --------------- Helpers -----------------------------

    def _emit(self, level: str, msg: str, **extra):
        self.log.log(getattr(logging, level), msg, extra={"extra": {"run_id": self.run_id, **extra}})

    def _biz(self, ev):
        if self.recorder:
            self.recorder.emit(ev)

    # --------------------------------------------------------

    def run_start(self, ev):
        self._emit("INFO", "run_start", **asdict(ev))
        self._biz(ev)

    def run_end(self, ev):
        self._emit("INFO", "run_end", **asdict(ev))
        self._biz(ev)

    def segment(self, ev):
        data = asdict(ev)
        data.pop("coords", None)  # geometry goes to the recorder only
        self._emit("INFO", "segment", **data)
        self._biz(ev)

    def fallback(self, ev):
        self._emit("WARNING", "fallback", **asdict(ev))
        self._biz(ev)

    def step(self, *, t, index, total, zoom, duration_ms):
        if self.debug and total % self.sample_every == 0:
            self._emit("DEBUG", "step", t=t, index=index, total=total, zoom=zoom, duration_ms=duration_ms)

    def error(self, *, reason: str, exc: BaseException | None = None, **extra):
        level = extra.pop("level", "ERROR")
        self._emit(level, "error", reason=reason, error=str(exc) if exc else None, **extra)
