# sim/clock.py
from __future__ import annotations

import time
from dataclasses import dataclass

SEC = 1000.0


class MonotonicClock:
    """Wall clock in milliseconds; never frozen."""

    def __init__(self):
        self._origin = time.monotonic()

    def now_ms(self) -> float:
        return (time.monotonic() - self._origin) * SEC

    def is_frozen(self) -> bool:
        return False


@dataclass
class VirtualClock:
    """
    Clock advanced explicitly, usually by the camera host as transitions finish.
    A frozen clock stops duration-based termination: whoever froze it (a frame
    recorder, typically) owns the run length.
    """

    t_ms: float = 0.0
    frozen: bool = False

    def now_ms(self) -> float:
        return self.t_ms

    def is_frozen(self) -> bool:
        return self.frozen

    def advance(self, ms: float) -> float:
        if ms < 0:
            raise ValueError(f"cannot advance by negative {ms} ms")
        self.t_ms += ms
        return self.t_ms

    def freeze(self) -> None:
        self.frozen = True

    def unfreeze(self) -> None:
        self.frozen = False
