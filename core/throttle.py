"""
core/throttle.py

Minimum-interval gate for the supervising loop.

The clock is injectable so tests can drive the loop with fake time.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

Clock = Callable[[], float]


# Absorbs float error in timestamp arithmetic (e.g. 0.4 - 0.3 < 0.1).
TOLERANCE = 1e-6


class Throttle:
    """
    Allows at most `target_fps` executions per second.

    ready() returns True when the time since the last *executed* iteration
    is at least 1 / target_fps. Skipped ticks do not move the reference
    point. target_fps <= 0 disables throttling.
    """

    def __init__(self, target_fps: float, clock: Clock = time.perf_counter) -> None:
        self.target_fps = float(target_fps)
        self.min_interval = 1.0 / self.target_fps if self.target_fps > 0 else 0.0
        self._clock = clock
        self._last: Optional[float] = None

    def ready(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = self._clock()
        if self._last is not None and (now - self._last) < self.min_interval - TOLERANCE:
            return False
        self._last = now
        return True

    def reset(self) -> None:
        self._last = None
