from __future__ import annotations

import time


class Clock:
    """Millisecond time source used for timeouts and trajectory phase.

    Must be monotonic; wall-clock adjustments would corrupt both.
    """

    def now_millis(self) -> float:
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class MonotonicClock(Clock):
    def now_millis(self) -> float:
        return time.monotonic() * 1000.0

    def sleep(self, seconds: float) -> None:
        time.sleep(max(0.0, float(seconds)))
