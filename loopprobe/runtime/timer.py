"""Wall-clock timer with whole-second resolution."""

import math
import time
from typing import Callable


def _wall_seconds() -> float:
    return float(math.floor(time.time()))


class Timer:
    """
    Measures elapsed host time between construction (or reset) and stop().

    Resolution is one second: sub-second blocks usually report 0.
    """

    def __init__(self, clock: Callable[[], float] = _wall_seconds):
        self._clock = clock
        self.start = clock()
        self.end = self.start

    def stop(self) -> float:
        """Capture the end time and return seconds elapsed since start."""
        self.end = self._clock()
        # Wall clock may step backwards (NTP); never report negative time.
        return max(0.0, self.end - self.start)

    def reset(self) -> None:
        self.start = self._clock()
        self.end = self.start
