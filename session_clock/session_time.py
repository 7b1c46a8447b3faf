"""
Session Time
============

Consumer-side conversions built on the estimator's offset.

    reflector_now = local_monotonic_now + offset
    wall_clock_at_reflector_zero = wall_now - reflector_now

The second value is stable for the life of a session (it only moves when
the offset estimate moves), which makes it a convenient number to hand to
anything that wants to stamp events in session time using its own wall
clock.
"""

import math
from typing import Callable, Optional, TYPE_CHECKING

from .reflector_protocol import current_time_ms, monotonic_ms

if TYPE_CHECKING:
    from .offset_estimator import SessionOffsetEstimator


class SessionTime:
    """Translate local timestamps into the reflector's time base.

    Args:
        estimator:  Source of the current offset.
        perf_clock: Local monotonic clock (ms); must match the estimator's.
        wall_clock: Wall clock (ms since epoch).
    """

    def __init__(
        self,
        estimator: 'SessionOffsetEstimator',
        perf_clock: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], float] = current_time_ms,
    ):
        self._estimator = estimator
        self._perf_clock = perf_clock
        self._wall_clock = wall_clock

    def to_reflector_time(self, local_ms: float) -> Optional[float]:
        """Map a local monotonic timestamp to reflector time."""
        offset = self._estimator.get_offset_estimate()
        if offset is None:
            return None
        return local_ms + offset

    def reflector_now(self) -> Optional[float]:
        return self.to_reflector_time(self._perf_clock())

    def wall_clock_at_reflector_zero(self) -> Optional[int]:
        """Local wall-clock time (ms) at which the reflector's raw time was zero.

        None while no usable offset exists.
        """
        if not self._estimator.get_offset_estimate():
            return None
        reflector_now = self.reflector_now()
        return math.floor(self._wall_clock() - reflector_now)
