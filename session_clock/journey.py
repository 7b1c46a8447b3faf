"""
Journey Estimates
=================

Minimum one-way latency tracking for one direction of the probe path
(outbound: local → reflector, inbound: reflector → local).

Update policy ("creep and correct"):
    - any sample below the current ceiling replaces the estimate at once
    - the ceiling itself creeps upward at `bias` ms per elapsed ms
      (0.0002 = 0.2 ms/s = 12 ms/min), so a genuine, lasting increase in
      latency is eventually accepted without keeping a sample history
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_CREEP_BIAS = 0.0002  # 12ms/min


@dataclass
class DirectionEstimate:
    """Latency estimate for one direction.

    Attributes:
        estimate:         Tracked minimum one-way delay (ms), None until first sample.
        last_update_time: Local monotonic time (ms) the estimate was last replaced.
    """
    estimate: Optional[float] = None
    last_update_time: float = 0.0

    @property
    def empty(self) -> bool:
        return self.estimate is None

    def ceiling(self, now: float, bias: float = DEFAULT_CREEP_BIAS) -> Optional[float]:
        """Estimate inflated by the creep allowance accumulated since last update."""
        if self.estimate is None:
            return None
        return self.estimate + (now - self.last_update_time) * bias

    def excess(self, sample: float) -> float:
        """How far `sample` sits above the tracked estimate."""
        return sample - self.estimate


def creep_and_correct(
    record: DirectionEstimate,
    sample: float,
    now: float,
    bias: float = DEFAULT_CREEP_BIAS,
) -> bool:
    """Offer a fresh one-way delay sample to `record`.

    Args:
        record: Direction being tracked (mutated on replace).
        sample: Observed one-way delay (ms). May be negative across clocks.
        now:    Local monotonic time (ms).
        bias:   Allowed upward creep in ms per elapsed ms.

    Returns:
        True if the sample replaced the estimate.
    """
    replace = record.estimate is None
    if not replace:
        # immediately act on any lower value
        replace = sample < record.ceiling(now, bias)
    if replace:
        record.estimate = sample
        record.last_update_time = now
    return replace
