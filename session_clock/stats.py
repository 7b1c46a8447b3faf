"""
Probe Statistics
================

Tracks round-trip and offset statistics over a sliding window.
"""

from collections import deque


class ProbeStats:
    """Sliding-window probe statistics.

    Args:
        window: Number of recent samples to keep for averaging.
    """

    def __init__(self, window: int = 100):
        self._round_trips: deque[float] = deque(maxlen=window)
        self._offsets: deque[int] = deque(maxlen=window)
        self.probes_sent: int = 0
        self.replies_received: int = 0
        self.recalculations: int = 0
        self.resets: int = 0

    def record_round_trip(self, round_trip_ms: float):
        """Record the raw round trip (local receive - local send), ms."""
        if round_trip_ms >= 0:
            self._round_trips.append(round_trip_ms)

    def record_offset(self, offset_ms: int):
        """Record an accepted offset recalculation, ms."""
        self._offsets.append(offset_ms)
        self.recalculations += 1

    @staticmethod
    def _avg(d: deque) -> float:
        """Average of a deque, or 0.0 if empty."""
        return sum(d) / len(d) if d else 0.0

    @property
    def avg_round_trip_ms(self) -> float:
        return self._avg(self._round_trips)

    @property
    def min_round_trip_ms(self) -> float:
        return min(self._round_trips) if self._round_trips else 0.0

    @property
    def avg_offset_ms(self) -> float:
        return self._avg(self._offsets)

    @property
    def offset_spread_ms(self) -> int:
        """Max - min of the offsets in the window (0 if fewer than two)."""
        if len(self._offsets) < 2:
            return 0
        return max(self._offsets) - min(self._offsets)

    def __str__(self) -> str:
        return (
            f"sent={self.probes_sent} replies={self.replies_received} "
            f"recalc={self.recalculations} resets={self.resets} "
            f"rtt={self.avg_round_trip_ms:.1f}ms (min {self.min_round_trip_ms:.0f}ms) "
            f"offset={self.avg_offset_ms:.1f}ms spread={self.offset_spread_ms}ms"
        )
