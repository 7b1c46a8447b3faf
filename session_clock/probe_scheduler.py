"""
Probe Scheduler
===============

Repeating timer that fires one probe per tick. The interval to the next
tick is asked for after every tick, so the cadence can adapt (fast while
the estimator converges, slower once it is steady).
"""

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# call_later(delay_seconds, callback) -> handle with .cancel()
CallLater = Callable[[float, Callable[[], None]], Any]


class ProbeScheduler:
    """Start/stop lifecycle around a self-rescheduling probe timer.

    Args:
        send:        Called once per tick to emit a probe. Must not block.
        interval_fn: Returns the delay (ms) until the next tick.
        call_later:  Timer primitive; defaults to the running asyncio loop's.
    """

    def __init__(
        self,
        send: Callable[[], None],
        interval_fn: Callable[[], float],
        call_later: Optional[CallLater] = None,
    ):
        self._send = send
        self._interval_fn = interval_fn
        self._call_later = call_later
        self._handle = None
        self._active = False
        self.last_interval_ms: Optional[float] = None
        self.ticks: int = 0

    @property
    def active(self) -> bool:
        return self._active

    def start(self):
        """Send one probe immediately and keep rescheduling until stopped."""
        if self._active:
            return
        if self._call_later is None:
            self._call_later = asyncio.get_running_loop().call_later
        self._active = True
        self._tick()

    def stop(self):
        """Cancel the pending tick. Safe to call more than once."""
        self._active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self):
        if not self._active:
            return
        self.ticks += 1
        try:
            self._send()
        except Exception as e:
            logger.error(f"Probe send error: {e}")

        # send() may have shut us down
        if not self._active:
            return
        delay_ms = self._interval_fn()
        self.last_interval_ms = delay_ms
        self._handle = self._call_later(delay_ms / 1000.0, self._tick)
