"""
Session Offset Estimator
========================

Keeps a best guess of how far the reflector's raw clock is ahead of the
local monotonic clock, from PING/PONG exchanges over a live connection.

Offset convention:
    offset = reflector_time - local_time
    reflector_time = local_time + offset

Each reply gives one outbound sample (raw_time - sent) and one inbound
sample (now - raw_time). Both are cross-clock, so they carry the offset
as well as the delay. They are tracked separately as minimum journey
estimates (see `journey.py`). The offset is only recomputed when one of
the two estimates was refreshed, after removing whatever part of each
sample lies above its tracked minimum.

If the round trip implied by that correction goes clearly negative, one
of the clocks has jumped; all tracked state is dropped and fast probing
restarts.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional, Protocol

from .journey import DEFAULT_CREEP_BIAS, DirectionEstimate, creep_and_correct
from .probe_scheduler import CallLater, ProbeScheduler
from .reflector_protocol import Probe, ProbeReply, monotonic_ms
from .stats import ProbeStats

logger = logging.getLogger(__name__)


# =================
# CONFIGURATION
# =================

@dataclass
class EstimatorConfig:
    """Estimator tunables. Times in ms."""
    fast_interval_ms: float = 150.0
    slow_interval_ms: float = 300.0
    fast_probe_count: int = 30
    creep_bias: float = DEFAULT_CREEP_BIAS
    reset_threshold_ms: float = -2.0   # a ms or two can happen due to legitimate drift
    report_threshold_ms: float = 1.0   # changes this small may be rounding
    offline_offset: int = 1


# =================
# STATE
# =================

@dataclass
class ResetRecord:
    """Snapshot of the calculation that triggered an anomaly reset."""
    round_trip: float
    excess_outbound: float
    excess_inbound: float
    implied_min_round_trip: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EstimatorState:
    """Everything the estimator learns about one session."""
    outbound: DirectionEstimate = field(default_factory=DirectionEstimate)
    inbound: DirectionEstimate = field(default_factory=DirectionEstimate)
    offset_estimate: Optional[int] = None
    min_round_trip: float = 0.0
    pings_processed: int = 0
    last_reported_offset: Optional[int] = None
    reset_trigger: Optional[ResetRecord] = None

    def reset(self):
        """Back to startup state. Reporting and trigger mailbox survive."""
        self.outbound = DirectionEstimate()
        self.inbound = DirectionEstimate()
        self.offset_estimate = None
        self.pings_processed = 0


class Transport(Protocol):
    """Connection the estimator probes through. Owned by the session."""

    @property
    def is_connected(self) -> bool: ...

    def send_probe(self, probe: Probe) -> None: ...

    def register_reply_handler(self, handler: Callable[[ProbeReply], None]) -> None: ...


# =================
# ESTIMATOR
# =================

class SessionOffsetEstimator:
    """Reflector-minus-local clock offset estimator for one session.

    In offline mode nothing is probed and no state exists; the offset is
    fixed at `config.offline_offset`, so reflector time marches in step
    with the local clock.

    Args:
        transport:          Connection to probe through (ignored when offline).
        offline:            Run without a reflector.
        config:             Tunables; defaults match the production cadence.
        clock:              Local monotonic clock in ms.
        call_later:         Timer primitive handed to the probe scheduler.
        on_offset_updated:  Called with the offset after every accepted recalculation.
        on_offset_reported: Called only when the offset moved by more than the
                            report threshold (or is the first since a reset).
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        *,
        offline: bool = False,
        config: Optional[EstimatorConfig] = None,
        clock: Callable[[], float] = monotonic_ms,
        call_later: Optional[CallLater] = None,
        on_offset_updated: Optional[Callable[[int], None]] = None,
        on_offset_reported: Optional[Callable[[int], None]] = None,
    ):
        self.offline = offline
        self.config = config or EstimatorConfig()
        self.on_offset_updated = on_offset_updated
        self.on_offset_reported = on_offset_reported
        self.stats = ProbeStats()
        self._clock = clock
        self._transport: Optional[Transport] = None
        self._state: Optional[EstimatorState] = None
        self._scheduler: Optional[ProbeScheduler] = None

        if offline:
            return

        if transport is None:
            raise ValueError("An online estimator needs a transport")
        self._transport = transport
        self._state = EstimatorState()
        self._scheduler = ProbeScheduler(self._send_probe, self.next_interval_ms, call_later)
        transport.register_reply_handler(self.handle_reply)

    # ---- Public accessors ----------------------------------------------------

    @property
    def state(self) -> Optional[EstimatorState]:
        return self._state

    @property
    def alive(self) -> bool:
        return self._transport is not None

    @property
    def offset_estimate(self) -> Optional[int]:
        return self._state.offset_estimate if self._state else None

    @property
    def min_round_trip(self) -> float:
        return self._state.min_round_trip if self._state else 0.0

    @property
    def pings_processed(self) -> int:
        return self._state.pings_processed if self._state else 0

    @property
    def scheduler(self) -> Optional[ProbeScheduler]:
        return self._scheduler

    def get_offset_estimate(self) -> Optional[int]:
        """Reflector-minus-local offset (ms); None until the first calculation."""
        if self.offline:
            return self.config.offline_offset
        return self._state.offset_estimate

    def fetch_and_clear_reset_trigger(self) -> Optional[ResetRecord]:
        """Return the pending reset record (if any) and clear it."""
        if self._state is None:
            return None
        trigger = self._state.reset_trigger
        self._state.reset_trigger = None
        return trigger

    # ---- Lifecycle -----------------------------------------------------------

    def start(self):
        """Begin probing: one probe now, then on the adaptive cadence."""
        if self.offline or not self.alive:
            return
        self._scheduler.start()

    def shut_down(self):
        """Detach from the session. Pending timers stop without sending."""
        self._transport = None
        if self._scheduler:
            self._scheduler.stop()

    def init_reflector_offsets(self):
        """Forget both journey estimates and the offset; restart fast probing."""
        if self._state is None:
            return
        self._state.reset()

    def next_interval_ms(self) -> float:
        """Fast cadence until enough replies have produced an estimate."""
        if self.pings_processed < self.config.fast_probe_count:
            return self.config.fast_interval_ms
        return self.config.slow_interval_ms

    # ---- Probing -------------------------------------------------------------

    def _send_probe(self):
        transport = self._transport
        if transport is None:
            self._scheduler.stop()
            return
        # only actually send while there is a connection; keep ticking regardless
        if not transport.is_connected:
            return
        transport.send_probe(Probe.now(self._clock))
        self.stats.probes_sent += 1

    def handle_reply(self, reply: ProbeReply):
        """Reply handler registered with the transport."""
        if not self.alive:
            return
        now = math.floor(self._clock())
        self.stats.replies_received += 1
        self.on_probe_reply(reply.sent, reply.raw_time, now)

    # ---- Offset calculation --------------------------------------------------

    def on_probe_reply(self, sent: float, reflector_raw: float, now: float) -> Optional[int]:
        """Fold one (sent, raw_time, received) triple into the estimate.

        Returns:
            The new offset if it was recalculated, otherwise None (nothing
            new was learned, or the calculation triggered a reset).
        """
        state = self._state
        if state is None:
            return None

        outbound = reflector_raw - sent
        inbound = now - reflector_raw
        bias = self.config.creep_bias
        outbound_replaced = creep_and_correct(state.outbound, outbound, now, bias)
        inbound_replaced = creep_and_correct(state.inbound, inbound, now, bias)

        # only recalculate on a fresh estimate for one or the other (or both)
        if not outbound_replaced and not inbound_replaced:
            return None

        excess_outbound = 0 if outbound_replaced else state.outbound.excess(outbound)
        adjusted_reflector_received = reflector_raw - excess_outbound

        excess_inbound = 0 if inbound_replaced else state.inbound.excess(inbound)
        adjusted_local_received = now - excess_inbound

        round_trip = now - sent
        implied_min_round_trip = round_trip - excess_outbound - excess_inbound
        self.stats.record_round_trip(round_trip)

        if implied_min_round_trip < self.config.reset_threshold_ms:
            self._reset(ResetRecord(
                round_trip=round_trip,
                excess_outbound=excess_outbound,
                excess_inbound=excess_inbound,
                implied_min_round_trip=implied_min_round_trip,
            ))
            return None

        reflector_ahead = _round_half_up(
            (adjusted_reflector_received + reflector_raw) / 2
            - (sent + adjusted_local_received) / 2
        )

        first = state.offset_estimate is None or state.last_reported_offset is None
        state.offset_estimate = reflector_ahead
        state.pings_processed += 1
        state.min_round_trip = implied_min_round_trip
        self.stats.record_offset(reflector_ahead)

        logger.debug(
            f"Offset recalculated: ahead={reflector_ahead}ms "
            f"excess_out={excess_outbound:.1f}ms excess_in={excess_inbound:.1f}ms "
            f"min_rtt={implied_min_round_trip:.1f}ms (#{state.pings_processed})"
        )

        # don't report if it could be just a rounding error
        if first or abs(reflector_ahead - state.last_reported_offset) > self.config.report_threshold_ms:
            state.last_reported_offset = reflector_ahead
            logger.info(
                f"Reflector ahead by {reflector_ahead}ms "
                f"(excess out={excess_outbound:.1f}ms in={excess_inbound:.1f}ms)"
            )
            self._notify(self.on_offset_reported, reflector_ahead)

        self._notify(self.on_offset_updated, reflector_ahead)
        return reflector_ahead

    def _reset(self, record: ResetRecord):
        logger.warning(
            f"Resetting reflector offset: rtt={record.round_trip}ms "
            f"excess_out={record.excess_outbound}ms excess_in={record.excess_inbound}ms "
            f"implied_min_rtt={record.implied_min_round_trip}ms"
        )
        self._state.reset_trigger = record
        self.stats.resets += 1
        self.init_reflector_offsets()

    @staticmethod
    def _notify(callback: Optional[Callable[[int], None]], offset: int):
        if callback is None:
            return
        try:
            callback(offset)
        except Exception as e:
            logger.error(f"Offset callback error: {e}")


def _round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +inf (not banker's rounding)."""
    return math.floor(value + 0.5)
