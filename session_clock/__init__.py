"""
Session Clock Package
=====================

Client-side estimator of the offset between a session reflector's raw
clock and the local monotonic clock.

Modules:
    reflector_protocol - Binary PING/PONG encoding/decoding
    journey            - Per-direction minimum latency tracking
    probe_scheduler    - Adaptive repeating probe timer
    offset_estimator   - Offset calculation and anomaly reset
    session_time       - Local → reflector time conversions
    stats              - Probe statistics tracking
    client             - WebSocket reflector transport
"""

from .reflector_protocol import (
    MessageType,
    Probe,
    ProbeReply,
    current_time_ms,
    monotonic_ms,
)
from .journey import DirectionEstimate, creep_and_correct
from .probe_scheduler import ProbeScheduler
from .offset_estimator import (
    EstimatorConfig,
    EstimatorState,
    ResetRecord,
    SessionOffsetEstimator,
    Transport,
)
from .session_time import SessionTime
from .stats import ProbeStats
from .client import ReflectorClient

__all__ = [
    "MessageType",
    "Probe",
    "ProbeReply",
    "current_time_ms",
    "monotonic_ms",
    "DirectionEstimate",
    "creep_and_correct",
    "ProbeScheduler",
    "EstimatorConfig",
    "EstimatorState",
    "ResetRecord",
    "SessionOffsetEstimator",
    "Transport",
    "SessionTime",
    "ProbeStats",
    "ReflectorClient",
]
