"""
Reflector Protocol Module - Binary Probe Protocol
=================================================

Binary encoding/decoding for the probe (PING) and reply (PONG) frames
exchanged with the session reflector.

PING FORMAT (9 bytes, client → reflector):
    [0]     uint8   message_type (0x01)
    [1-8]   uint64  sent        (local monotonic ms)

PONG FORMAT (17 bytes, reflector → client):
    [0]     uint8   message_type (0x02)
    [1-8]   uint64  sent        (echo of the PING value)
    [9-16]  uint64  raw_time    (reflector monotonic ms at receipt)

The two clocks are independent: `sent` is only comparable with other
local readings, `raw_time` only with other reflector readings.
"""

import math
import struct
import time
from dataclasses import dataclass
from enum import IntEnum


# =================
# CONSTANTS
# =================

class MessageType(IntEnum):
    """Message type identifiers (first byte of every message)."""
    PING = 0x01
    PONG = 0x02


PING_FORMAT = '<BQ'     # type + sent = 9 bytes
PING_SIZE = 9

PONG_FORMAT = '<BQQ'    # type + sent + raw_time = 17 bytes
PONG_SIZE = 17


# ===================
# UTILITY FUNCTIONS
# ===================

def monotonic_ms() -> float:
    """Local monotonic clock in milliseconds (unaffected by wall-clock steps)."""
    return time.perf_counter() * 1000.0


def current_time_ms() -> int:
    """Current time in milliseconds since Unix epoch."""
    return int(time.time() * 1000)


# =================
# DATA CLASSES
# =================

@dataclass
class Probe:
    """Outbound probe (PING)."""
    sent: int  # Local monotonic send time in ms

    @classmethod
    def now(cls, clock=monotonic_ms) -> 'Probe':
        """Build a probe stamped with the current (floored) local time."""
        return cls(sent=math.floor(clock()))

    def encode(self) -> bytes:
        return struct.pack(PING_FORMAT, MessageType.PING, self.sent)

    @classmethod
    def decode(cls, data: bytes) -> 'Probe':
        if len(data) < PING_SIZE:
            raise ValueError(f"Too short for PING: {len(data)} < {PING_SIZE} bytes")
        if data[0] != MessageType.PING:
            raise ValueError(f"Expected PING (0x01), got 0x{data[0]:02x}")
        values = struct.unpack(PING_FORMAT, data[:PING_SIZE])
        return cls(sent=values[1])

    def to_dict(self) -> dict:
        return {"sent": self.sent}


@dataclass
class ProbeReply:
    """Reflector reply (PONG).

    `sent` is echoed unchanged from the probe; `raw_time` is the reflector's
    own clock reading when it handled the probe.
    """
    sent: int
    raw_time: int

    def encode(self) -> bytes:
        return struct.pack(PONG_FORMAT, MessageType.PONG, self.sent, self.raw_time)

    @classmethod
    def decode(cls, data: bytes) -> 'ProbeReply':
        if len(data) < PONG_SIZE:
            raise ValueError(f"Too short for PONG: {len(data)} < {PONG_SIZE} bytes")
        if data[0] != MessageType.PONG:
            raise ValueError(f"Expected PONG (0x02), got 0x{data[0]:02x}")
        values = struct.unpack(PONG_FORMAT, data[:PONG_SIZE])
        return cls(sent=values[1], raw_time=values[2])

    @classmethod
    def from_dict(cls, data: dict) -> 'ProbeReply':
        """Build a reply from its JSON form ``{"sent": ..., "rawTime": ...}``."""
        try:
            return cls(sent=int(data["sent"]), raw_time=int(data["rawTime"]))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed reply: {data!r}") from e

    def to_dict(self) -> dict:
        return {"sent": self.sent, "rawTime": self.raw_time}
