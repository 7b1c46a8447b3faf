import math

import pytest

from session_clock.reflector_protocol import ProbeReply


class FakeClock:
    """Manually advanced local monotonic clock (ms)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


class FakeHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Records call_later requests; fires them on demand."""

    def __init__(self):
        self.handles: list[FakeHandle] = []

    def call_later(self, delay, callback):
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    @property
    def delays_ms(self) -> list[float]:
        return [round(h.delay * 1000) for h in self.handles]

    def fire_next(self):
        handle = self.pending[0]
        handle.cancelled = True
        handle.callback()


class FakeTransport:
    """In-memory transport that simulates a reflector path.

    Each probe can be answered through `reply_to`, which advances the fake
    clock by the one-way delays and stamps the reflector's raw time.
    """

    def __init__(self, clock: FakeClock, out_delay=20, in_delay=30, offset=500):
        self.clock = clock
        self.out_delay = out_delay
        self.in_delay = in_delay
        self.offset = offset
        self.connected = True
        self.sent = []
        self.handler = None
        self.register_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    def send_probe(self, probe):
        self.sent.append(probe)

    def register_reply_handler(self, handler):
        self.handler = handler
        self.register_calls += 1

    def round_trip(self, raw_shift=0):
        """Send-and-reply one probe at the current clock time."""
        sent = math.floor(self.clock())
        self.clock.advance(self.out_delay)
        raw = math.floor(self.clock()) + self.offset + raw_shift
        self.clock.advance(self.in_delay)
        self.handler(ProbeReply(sent=sent, raw_time=raw))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def transport(clock):
    return FakeTransport(clock)


@pytest.fixture
def make_transport(clock):
    def factory(**kwargs):
        return FakeTransport(clock, **kwargs)
    return factory
