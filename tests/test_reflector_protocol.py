import struct

import pytest

from session_clock.reflector_protocol import (
    PING_SIZE,
    PONG_SIZE,
    MessageType,
    Probe,
    ProbeReply,
)


def test_ping_layout():
    data = Probe(sent=123456).encode()
    assert len(data) == PING_SIZE
    assert data[0] == MessageType.PING
    assert struct.unpack('<Q', data[1:9])[0] == 123456
    assert Probe.decode(data) == Probe(sent=123456)


def test_pong_layout():
    data = ProbeReply(sent=1000, raw_time=987654321).encode()
    assert len(data) == PONG_SIZE
    assert data[0] == MessageType.PONG
    assert ProbeReply.decode(data) == ProbeReply(sent=1000, raw_time=987654321)


def test_pong_decode_rejects_short_frame():
    with pytest.raises(ValueError, match="Too short"):
        ProbeReply.decode(b"\x02\x00\x00")


def test_pong_decode_rejects_wrong_type():
    with pytest.raises(ValueError, match="Expected PONG"):
        ProbeReply.decode(Probe(sent=1).encode() + b"\x00" * 8)


def test_probe_now_floors_clock():
    assert Probe.now(lambda: 1234.9).sent == 1234
    assert Probe(sent=5).to_dict() == {"sent": 5}


def test_reply_dict_form():
    reply = ProbeReply.from_dict({"sent": 10, "rawTime": 520})
    assert reply == ProbeReply(sent=10, raw_time=520)
    assert reply.to_dict() == {"sent": 10, "rawTime": 520}
    with pytest.raises(ValueError):
        ProbeReply.from_dict({"sent": 10})
