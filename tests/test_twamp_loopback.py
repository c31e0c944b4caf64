# tests/test_twamp_loopback.py
import errno
import struct

import pytest

from pathprobe.brain.runner import SessionRunner
from pathprobe.config import Settings
from pathprobe.errors import SessionUnreachable
from pathprobe.profile import AddressFamily, Profile, TrafficClass
from pathprobe.prober.reflector import TwampReflector
from pathprobe.prober.twamp import (REPLY_LEN, TEST_LEN, TwampLightProber, ntp_now, ntp_to_ns,
                                    pack_reply, pack_test, unpack_reply, unpack_test)
from pathprobe.results import Target


@pytest.fixture
def reflector():
    r = TwampReflector("127.0.0.1", 0)
    r.start()
    yield r
    r.stop()
    r.join(timeout=2.0)


def test_test_packet_layout():
    pkt = pack_test(7, 100)
    assert len(pkt) == TEST_LEN + 100
    seq, sec, _frac, err = unpack_test(pkt)
    assert seq == 7
    assert sec > 2208988800
    assert err == 1
    with pytest.raises(ValueError):
        unpack_test(b"\x00" * 5)


def test_reply_echoes_sender_sequence_and_pads():
    request = pack_test(42, 200)
    reply = pack_reply(3, request, ntp_now())
    assert len(reply) == len(request)
    sseq, residence = unpack_reply(reply)
    assert sseq == 42
    assert residence >= 0
    short = pack_reply(0, pack_test(1, 0), ntp_now())
    assert len(short) == REPLY_LEN
    with pytest.raises(ValueError):
        unpack_reply(short[:20])


def test_ntp_conversion():
    assert ntp_to_ns(2208988800, 0) == 0
    assert ntp_to_ns(2208988801, 1 << 31) == 1_500_000_000
    assert struct.calcsize("!L 2I H") == 14


def test_session_against_loopback_reflector(reflector):
    runner = SessionRunner(TwampLightProber(), Settings(probe_timeout_s=1.0))
    profile = Profile(count=5, interval_s=0.01, payload_size=50, traffic_class=TrafficClass.EF)
    res = runner.run(profile, Target("127.0.0.1", reflector.port))
    assert len(res) == 5
    assert [o.seq for o in res.outcomes] == [0, 1, 2, 3, 4]
    assert res.summary.received == 5
    assert all(o.rtt_ns > 0 for o in res.outcomes)
    assert res.late_replies == 0


def test_unresolvable_target_is_unreachable():
    with pytest.raises(SessionUnreachable):
        TwampLightProber().open(Target("no-such-host.invalid"), Profile(count=1, interval_s=0.01))


def test_ipv4_literal_cannot_open_an_ipv6_session():
    with pytest.raises(SessionUnreachable):
        TwampLightProber().open(Target("127.0.0.1"),
                                Profile(count=1, interval_s=0.01, family=AddressFamily.V6))


def test_socket_option_failure_is_reported_as_unreachable(monkeypatch):
    def refuse(self, sock, af, profile):
        raise PermissionError(errno.EPERM, "Operation not permitted")

    monkeypatch.setattr(TwampLightProber, "_mark", refuse)
    with pytest.raises(SessionUnreachable) as exc:
        TwampLightProber().open(Target("127.0.0.1", 9), Profile(count=1, interval_s=0.01))
    assert "socket setup failed" in str(exc.value)
