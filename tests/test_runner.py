# tests/test_runner.py
import threading

import pytest

from pathprobe.brain.runner import SessionRunner
from pathprobe.brain.state import SessionState
from pathprobe.config import Settings
from pathprobe.errors import InvalidProfile, SessionUnreachable
from pathprobe.profile import Profile
from pathprobe.prober.fake import FakeProber
from pathprobe.results import Target

TARGET = Target("10.0.0.2")


def fast_settings(**kw):
    return Settings(probe_timeout_s=0.05, **kw)


def test_session_returns_one_outcome_per_probe_in_order():
    """N probes give N outcomes with seq 0..N-1 and RTT = recv - send."""
    fake = FakeProber(rtt_s=0.0005)
    runner = SessionRunner(fake, fast_settings())
    res = runner.run(Profile(count=20, interval_s=0.001), TARGET)
    assert len(res) == 20
    assert [o.seq for o in res.outcomes] == list(range(20))
    for o in res.outcomes:
        assert not o.lost
        assert o.rtt_ns == o.recv_ns - o.send_ns
        assert o.rtt_ns == 500_000
    assert res.summary.loss_ratio == 0.0
    assert res.summary.p50 == pytest.approx(500_000)
    assert res.complete
    assert not res.cancelled
    assert fake.channels[0].closed


def test_loss_ratio_is_exact():
    fake = FakeProber(script={3: None, 7: None})
    runner = SessionRunner(fake, fast_settings())
    res = runner.run(Profile(count=10, interval_s=0.001), TARGET)
    sm = res.summary
    assert sm.sent == 10
    assert sm.lost == 2
    assert sm.received == 8
    assert sm.loss_ratio == 0.2
    assert [o.seq for o in res.outcomes if o.lost] == [3, 7]
    assert sm.loss_runs == ((3, 1), (7, 1))


def test_send_failure_is_recorded_as_lost_with_error():
    fake = FakeProber(fail_sends={2})
    runner = SessionRunner(fake, fast_settings())
    res = runner.run(Profile(count=5, interval_s=0.001), TARGET)
    assert len(res) == 5
    bad = res.outcomes[2]
    assert bad.lost
    assert "scripted send failure" in bad.error
    assert res.summary.lost == 1


def test_sends_are_paced_from_a_fixed_start():
    fake = FakeProber(rtt_s=0.0001)
    runner = SessionRunner(fake, fast_settings())
    res = runner.run(Profile(count=5, interval_s=0.02), TARGET)
    sent = fake.channels[0].sent
    assert [s for s, _ in sent] == [0, 1, 2, 3, 4]
    # the last probe is not sent before its nominal slot
    assert sent[-1][1] - sent[0][1] >= 4 * 20_000_000 - 1_000_000
    assert res.duration_s >= 0.08


def test_on_start_fires_once_after_first_probe():
    calls = []
    fake = FakeProber()
    runner = SessionRunner(fake, fast_settings())
    runner.run(Profile(count=3, interval_s=0.001), TARGET,
               on_start=lambda: calls.append(len(fake.channels[0].sent)))
    assert calls == [1]


def test_cancellation_after_k_probes_keeps_only_those():
    """Cancel right after probe k-1 goes out: no more than k outcomes, all contiguous."""
    k = 4
    cancel = threading.Event()

    def on_send(seq):
        if seq == k - 1:
            cancel.set()

    fake = FakeProber(rtt_s=0.0, on_send=on_send)
    runner = SessionRunner(fake, fast_settings())
    res = runner.run(Profile(count=100, interval_s=0.001), TARGET, cancel=cancel)
    assert res.cancelled
    assert not res.complete
    assert len(fake.channels[0].sent) == k
    assert len(res) <= k
    assert [o.seq for o in res.outcomes] == list(range(len(res)))
    # zero-RTT replies are already back when the session stops
    assert len(res) == k
    assert res.dropped == 0


def test_cancelled_before_start_sends_nothing():
    cancel = threading.Event()
    cancel.set()
    fake = FakeProber()
    res = SessionRunner(fake, fast_settings()).run(Profile(count=10, interval_s=0.001), TARGET,
                                                   cancel=cancel)
    assert res.cancelled
    assert len(res) == 0
    assert fake.channels[0].sent == []


def test_unreachable_target_raises_before_sending():
    fake = FakeProber(unreachable={"192.0.2.1"})
    runner = SessionRunner(fake, fast_settings())
    with pytest.raises(SessionUnreachable):
        runner.run(Profile(count=5, interval_s=0.001), Target("192.0.2.1"))
    assert fake.channels == []


def test_oversized_profile_rejected_before_sending():
    fake = FakeProber()
    runner = SessionRunner(fake, fast_settings(path_mtu=1500))
    with pytest.raises(InvalidProfile):
        runner.run(Profile(count=5, interval_s=0.001, payload_size=2000), TARGET)
    assert fake.channels == []


def test_probe_timeout_is_at_least_the_interval():
    runner = SessionRunner(FakeProber(), fast_settings())
    assert runner.probe_timeout_ns(Profile(count=1, interval_s=0.001)) == 50_000_000
    assert runner.probe_timeout_ns(Profile(count=1, interval_s=1.0)) == 1_000_000_000


def test_session_state_counts_late_and_duplicate_replies():
    st = SessionState(timeout_ns=100)
    st.record_send(0, 1000)
    st.record_send(1, 1010)
    assert st.record_reply(0, 1050)
    assert not st.record_reply(0, 1060)       # duplicate
    assert st.expire(1200) == 1               # seq 1 declared lost
    assert not st.record_reply(1, 1300)       # late
    st.publish()
    assert st.late_replies == 2
    assert [o.seq for o in st.outcomes] == [0, 1]
    assert st.outcomes[0].rtt_ns == 50
    assert st.outcomes[1].lost


def test_publish_waits_for_contiguous_prefix():
    st = SessionState(timeout_ns=100)
    for seq in range(3):
        st.record_send(seq, 1000 + seq)
    st.record_reply(2, 1100)
    st.record_reply(1, 1100)
    st.publish()
    assert st.outcomes == []
    st.record_reply(0, 1100)
    st.publish()
    assert [o.seq for o in st.outcomes] == [0, 1, 2]


def test_pacing_holds_under_total_loss():
    """Thousands of unanswered packets in flight must not slow the send schedule."""
    fake = FakeProber(rtt_fn=lambda profile, seq: None)
    runner = SessionRunner(fake, Settings(probe_timeout_s=1.0))
    profile = Profile(count=10000, interval_s=0.00005)
    res = runner.run(profile, TARGET)
    sent = fake.channels[0].sent
    span_s = (sent[-1][1] - sent[0][1]) / 1e9
    nominal_s = (profile.count - 1) * profile.interval_s
    assert span_s >= nominal_s - 0.001
    assert span_s < 2 * nominal_s + 0.2
    assert res.summary.loss_ratio == 1.0
    assert len(res) == 10000


def test_cancel_behind_slow_reply_counts_what_was_cut():
    """A packet still in flight at cancel hides later finished ones; the Result says how many."""
    cancel = threading.Event()

    def on_send(seq):
        if seq == 4:
            cancel.set()

    fake = FakeProber(script={1: 5.0}, rtt_s=0.0, on_send=on_send)
    runner = SessionRunner(fake, Settings(probe_timeout_s=10.0))
    res = runner.run(Profile(count=100, interval_s=0.001), TARGET, cancel=cancel)
    assert res.cancelled
    assert [o.seq for o in res.outcomes] == [0]
    assert res.dropped == 4
    assert res.to_dict()["dropped"] == 4
    assert res.duration_s < 1.0


def test_expire_stops_at_first_send_inside_timeout():
    st = SessionState(timeout_ns=100)
    for seq in range(5):
        st.record_send(seq, 1000 + seq * 50)   # 1000, 1050, ..., 1200
    st.record_reply(0, 1010)
    assert st.next_deadline() == 1150
    assert st.expire(1160) == 1               # only seq 1 is past its deadline
    assert list(st.pending) == [2, 3, 4]
    assert st.next_deadline() == 1200
    st.record_reply(2, 1170)
    assert st.next_deadline() == 1250
    assert st.expire(10_000) == 2
    assert st.next_deadline() is None
    st.publish()
    assert [o.lost for o in st.outcomes] == [False, True, False, True, True]
