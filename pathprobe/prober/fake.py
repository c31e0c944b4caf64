# pathprobe/prober/fake.py
import heapq
import time

from pathprobe.errors import ProbeTransportError, SessionUnreachable
from pathprobe.prober.base import ProbeChannel, Prober, Reply


class FakeChannel(ProbeChannel):
    def __init__(self, prober, target, profile):
        self.prober = prober
        self.target = target
        self.profile = profile
        self.sent = []        # (seq, send_ns) in transmission order
        self.closed = False
        self._due = []        # heap of (arrival_ns, seq)

    def send(self, seq: int) -> int:
        if seq in self.prober.fail_sends:
            raise ProbeTransportError(f"scripted send failure for seq={seq}")
        now = time.monotonic_ns()
        self.sent.append((seq, now))
        rtt_s = self.prober.rtt_for(self.profile, seq)
        if rtt_s is not None:
            heapq.heappush(self._due, (now + round(rtt_s * 1_000_000_000), seq))
        if self.prober.on_send:
            self.prober.on_send(seq)
        return now

    def receive(self, timeout_s: float) -> list:
        now = time.monotonic_ns()
        if not self._due or self._due[0][0] > now:
            wait = timeout_s
            if self._due:
                wait = min(wait, (self._due[0][0] - now) / 1e9)
            if wait > 0:
                time.sleep(wait)
            now = time.monotonic_ns()
        out = []
        while self._due and self._due[0][0] <= now:
            arrival, seq = heapq.heappop(self._due)
            # report the simulated arrival so RTTs are exactly as scripted
            out.append(Reply(seq, arrival))
        return out

    def close(self):
        self.closed = True


class FakeProber(Prober):
    """
    script: dict[seq] -> rtt in seconds, or None for a probe that never returns.
    Sequence numbers missing from the script answer after `rtt_s`.
    rtt_fn(profile, seq), when given, replaces both and may return None.
    Profiles with ttl < min_ttl get no replies at all (expired mid-path).
    """

    def __init__(self, script=None, rtt_s=0.0005, min_ttl=1, unreachable=(),
                 fail_sends=(), rtt_fn=None, on_send=None):
        self.script = dict(script or {})
        self.rtt_s = rtt_s
        self.min_ttl = min_ttl
        self.unreachable = set(unreachable)
        self.fail_sends = set(fail_sends)
        self.rtt_fn = rtt_fn
        self.on_send = on_send
        self.channels = []

    def rtt_for(self, profile, seq):
        if profile.ttl < self.min_ttl:
            return None
        if self.rtt_fn is not None:
            return self.rtt_fn(profile, seq)
        if seq in self.script:
            return self.script[seq]
        return self.rtt_s

    def open(self, target, profile) -> FakeChannel:
        if target.host in self.unreachable:
            raise SessionUnreachable(target, "scripted")
        ch = FakeChannel(self, target, profile)
        self.channels.append(ch)
        return ch
