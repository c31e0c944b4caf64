# pathprobe/brain/runner.py

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from pathprobe.brain.state import SessionState
from pathprobe.config import Settings
from pathprobe.errors import ProbeTransportError
from pathprobe.profile import Profile
from pathprobe.results import Result, Target

log = logging.getLogger(__name__)

# longest single blocking wait; bounds how quickly cancellation is noticed
WAIT_SLICE_S = 0.05


class SessionRunner:
    """Executes one Profile against one target and returns its Result."""

    def __init__(self, prober, settings: Optional[Settings] = None):
        self.prober = prober
        self.s = settings or Settings()

    def probe_timeout_ns(self, profile: Profile) -> int:
        return max(profile.interval_ns, round(self.s.probe_timeout_s * 1_000_000_000))

    def run(self, profile: Profile, target: Target,
            cancel: Optional[threading.Event] = None,
            on_start: Optional[Callable[[], None]] = None) -> Result:
        # both raise before anything is transmitted
        profile.check_path_mtu(self.s.path_mtu)
        channel = self.prober.open(target, profile)

        cancel = cancel or threading.Event()
        st = SessionState(timeout_ns=self.probe_timeout_ns(profile))
        interval_ns = profile.interval_ns
        started_at = datetime.now(timezone.utc).isoformat()
        log.info("session start: %s -> %s", profile.describe(), target)

        with channel:
            start = time.monotonic_ns()

            # -------------------------------
            # 1) Paced transmission
            # -------------------------------
            for seq in range(profile.count):
                # nominal send time comes from the fixed start, never from the previous send
                due = start + seq * interval_ns
                while not cancel.is_set():
                    now = time.monotonic_ns()
                    if now >= due:
                        break
                    self._collect(channel, st, min((due - now) / 1e9, WAIT_SLICE_S))
                if cancel.is_set():
                    break
                try:
                    st.record_send(seq, channel.send(seq))
                except ProbeTransportError as e:
                    log.warning("probe %d not sent: %s", seq, e)
                    st.record_send_failure(seq, time.monotonic_ns(), str(e))
                if seq == 0 and on_start is not None:
                    on_start()
                if time.monotonic_ns() >= due + interval_ns:
                    # behind schedule: drain the socket without waiting
                    self._collect(channel, st, 0)

            # -------------------------------
            # 2) Drain replies until every probe is received or timed out
            # -------------------------------
            while st.pending and not cancel.is_set():
                wait_ns = st.next_deadline() - time.monotonic_ns()
                self._collect(channel, st, min(max(wait_ns, 0) / 1e9, WAIT_SLICE_S))

            if cancel.is_set():
                # keep whatever already arrived; in-flight probes are dropped
                self._collect(channel, st, 0)

        st.publish()
        # anything still unresolved after a cancel is cut off; the count is kept
        dropped = st.discard()
        if dropped:
            log.info("cancelled with %d probe(s) unresolved behind seq %d", dropped, len(st.outcomes))
        duration_s = (time.monotonic_ns() - start) / 1e9
        result = Result(
            profile=profile,
            target=target,
            outcomes=tuple(st.outcomes),
            started_at=started_at,
            duration_s=duration_s,
            cancelled=cancel.is_set(),
            late_replies=st.late_replies,
            dropped=dropped,
        )
        sm = result.summary
        log.info("session %s: %d/%d received, loss %.3f%%%s",
                 target, sm.received, sm.sent, sm.loss_pct,
                 " (cancelled)" if result.cancelled else "")
        return result

    def _collect(self, channel, st: SessionState, timeout_s: float):
        for reply in channel.receive(timeout_s):
            if not st.record_reply(reply.seq, reply.recv_ns):
                log.debug("late or duplicate reply seq=%d", reply.seq)
        st.expire(time.monotonic_ns())
        st.publish()
