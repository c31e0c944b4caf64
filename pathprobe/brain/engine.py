# pathprobe/brain/engine.py

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from pathprobe.brain.runner import WAIT_SLICE_S, SessionRunner
from pathprobe.brain.scenario import ConcurrentScenario, Scenario, Session, SettleDelay
from pathprobe.brain.state import RunState, ScenarioState
from pathprobe.config import Settings
from pathprobe.errors import ScenarioAborted, SessionUnreachable
from pathprobe.profile import AddressFamily
from pathprobe.results import ScenarioResult, SessionEntry, Target

log = logging.getLogger(__name__)


def silence(seconds: float, cancel: threading.Event) -> bool:
    """Sleep on the monotonic clock for at least `seconds`; False if cancelled."""
    deadline = time.monotonic_ns() + round(seconds * 1_000_000_000)
    while True:
        remaining = deadline - time.monotonic_ns()
        if remaining <= 0:
            return True
        if cancel.wait(remaining / 1e9):
            return False


class ScenarioEngine:
    def __init__(self, prober, settings: Optional[Settings] = None,
                 on_transition: Optional[Callable[[RunState], None]] = None):
        self.prober = prober
        self.s = settings or Settings()
        self.runner = SessionRunner(prober, self.s)
        self.on_transition = on_transition

    def resolve_target(self, session: Session) -> Target:
        if session.target is not None:
            return session.target
        if session.profile.family is AddressFamily.V6 and self.s.ipv6_target is not None:
            return self.s.ipv6_target
        return self.s.target

    def run(self, scenario: Scenario, cancel: Optional[threading.Event] = None,
            deadline_s: Optional[float] = None) -> ScenarioResult:
        sessions = scenario.sessions()

        # configuration errors surface before anything is sent
        for sess in sessions:
            sess.profile.check_path_mtu(self.s.path_mtu)

        cancel = cancel or threading.Event()
        timer = None
        if deadline_s is not None:
            timer = threading.Timer(deadline_s, cancel.set)
            timer.daemon = True
            timer.start()

        concurrent = isinstance(scenario, ConcurrentScenario)
        run = RunState(scenario=scenario.name, total=1 if concurrent else len(sessions))
        self._transition(run, ScenarioState.PENDING)
        entries = []
        log.info("scenario %s (%s): %d session(s)", scenario.name, scenario.pattern, len(sessions))
        try:
            if concurrent:
                self._run_concurrent(scenario, run, entries, cancel)
            else:
                self._run_sequential(sessions, run, entries, cancel)
        except SessionUnreachable as e:
            self._transition(run, ScenarioState.ABORTED, run.stage, run.role)
            run.failed_role = run.role
            partial = self._finish(scenario, run, entries, cancel)
            log.error("scenario %s aborted at %s: %s", scenario.name, run.role, e)
            raise ScenarioAborted(scenario.name, run.role, partial, e) from e
        finally:
            if timer is not None:
                timer.cancel()

        self._transition(run, ScenarioState.COMPLETED)
        return self._finish(scenario, run, entries, cancel)

    # -------------------------------
    # Sequential phases and sweeps
    # -------------------------------
    def _run_sequential(self, sessions, run: RunState, entries: list, cancel: threading.Event):
        for k, sess in enumerate(sessions, start=1):
            if cancel.is_set():
                break
            if sess.gap_before_s > 0:
                log.info("silence %.3fs before %s", sess.gap_before_s, sess.role)
                if not silence(sess.gap_before_s, cancel):
                    break
            self._transition(run, ScenarioState.RUNNING, k, sess.role)
            entries.append(self._run_session(sess, cancel))
            res = entries[-1].result
            if res.summary.sent and res.summary.received == 0:
                # expected for low hop limits in a sweep; never stops the scenario
                log.info("%s: no replies (%d probes)", sess.role, res.summary.sent)

    def _run_session(self, sess: Session, cancel: threading.Event, on_start=None,
                     extra: Optional[dict] = None) -> SessionEntry:
        target = self.resolve_target(sess)
        started = time.monotonic_ns()
        result = self.runner.run(sess.profile, target, cancel=cancel, on_start=on_start)
        params = dict(sess.params)
        params.update(extra or {})
        return SessionEntry(sess.role, result, started, time.monotonic_ns(), params)

    # -------------------------------
    # Concurrent background + foreground
    # -------------------------------
    def _run_concurrent(self, sc: ConcurrentScenario, run: RunState, entries: list,
                        cancel: threading.Event):
        bg, fg = sc.background, sc.foreground
        sync = sc.sync or SettleDelay(self.s.settle_s)
        bg_ready = threading.Event()
        bg_cancel = threading.Event()

        self._transition(run, ScenarioState.RUNNING, 1, bg.role)
        fg_entry = fg_error = None
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"bg-{sc.name}") as pool:
            fut = pool.submit(self._run_session, bg, bg_cancel, bg_ready.set)
            try:
                # wait for the background stream to report it is sending
                while not bg_ready.wait(WAIT_SLICE_S):
                    if fut.done() or cancel.is_set():
                        break
                if bg_ready.is_set() and not cancel.is_set():
                    log.info("background %s running; synchronizing via %r", bg.role, sync)
                    if sync.wait(cancel):
                        loaded = not fut.done()
                        if not loaded:
                            log.warning("background %s ended before %s started; "
                                        "foreground runs without background load", bg.role, fg.role)
                        self._transition(run, ScenarioState.RUNNING, 1, fg.role)
                        try:
                            fg_entry = self._run_session(fg, cancel, extra={"background_load": loaded})
                        except SessionUnreachable as e:
                            fg_error = e
            finally:
                # the background flood only exists to load the foreground measurement
                bg_cancel.set()
            bg_entry = fut.result()  # re-raises SessionUnreachable from the background

        entries.append(bg_entry)
        if fg_entry is not None:
            entries.append(fg_entry)
        if fg_error is not None:
            raise fg_error

    # -------------------------------
    # Book-keeping
    # -------------------------------
    def _transition(self, run: RunState, state: ScenarioState, stage: int = 0, role=None):
        run.transition(state, stage, role)
        log.info("scenario %s: %s", run.scenario, run.describe())
        if self.on_transition is not None:
            self.on_transition(run)

    def _finish(self, scenario: Scenario, run: RunState, entries, cancel) -> ScenarioResult:
        bg_role = reported = None
        if isinstance(scenario, ConcurrentScenario):
            bg_role = scenario.background.role
            if any(e.role == scenario.foreground.role for e in entries):
                reported = scenario.foreground.role
        # the background stream is always stopped early; that alone is not a cancellation
        cancelled = cancel.is_set() or any(e.result.cancelled for e in entries if e.role != bg_role)
        return ScenarioResult(
            scenario=scenario.name,
            pattern=scenario.pattern,
            entries=tuple(entries),
            state=run.state.value,
            cancelled=cancelled,
            failed_role=run.failed_role,
            reported_role=reported,
        )
