# pathprobe/brain/scenario.py
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from pathprobe.errors import InvalidProfile
from pathprobe.profile import Profile
from pathprobe.results import Target


# ---------------------------------------------------------------------------
# Synchronization points for the concurrent pattern
# ---------------------------------------------------------------------------

class SettleDelay:
    """Wait a fixed time after the background stream reports running."""

    def __init__(self, seconds: float):
        self.seconds = seconds

    def wait(self, cancel: threading.Event) -> bool:
        return not cancel.wait(self.seconds)

    def __repr__(self):
        return f"SettleDelay({self.seconds}s)"


class ReadinessGate:
    """
    Wait for an external event (or a callable returning True) to open.
    An event the gate created itself is consumed when it opens, so the
    next run of the same scenario waits again.
    """

    def __init__(self, ready=None, poll_s: float = 0.05):
        self._owned = ready is None
        self.ready = ready if ready is not None else threading.Event()
        self.poll_s = poll_s

    def _is_open(self) -> bool:
        if isinstance(self.ready, threading.Event):
            return self.ready.is_set()
        return bool(self.ready())

    def wait(self, cancel: threading.Event) -> bool:
        while not cancel.is_set():
            if self._is_open():
                if self._owned:
                    self.ready.clear()
                return True
            if isinstance(self.ready, threading.Event):
                self.ready.wait(self.poll_s)
            else:
                cancel.wait(self.poll_s)
        return False


class OperatorConfirm(ReadinessGate):
    """Operator presses ENTER once the background flood is steady."""

    def __init__(self, prompt: str = "Press ENTER when background flood is running...",
                 input_fn: Callable[[str], str] = input):
        super().__init__()
        self.prompt = prompt
        self.input_fn = input_fn
        self._asking = None

    def wait(self, cancel: threading.Event) -> bool:
        # only a fresh answer counts
        self.ready.clear()
        # a prompt left over from a cancelled run is still reading stdin; reuse it
        if self._asking is None or not self._asking.is_alive():
            self._asking = threading.Thread(target=self._ask, name="operator-confirm", daemon=True)
            self._asking.start()
        return super().wait(cancel)

    def _ask(self):
        self.input_fn(self.prompt)
        self.ready.set()


# ---------------------------------------------------------------------------
# Scenario shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Session:
    role: str
    profile: Profile
    target: Optional[Target] = None
    gap_before_s: float = 0.0      # silence before this session starts
    params: dict = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str = ""
    expect: str = ""

    pattern = "single"

    def sessions(self) -> list:
        raise NotImplementedError

    def profiles(self) -> list:
        return [s.profile for s in self.sessions()]


@dataclass(frozen=True)
class SingleScenario(Scenario):
    profile: Profile = None
    role: str = "main"
    target: Optional[Target] = None

    pattern = "single"

    def sessions(self):
        return [Session(self.role, self.profile, self.target)]


@dataclass(frozen=True)
class SequentialScenario(Scenario):
    phases: tuple = ()

    pattern = "sequential"

    def __post_init__(self):
        if not self.phases:
            raise InvalidProfile(f"{self.name}: sequential scenario needs at least one phase")

    def sessions(self):
        return list(self.phases)


@dataclass(frozen=True)
class ConcurrentScenario(Scenario):
    background: Session = None
    foreground: Session = None
    sync: object = None            # SettleDelay / ReadinessGate; None -> settings.settle_s

    pattern = "concurrent"

    def sessions(self):
        return [self.background, self.foreground]


@dataclass(frozen=True)
class SweepScenario(Scenario):
    profile: Profile = None
    ttl_values: Sequence[int] = ()
    target: Optional[Target] = None

    pattern = "sweep"

    def __post_init__(self):
        if not self.ttl_values:
            raise InvalidProfile(f"{self.name}: sweep needs at least one ttl value")

    def sessions(self):
        return [Session(f"ttl={ttl}", self.profile.with_ttl(ttl), self.target, params={"ttl": ttl})
                for ttl in self.ttl_values]
