# pathprobe/brain/state.py
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pathprobe.results import ProbeOutcome


class ScenarioState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class SessionState:
    """Per-session book-keeping owned by exactly one runner invocation."""
    timeout_ns: int
    pending: dict = field(default_factory=dict)    # seq -> send_ns, awaiting reply
    finished: dict = field(default_factory=dict)   # seq -> ProbeOutcome, not yet published
    outcomes: list = field(default_factory=list)   # published, contiguous from seq 0
    late_replies: int = 0
    # (seq, send_ns) in send order; entries already answered are skipped lazily
    order: deque = field(default_factory=deque)

    def record_send(self, seq: int, send_ns: int):
        self.pending[seq] = send_ns
        self.order.append((seq, send_ns))

    def record_send_failure(self, seq: int, send_ns: int, error: str):
        self.finished[seq] = ProbeOutcome(seq, send_ns, None, error)

    def record_reply(self, seq: int, recv_ns: int) -> bool:
        send_ns = self.pending.pop(seq, None)
        if send_ns is None:
            # duplicate, or arrived after its probe was already declared lost
            self.late_replies += 1
            return False
        # clocks are monotonic, but guard against a reply stamped before the send
        self.finished[seq] = ProbeOutcome(seq, send_ns, max(recv_ns, send_ns))
        return True

    def _oldest(self):
        while self.order and self.order[0][0] not in self.pending:
            self.order.popleft()
        return self.order[0] if self.order else None

    def expire(self, now_ns: int) -> int:
        # send times only increase, so stop at the first probe still inside its timeout
        n = 0
        while True:
            head = self._oldest()
            if head is None or now_ns - head[1] < self.timeout_ns:
                return n
            seq, sent = self.order.popleft()
            del self.pending[seq]
            self.finished[seq] = ProbeOutcome(seq, sent)
            n += 1

    def next_deadline(self) -> Optional[int]:
        head = self._oldest()
        if head is None:
            return None
        return head[1] + self.timeout_ns

    def publish(self):
        """Move finalized outcomes into the ordered list while they are contiguous."""
        nxt = len(self.outcomes)
        while nxt in self.finished:
            self.outcomes.append(self.finished.pop(nxt))
            nxt += 1

    def discard(self) -> int:
        """Drop everything not yet published (cancellation); returns how many probes."""
        dropped = len(self.pending) + len(self.finished)
        self.pending.clear()
        self.finished.clear()
        self.order.clear()
        return dropped


@dataclass
class RunState:
    scenario: str
    total: int
    state: ScenarioState = ScenarioState.PENDING
    stage: int = 0                 # 1-based index of the running stage
    role: Optional[str] = None
    cancelled: bool = False
    failed_role: Optional[str] = None
    history: list = field(default_factory=list)

    def transition(self, state: ScenarioState, stage: int = 0, role: Optional[str] = None):
        self.state = state
        self.stage = stage
        self.role = role
        self.history.append((state, stage, role, time.monotonic_ns()))

    def describe(self) -> str:
        if self.state is ScenarioState.RUNNING:
            return f"running({self.stage} of {self.total}: {self.role})"
        return self.state.value
