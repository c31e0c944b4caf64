# pathprobe/results.py
from dataclasses import dataclass, field
from functools import cached_property
from statistics import mean
from typing import Optional

from pathprobe.brain.rules import jitter, loss_runs, percentile
from pathprobe.profile import Profile
from pathprobe.schemas import ProbeRecord, ResultRecord, ScenarioRecord, SummaryRecord


def _us(ns: Optional[float]) -> Optional[float]:
    return None if ns is None else ns / 1000.0


@dataclass(frozen=True)
class Target:
    host: str
    port: int = 862

    def __str__(self):
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ProbeOutcome:
    seq: int
    send_ns: int
    recv_ns: Optional[int] = None
    error: Optional[str] = None

    @property
    def lost(self) -> bool:
        return self.recv_ns is None

    @property
    def rtt_ns(self) -> Optional[int]:
        if self.recv_ns is None:
            return None
        return self.recv_ns - self.send_ns

    def to_dict(self) -> ProbeRecord:
        return {
            "seq": self.seq,
            "send_ns": self.send_ns,
            "recv_ns": self.recv_ns,
            "rtt_us": _us(self.rtt_ns),
            "lost": self.lost,
            "error": self.error,
        }


@dataclass(frozen=True)
class Summary:
    """RTT figures are nanoseconds; None when nothing was received."""
    sent: int
    received: int
    lost: int
    loss_ratio: float
    min: Optional[float]
    mean: Optional[float]
    p50: Optional[float]
    p90: Optional[float]
    p99: Optional[float]
    max: Optional[float]
    jitter: Optional[float]
    loss_runs: tuple = ()

    @property
    def loss_pct(self) -> float:
        return self.loss_ratio * 100.0

    def metric(self, name: str) -> Optional[float]:
        if name in ("avg", "average"):
            name = "mean"
        if name == "loss_pct":
            return self.loss_pct
        if name not in ("min", "mean", "p50", "p90", "p99", "max", "jitter", "loss_ratio"):
            raise KeyError(f"unknown metric: {name}")
        return getattr(self, name)

    @classmethod
    def from_outcomes(cls, outcomes) -> "Summary":
        rtts = [o.rtt_ns for o in outcomes if not o.lost]
        lost = [o.seq for o in outcomes if o.lost]
        n = len(outcomes)
        return cls(
            sent=n,
            received=len(rtts),
            lost=len(lost),
            loss_ratio=(len(lost) / n) if n else 0.0,
            min=float(min(rtts)) if rtts else None,
            mean=float(mean(rtts)) if rtts else None,
            p50=percentile(rtts, 50),
            p90=percentile(rtts, 90),
            p99=percentile(rtts, 99),
            max=float(max(rtts)) if rtts else None,
            jitter=jitter(rtts),
            loss_runs=tuple(loss_runs(lost)),
        )

    def to_dict(self) -> SummaryRecord:
        return {
            "sent": self.sent,
            "received": self.received,
            "lost": self.lost,
            "loss_pct": self.loss_pct,
            "rtt": {
                "min": _us(self.min), "avg": _us(self.mean), "p50": _us(self.p50),
                "p90": _us(self.p90), "p99": _us(self.p99), "max": _us(self.max),
                "jitter": _us(self.jitter),
            },
            "loss_runs": [list(r) for r in self.loss_runs],
        }


@dataclass(frozen=True)
class Result:
    """Outcome of one Session Runner invocation. Outcomes are ordered by seq."""
    profile: Profile
    target: Target
    outcomes: tuple
    started_at: str = ""
    duration_s: float = 0.0
    cancelled: bool = False
    late_replies: int = 0
    # probes left out of a cancelled Result: in flight, or finished behind one that was
    dropped: int = 0

    @cached_property
    def summary(self) -> Summary:
        return Summary.from_outcomes(self.outcomes)

    def __len__(self):
        return len(self.outcomes)

    @property
    def complete(self) -> bool:
        return not self.cancelled and len(self.outcomes) == self.profile.count

    def to_dict(self, probes: bool = True) -> ResultRecord:
        p = self.profile
        rec: ResultRecord = {
            "target": str(self.target),
            "profile": {
                "count": p.count,
                "interval_s": p.interval_s,
                "payload_size": p.payload_size,
                "packet_size": p.packet_size,
                "traffic_class": p.traffic_class.name,
                "tos": p.traffic_class.tos,
                "ttl": p.ttl,
                "fragmentation": p.fragmentation.value,
                "family": p.family.value,
                "mtu": p.mtu,
            },
            "started_at": self.started_at,
            "duration_s": self.duration_s,
            "cancelled": self.cancelled,
            "late_replies": self.late_replies,
            "dropped": self.dropped,
            "summary": self.summary.to_dict(),
        }
        if probes:
            rec["probes"] = [o.to_dict() for o in self.outcomes]
        return rec


@dataclass(frozen=True)
class SessionEntry:
    role: str
    result: Result
    started_ns: int
    ended_ns: int
    params: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ScenarioResult:
    scenario: str
    pattern: str
    entries: tuple = ()
    state: str = "completed"
    cancelled: bool = False
    failed_role: Optional[str] = None
    reported_role: Optional[str] = None

    def roles(self) -> list:
        return [e.role for e in self.entries]

    def entry(self, role: str) -> SessionEntry:
        for e in self.entries:
            if e.role == role:
                return e
        raise KeyError(role)

    def __getitem__(self, role: str) -> Result:
        return self.entry(role).result

    @property
    def results(self) -> list:
        return [e.result for e in self.entries]

    @property
    def reported(self) -> Optional[Result]:
        """The Result that validation looks at (foreground for concurrent runs)."""
        if self.reported_role is not None:
            return self[self.reported_role]
        return self.entries[-1].result if self.entries else None

    def to_dict(self, probes: bool = True) -> ScenarioRecord:
        return {
            "scenario": self.scenario,
            "pattern": self.pattern,
            "state": self.state,
            "cancelled": self.cancelled,
            "failed_role": self.failed_role,
            "sessions": [
                {"role": e.role, "params": dict(e.params), "result": e.result.to_dict(probes=probes)}
                for e in self.entries
            ],
        }
