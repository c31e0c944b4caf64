# pathprobe/analysis/compare.py
"""
Comparisons over completed Results. Nothing here mutates its inputs.

Thresholds (significance, burst clustering) are always parameters: the
numbers that separate "asymmetric path" or "burst loss" from noise are
judgment calls that depend on the venue and the link.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from pathprobe.brain.rules import burst_rule, significant
from pathprobe.errors import IncomparableResults
from pathprobe.results import Result, ScenarioResult, Summary
from pathprobe.schemas import LossPattern


@dataclass(frozen=True)
class MetricDelta:
    metric: str
    a: float
    b: float
    diff: float             # b - a; positive means b is slower / lossier
    pct: Optional[float]    # diff relative to a, None when a is zero
    significant: bool

    def to_dict(self) -> dict:
        return {"metric": self.metric, "a": self.a, "b": self.b, "diff": self.diff,
                "pct": self.pct, "significant": self.significant}


def _metric(summary: Summary, name: str, side: str) -> float:
    try:
        value = summary.metric(name)
    except KeyError as e:
        raise IncomparableResults(str(e)) from e
    if value is None:
        raise IncomparableResults(f"{name} undefined for result {side} (no replies received)")
    return value


def delta(a: Result, b: Result, metrics: Iterable[str] = ("p99",),
          threshold_pct: Optional[float] = None, match_counts: bool = True) -> dict:
    """
    Signed difference b - a per metric. `significant` is set when the
    relative difference reaches threshold_pct (e.g. 10 for asymmetric paths).
    """
    if match_counts and len(a) != len(b):
        raise IncomparableResults(f"probe counts differ: {len(a)} vs {len(b)}")
    sa, sb = a.summary, b.summary
    out = {}
    for name in metrics:
        va = _metric(sa, name, "a")
        vb = _metric(sb, name, "b")
        diff = vb - va
        pct = (diff * 100.0 / va) if va else None
        out[name] = MetricDelta(name, va, vb, diff, pct, significant(pct, threshold_pct))
    return out


@dataclass(frozen=True)
class HopStat:
    hop: int
    summary: Summary
    contribution: Optional[float]   # p50 increase over the previous answering hop (ns)

    @property
    def reached(self) -> bool:
        return self.summary.received > 0


def per_hop_profile(sweep, param: str = "ttl") -> list:
    """
    Order sweep Results by hop limit. Accepts a sweep ScenarioResult or an
    iterable of (hop, Result) pairs. Hops that never answered carry no
    contribution and do not reset the running baseline.
    """
    if isinstance(sweep, ScenarioResult):
        try:
            pairs = [(e.params[param], e.result) for e in sweep.entries]
        except KeyError as e:
            raise IncomparableResults(f"not a {param} sweep: missing {e}") from e
    else:
        pairs = list(sweep)

    hops = []
    prev = None
    for hop, result in sorted(pairs, key=lambda p: p[0]):
        sm = result.summary
        contribution = None
        if sm.p50 is not None:
            contribution = sm.p50 - prev if prev is not None else sm.p50
            prev = sm.p50
        hops.append(HopStat(hop, sm, contribution))
    return hops


def classify_loss(result: Result, min_run: int = 3, burst_share: float = 0.5) -> LossPattern:
    """
    "none" without loss; "burst" when at least burst_share of the lost probes
    fall in runs of min_run or more consecutive sequence numbers; else "uniform".
    """
    if min_run < 1 or not 0 < burst_share <= 1:
        raise ValueError("min_run must be >= 1 and burst_share within (0, 1]")
    runs = result.summary.loss_runs
    if not runs:
        return "none"
    return "burst" if burst_rule(runs, min_run, burst_share) else "uniform"


@dataclass(frozen=True)
class IdleRecovery:
    overall: dict                 # metric -> MetricDelta, phase before vs after
    first_rtts: tuple             # first received RTTs after the gap (ns)
    first_vs_before_p50: Optional[MetricDelta]

    @property
    def spike(self) -> bool:
        return bool(self.first_vs_before_p50 and self.first_vs_before_p50.significant)


def idle_recovery(before: Result, after: Result, first_n: int = 10,
                  threshold_pct: Optional[float] = None,
                  metrics: Sequence[str] = ("p50", "p99", "max")) -> IdleRecovery:
    """
    Latency before vs after a silence gap, plus the first-packet-after-idle
    effect: the mean of the first `first_n` received RTTs after the gap
    against the median before it.
    """
    overall = delta(before, after, metrics, threshold_pct, match_counts=False)
    firsts = tuple(o.rtt_ns for o in after.outcomes if not o.lost)[:first_n]
    first_delta = None
    if firsts:
        base = _metric(before.summary, "p50", "before")
        head = sum(firsts) / len(firsts)
        diff = head - base
        pct = (diff * 100.0 / base) if base else None
        first_delta = MetricDelta("first_after_idle", base, head, diff, pct,
                                  significant(pct, threshold_pct))
    return IdleRecovery(overall, firsts, first_delta)


def compare_roles(result: ScenarioResult, role_a: str, role_b: str, **kw) -> dict:
    """delta() between two roles of one ScenarioResult, e.g. 'IPv4' vs 'IPv6'."""
    kw.setdefault("match_counts", False)
    return delta(result[role_a], result[role_b], **kw)
