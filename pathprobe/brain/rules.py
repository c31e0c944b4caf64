# pathprobe/brain/rules.py
import math
from typing import Iterable, Optional, Sequence


def percentile(data: Sequence[float], p: float) -> Optional[float]:
    """Linear-interpolated percentile, p in [0, 100]. None for empty input."""
    if not data:
        return None
    if p <= 0:
        return float(min(data))
    if p >= 100:
        return float(max(data))
    s = sorted(data)
    k = (len(s) - 1) * (p / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return float(s[int(k)])
    return float(s[f] * (c - k) + s[c] * (k - f))


def jitter(rtts: Sequence[float]) -> Optional[float]:
    """Mean absolute difference between consecutive RTTs."""
    if len(rtts) < 2:
        return 0.0 if rtts else None
    diffs = [abs(rtts[i] - rtts[i - 1]) for i in range(1, len(rtts))]
    return sum(diffs) / len(diffs)


def loss_runs(lost_seqs: Iterable[int]) -> list:
    """
    Collapse lost sequence numbers into contiguous runs.
    {3,4,5,9} -> [(3, 3), (9, 1)]
    """
    runs = []
    start = prev = None
    for seq in sorted(lost_seqs):
        if start is None:
            start = prev = seq
            continue
        if seq == prev + 1:
            prev = seq
            continue
        runs.append((start, prev - start + 1))
        start = prev = seq
    if start is not None:
        runs.append((start, prev - start + 1))
    return runs


def burst_rule(runs: Sequence, min_run: int, burst_share: float) -> bool:
    """
    Loss is bursty when at least `burst_share` of all lost probes sit in
    runs of `min_run` or more consecutive sequence numbers.
    """
    lost = sum(length for _, length in runs)
    if lost == 0:
        return False
    clustered = sum(length for _, length in runs if length >= min_run)
    return clustered / lost >= burst_share


def significant(pct: Optional[float], threshold_pct: Optional[float]) -> bool:
    if pct is None or threshold_pct is None:
        return False
    mag = abs(pct)
    return mag >= threshold_pct or math.isclose(mag, threshold_pct, rel_tol=1e-9)
