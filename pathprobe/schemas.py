from typing import Literal, TypedDict, Optional

LossPattern = Literal["none", "burst", "uniform"]
OutputFormat = Literal["text", "json", "csv"]


class ProbeRecord(TypedDict):
    seq: int
    send_ns: int
    recv_ns: Optional[int]
    rtt_us: Optional[float]
    lost: bool
    error: Optional[str]


class RttRecord(TypedDict):
    min: Optional[float]
    avg: Optional[float]
    p50: Optional[float]
    p90: Optional[float]
    p99: Optional[float]
    max: Optional[float]
    jitter: Optional[float]


class SummaryRecord(TypedDict):
    sent: int
    received: int
    lost: int
    loss_pct: float
    rtt: RttRecord        # microseconds
    loss_runs: list       # [[first_seq, length], ...]


class ResultRecord(TypedDict, total=False):
    target: str
    profile: dict
    started_at: str
    duration_s: float
    cancelled: bool
    late_replies: int
    dropped: int
    summary: SummaryRecord
    probes: list          # list[ProbeRecord]


class ScenarioRecord(TypedDict, total=False):
    scenario: str
    pattern: str
    state: str
    cancelled: bool
    failed_role: Optional[str]
    sessions: list        # [{"role": ..., "params": ..., "result": ResultRecord}]
