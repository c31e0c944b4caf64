# pathprobe/report.py
import csv
import io
import json

from pathprobe.context import RunContext
from pathprobe.profile import AddressFamily, Fragmentation, Profile, TrafficClass
from pathprobe.results import ProbeOutcome, Result, ScenarioResult, Target

CSV_FIELDS = ["seq", "send_ns", "recv_ns", "rtt_us", "lost", "error"]


def _fmt_us(v) -> str:
    return "n/a" if v is None else f"{v:.2f}us"


def text_summary(result: Result, label: str = "") -> str:
    sm = result.summary.to_dict()
    rtt = sm["rtt"]
    runs = sm["loss_runs"]
    longest = max((length for _, length in runs), default=0)
    head = f"{label}: " if label else ""
    lines = [
        f"{head}{result.profile.describe()} -> {result.target}"
        + (" [cancelled]" if result.cancelled else ""),
        f"  sent {sm['sent']}  received {sm['received']}  lost {sm['lost']} ({sm['loss_pct']:.3f}%)"
        f"  loss runs {len(runs)} (longest {longest})",
        f"  rtt min {_fmt_us(rtt['min'])}  avg {_fmt_us(rtt['avg'])}  p50 {_fmt_us(rtt['p50'])}"
        f"  p99 {_fmt_us(rtt['p99'])}  max {_fmt_us(rtt['max'])}  jitter {_fmt_us(rtt['jitter'])}",
    ]
    if result.late_replies:
        lines.append(f"  late/duplicate replies {result.late_replies}")
    if result.dropped:
        lines.append(f"  {result.dropped} probes still unresolved at cancellation left out")
    return "\n".join(lines)


def render_result(result: Result, fmt: str = "text", label: str = "") -> str:
    if fmt == "json":
        return json.dumps(result.to_dict(), indent=2)
    if fmt == "csv":
        buf = io.StringIO()
        w = csv.DictWriter(buf, fieldnames=CSV_FIELDS)
        w.writeheader()
        for o in result.outcomes:
            w.writerow(o.to_dict())
        return buf.getvalue()
    return text_summary(result, label)


def render_scenario(sr: ScenarioResult) -> str:
    lines = [f"scenario {sr.scenario} ({sr.pattern}): {sr.state}"
             + (" [cancelled]" if sr.cancelled else "")
             + (f" failed at {sr.failed_role}" if sr.failed_role else "")]
    for e in sr.entries:
        lines.append(text_summary(e.result, e.role))
    return "\n".join(lines)


def write_scenario(ctx: RunContext, sr: ScenarioResult) -> list:
    """One file per session, named by the run context."""
    ctx.results_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for e in sr.entries:
        path = ctx.path_for(sr.scenario, e.role)
        path.write_text(render_result(e.result, ctx.output_format, e.role) + "\n")
        paths.append(path)
    return paths


def result_from_record(rec: dict) -> Result:
    p = rec["profile"]
    profile = Profile(
        count=p["count"],
        interval_s=p["interval_s"],
        payload_size=p["payload_size"],
        traffic_class=TrafficClass[p["traffic_class"]],
        ttl=p["ttl"],
        fragmentation=Fragmentation(p["fragmentation"]),
        family=AddressFamily(p["family"]),
        mtu=p.get("mtu"),
    )
    host, _, port = rec["target"].rpartition(":")
    outcomes = tuple(ProbeOutcome(r["seq"], r["send_ns"], r["recv_ns"], r.get("error"))
                     for r in rec.get("probes", []))
    return Result(
        profile=profile,
        target=Target(host.strip("[]"), int(port)),
        outcomes=outcomes,
        started_at=rec.get("started_at", ""),
        duration_s=rec.get("duration_s", 0.0),
        cancelled=rec.get("cancelled", False),
        late_replies=rec.get("late_replies", 0),
        dropped=rec.get("dropped", 0),
    )


def load_result(path) -> Result:
    """Read a JSON result written by write_scenario with output format json."""
    with open(path) as f:
        rec = json.load(f)
    if "probes" not in rec:
        raise ValueError(f"{path}: no per-probe records, cannot rebuild the result")
    return result_from_record(rec)
