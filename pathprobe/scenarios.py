# pathprobe/scenarios.py
# Named characterization scenarios. Intervals follow common feed/order rates;
# payload sizes are padding after the 14-byte probe header.
from dataclasses import replace
from typing import Optional

from pathprobe.brain.scenario import (ConcurrentScenario, SequentialScenario, Session,
                                      SingleScenario, SweepScenario)
from pathprobe.profile import AddressFamily, Fragmentation, Profile, TrafficClass as TC

MS = 0.001


def _p(count, interval_ms, padding, tc, **kw) -> Profile:
    return Profile(count=count, interval_s=interval_ms * MS, payload_size=padding,
                   traffic_class=tc, **kw)


SCENARIOS = {
    "baseline": SingleScenario(
        name="baseline",
        description="Clean RTT baseline (reference floor): 64B, 10 pps, 60s, no marking",
        expect="sub-100us p99 in co-lo, 500us-2ms cross-DC, >5ms is a problem",
        profile=_p(600, 100, 0, TC.CS0),
    ),
    "order_entry": SingleScenario(
        name="order_entry",
        description="Order entry path: EF, ~150B, 1000 pps (1 order/ms)",
        expect="lowest jitter of all classes",
        profile=_p(6000, 1, 100, TC.EF),
    ),
    "market_data_primary": SingleScenario(
        name="market_data_primary",
        description="Primary market data feed: AF41, 220B, 10K pps",
        expect="no tail growth at sustained feed rate",
        profile=_p(60000, 0.1, 164, TC.AF41),
    ),
    "market_data_secondary": SingleScenario(
        name="market_data_secondary",
        description="Secondary/backup feed: AF31, 220B, 10K pps (compare against primary)",
        expect="p99 within 10% of the primary feed; a persistent gap means asymmetric routing",
        profile=_p(60000, 0.1, 164, TC.AF31),
    ),
    "market_open_burst": SingleScenario(
        name="market_open_burst",
        description="Opening bell burst: AF41, 100B, 100K pps for 5s",
        expect="no ring-buffer loss; RTT recovers right after the burst",
        profile=_p(500000, 0.01, 44, TC.AF41),
    ),
    "fix_heartbeat": SingleScenario(
        name="fix_heartbeat",
        description="FIX keepalive: CS6, 64B, 1 pps, 5 min",
        expect="infrequent packets not delayed by interrupt coalescing",
        profile=_p(300, 1000, 0, TC.CS6),
    ),
    "options_chain": SingleScenario(
        name="options_chain",
        description="Options snapshot refresh: AF41, 1400B, 5K pps",
        expect="RTT spikes on large packets point at MTU mismatch or fragmentation",
        profile=_p(30000, 0.2, 1344, TC.AF41),
    ),
    "jumbo": SingleScenario(
        name="jumbo",
        description="Jumbo frame path validation: AF41, ~9KB, 1K pps",
        expect="loss with DF set means a hop is not jumbo capable",
        profile=_p(5000, 1, 8900, TC.AF41, mtu=9000),
    ),
    "cross_venue": SingleScenario(
        name="cross_venue",
        description="Cross-venue latency window: EF, 64B, 100 pps, 10 min",
        expect="run once per venue responder and compare median RTT",
        profile=_p(6000, 10, 0, TC.EF),
    ),
    "buffer_bloat": SingleScenario(
        name="buffer_bloat",
        description="Buffer bloat stress: AF41, 300B, 50K pps, 5 min",
        expect="median RTT close to baseline; a sustained rise means queueing",
        profile=_p(15000000, 0.02, 244, TC.AF41),
    ),
    "jitter": SingleScenario(
        name="jitter",
        description="Jitter isolation: EF, 64B, 7ms prime interval, 10K samples",
        expect="periodic spikes identify timer sources, random ones contention",
        profile=_p(10000, 7, 0, TC.EF),
    ),
    "qos": ConcurrentScenario(
        name="qos",
        description="QoS priority validation: EF probe over a CS0 background flood",
        expect="EF RTT unaffected by the CS0 load",
        background=Session("CS0 stream", _p(999999, 0.05, 1200, TC.CS0)),
        foreground=Session("EF stream", _p(3000, 10, 0, TC.EF)),
    ),
    "qos_ef": SingleScenario(
        name="qos_ef",
        description="EF probe only (run alongside qos_flood from another host)",
        profile=_p(3000, 10, 0, TC.EF),
        role="EF stream",
    ),
    "qos_flood": SingleScenario(
        name="qos_flood",
        description="CS0 background flood only",
        profile=_p(999999, 0.05, 1200, TC.CS0),
        role="CS0 stream",
    ),
    "loss": SingleScenario(
        name="loss",
        description="Packet loss analysis: AF41, 1M packets at 50K pps",
        expect="classify loss as burst (buffer overflow) or uniform (bad link)",
        profile=_p(1000000, 0.02, 0, TC.AF41),
    ),
    "ttl_sweep": SweepScenario(
        name="ttl_sweep",
        description="TTL hop-by-hop latency fingerprint",
        expect="low TTL points lose everything unless hops answer TTL exceeded",
        profile=_p(100, 10, 0, TC.EF, fragmentation=Fragmentation.ALLOW),
        ttl_values=(1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 15, 20, 30, 64),
    ),
    "eod": SequentialScenario(
        name="eod",
        description="EOD burst -> 30s silence -> recovery (adaptive coalescing test)",
        expect="phase 3 latency, first packets especially, matches phase 1",
        phases=(
            Session("phase 1", _p(300000, 0.1, 100, TC.CS6)),
            Session("phase 3", _p(300000, 0.1, 100, TC.CS6), gap_before_s=30.0),
        ),
    ),
    "ipv6": SequentialScenario(
        name="ipv6",
        description="IPv4 vs IPv6 RTT on the same path",
        expect="no difference beyond protocol-processing noise",
        phases=(
            Session("IPv4", _p(1000, 10, 0, TC.EF)),
            Session("IPv6", _p(1000, 10, 0, TC.EF, family=AddressFamily.V6)),
        ),
    ),
    "overnight": SingleScenario(
        name="overnight",
        description="8-hour SLA watchdog: EF, 1 pps",
        expect="carrier p99 SLA met across maintenance windows",
        profile=_p(28800, 1000, 0, TC.EF),
    ),
}

# full characterization suite; overnight and the interactive QoS runs are left out
SUITE = (
    "baseline", "fix_heartbeat", "order_entry", "market_data_primary",
    "market_data_secondary", "market_open_burst", "options_chain", "jitter",
    "buffer_bloat", "loss", "ttl_sweep", "eod",
)


def get(name: str):
    try:
        return SCENARIOS[name]
    except KeyError:
        raise KeyError(f"unknown scenario '{name}'; try one of: {', '.join(SCENARIOS)}") from None


def _command(profile: Profile, host: str, port: int) -> str:
    interval_ms = profile.interval_s / MS
    parts = ["twampy sender", f"--count {profile.count}", f"--interval {interval_ms:g}",
             f"--padding {profile.payload_size}", f"--tos {profile.traffic_class.tos}",
             f"--ttl {profile.ttl}"]
    if profile.family is AddressFamily.V6:
        parts.insert(1, "--ipv6")
    if profile.fragmentation is Fragmentation.FORBID:
        parts.append("--do-not-fragment")
    parts.append(f"{host}:{port}")
    return " ".join(parts)


def quick_reference(host: str = "10.0.0.2", port: int = 862) -> str:
    """Equivalent standalone twampy one-liners for every scenario."""
    lines = [f"# Start responder on the remote host: twampy responder --port {port}", ""]
    for name, sc in SCENARIOS.items():
        lines.append(f"# -- {name}: {sc.description}")
        for sess in sc.sessions():
            if sc.pattern != "single":
                lines.append(f"#    {sess.role}")
            lines.append(_command(sess.profile, host, port))
        lines.append("")
    return "\n".join(lines)


def capped(sc, max_count: int, max_gap_s: Optional[float] = None):
    """
    Copy of a scenario with every session limited to max_count probes (and
    silences to max_gap_s), for smoke runs against the fake prober.
    """
    def cap(sess: Session) -> Session:
        gap = sess.gap_before_s if max_gap_s is None else min(sess.gap_before_s, max_gap_s)
        return replace(sess, profile=replace(sess.profile, count=min(sess.profile.count, max_count)),
                       gap_before_s=gap)

    if isinstance(sc, SingleScenario):
        return replace(sc, profile=replace(sc.profile, count=min(sc.profile.count, max_count)))
    if isinstance(sc, SweepScenario):
        return replace(sc, profile=replace(sc.profile, count=min(sc.profile.count, max_count)))
    if isinstance(sc, SequentialScenario):
        return replace(sc, phases=tuple(cap(p) for p in sc.phases))
    if isinstance(sc, ConcurrentScenario):
        return replace(sc, background=cap(sc.background), foreground=cap(sc.foreground))
    raise TypeError(f"unsupported scenario type: {type(sc).__name__}")
