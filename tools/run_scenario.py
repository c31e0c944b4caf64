# tools/run_scenario.py
# Usage examples:
#   python3 -m tools.run_scenario list
#   python3 -m tools.run_scenario show eod
#   RESPONDER_IP=10.0.0.2 python3 -m tools.run_scenario run baseline
#   python3 -m tools.run_scenario run qos --confirm
#   python3 -m tools.run_scenario run eod --target fake --max-count 2000 --max-gap 2
#   python3 -m tools.run_scenario all --format json
#   python3 -m tools.run_scenario quickref

import argparse
import os
import random
import signal
import sys
import threading
from dataclasses import replace

from pathprobe import scenarios
from pathprobe.analysis.compare import classify_loss, compare_roles, idle_recovery, per_hop_profile
from pathprobe.brain.engine import ScenarioEngine
from pathprobe.brain.scenario import ConcurrentScenario, OperatorConfirm
from pathprobe.config import Settings
from pathprobe.context import RunContext
from pathprobe.errors import IncomparableResults, PathProbeError, ScenarioAborted
from pathprobe.log import setup_logger
from pathprobe.profile import TrafficClass
from pathprobe.report import render_scenario, write_scenario
from pathprobe.suite import run_suite


def make_fake_prober():
    from pathprobe.prober.fake import FakeProber

    # best effort is queued behind the marked classes; 0.1% random loss
    def rtt(profile, seq):
        if random.random() < 0.001:
            return None
        base = 0.00040 if profile.traffic_class is not TrafficClass.CS0 else 0.00055
        return base + random.random() * 0.00005

    return FakeProber(rtt_fn=rtt, min_ttl=4)


def make_prober(args, settings):
    if args.target == "fake":
        return make_fake_prober()
    from pathprobe.prober.twamp import TwampLightProber
    return TwampLightProber(interface=settings.local_iface)


def load_settings(args) -> Settings:
    return Settings.from_env(
        responder_ip=args.target if args.target not in (None, "fake") else None,
        responder_port=args.port,
        ipv6_responder=args.ipv6_target,
        local_iface=args.iface,
        results_dir=args.results_dir,
        cpu_pin=args.cpu_pin,
        output_format=args.format,
        probe_timeout_s=args.probe_timeout,
        settle_s=args.settle,
    )


def pin_cpu(settings: Settings, log):
    if settings.cpu_pin is None:
        return
    try:
        os.sched_setaffinity(0, {settings.cpu_pin})
        log.info("pinned sender to CPU core %d", settings.cpu_pin)
    except (AttributeError, OSError) as e:
        log.warning("could not pin to CPU %s: %s", settings.cpu_pin, e)


def prepare(sc, args):
    if args.max_count:
        sc = scenarios.capped(sc, args.max_count, args.max_gap)
    if args.confirm and isinstance(sc, ConcurrentScenario):
        sc = replace(sc, sync=OperatorConfirm())
    return sc


def analyze(sr, settings: Settings) -> list:
    """Scenario-specific follow-up lines printed after the raw summaries."""
    notes = []
    try:
        if sr.pattern == "sweep":
            for hop in per_hop_profile(sr):
                if hop.reached:
                    notes.append(f"  ttl={hop.hop:<3} p50 {hop.summary.p50 / 1000:.2f}us "
                                 f"(+{hop.contribution / 1000:.2f}us)")
                else:
                    notes.append(f"  ttl={hop.hop:<3} no replies")
        elif sr.scenario == "eod" and len(sr.entries) == 2:
            rec = idle_recovery(sr.results[0], sr.results[1], threshold_pct=settings.significance_pct)
            for name, d in rec.overall.items():
                notes.append(f"  {name}: {d.diff / 1000:+.2f}us ({d.pct or 0:+.1f}%)"
                             + (" SIGNIFICANT" if d.significant else ""))
            if rec.spike:
                notes.append("  first packets after silence are slow: check adaptive interrupt coalescing")
        elif sr.scenario == "ipv6" and len(sr.entries) == 2:
            for name, d in compare_roles(sr, "IPv4", "IPv6", metrics=("p50", "p99"),
                                         threshold_pct=settings.significance_pct).items():
                notes.append(f"  IPv6 vs IPv4 {name}: {d.diff / 1000:+.2f}us"
                             + (" SIGNIFICANT" if d.significant else ""))
    except IncomparableResults as e:
        notes.append(f"  comparison skipped: {e}")
    for e in sr.entries:
        if e.params.get("background_load") is False:
            notes.append(f"  {e.role}: background ended early, measured without load")
        if e.result.summary.lost:
            pattern = classify_loss(e.result, settings.burst_min_run, settings.burst_share)
            notes.append(f"  {e.role}: {pattern} loss")
    return notes


def report(sr, ctx, settings) -> list:
    """Save first, then print; a failing analysis never costs the files."""
    paths = write_scenario(ctx, sr) if sr.entries else []
    print(render_scenario(sr))
    for line in analyze(sr, settings):
        print(line)
    for path in paths:
        print(f"  -> {path}")
    return paths


def run_one(engine, sc, ctx, settings, args, cancel=None):
    try:
        sr = engine.run(sc, cancel=cancel, deadline_s=args.deadline)
    except ScenarioAborted as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sr = e.partial
    report(sr, ctx, settings)
    return 0 if sr.state == "completed" else 2


def cancel_on_interrupt(cancel: threading.Event, interrupted: threading.Event):
    """First Ctrl+C stops the run and keeps partial results; a second one exits hard."""
    def handler(signum, frame):
        if interrupted.is_set():
            raise KeyboardInterrupt
        print("\ninterrupted: stopping, partial results will be saved (Ctrl+C again to abort)",
              file=sys.stderr)
        interrupted.set()
        cancel.set()
    return signal.signal(signal.SIGINT, handler)


def build_argparser():
    ap = argparse.ArgumentParser(description="Scenario-driven TWAMP-light path characterization")
    ap.add_argument("command", choices=["list", "show", "run", "all", "quickref"])
    ap.add_argument("scenario", nargs="?", help="Scenario name for show/run")
    ap.add_argument("--target", help="Responder host/IP (or 'fake' for the simulated prober)")
    ap.add_argument("--port", type=int, help="Responder port (default 862)")
    ap.add_argument("--ipv6-target", help="Alternate responder for IPv6 sessions")
    ap.add_argument("--iface", help="Egress interface")
    ap.add_argument("--cpu-pin", type=int, help="Pin the sender to this CPU core")
    ap.add_argument("--format", choices=["text", "json", "csv"], help="Output file format")
    ap.add_argument("--results-dir", help="Where to write result files")
    ap.add_argument("--probe-timeout", type=float, help="Per-probe timeout ceiling (s)")
    ap.add_argument("--settle", type=float, help="Settle delay before the foreground stream (s)")
    ap.add_argument("--confirm", action="store_true",
                    help="Wait for ENTER instead of the settle delay in concurrent scenarios")
    ap.add_argument("--deadline", type=float, help="Overall deadline per scenario (s)")
    ap.add_argument("--max-count", type=int, help="Cap probes per session (smoke runs)")
    ap.add_argument("--max-gap", type=float, help="Cap silences when --max-count is used (s)")
    ap.add_argument("--log-file", help="Also log to this file")
    return ap


def main(argv=None):
    ap = build_argparser()
    args = ap.parse_args(argv)
    log = setup_logger(log_file=args.log_file)

    if args.command == "list":
        for name, sc in scenarios.SCENARIOS.items():
            print(f"  {name:<22} {sc.description}")
        return 0

    try:
        settings = load_settings(args)
    except PathProbeError as e:
        ap.error(str(e))

    if args.command == "quickref":
        print(scenarios.quick_reference(settings.responder_ip, settings.responder_port))
        return 0

    if args.command in ("show", "run") and not args.scenario:
        ap.error(f"'{args.command}' needs a scenario name")

    if args.command == "show":
        sc = scenarios.get(args.scenario)
        print(f"{sc.name} ({sc.pattern}): {sc.description}")
        if sc.expect:
            print(f"  expect: {sc.expect}")
        for sess in sc.sessions():
            gap = f" after {sess.gap_before_s:g}s silence" if sess.gap_before_s else ""
            print(f"  {sess.role}: {sess.profile.describe()}{gap}")
        return 0

    pin_cpu(settings, log)
    prober = make_prober(args, settings)
    engine = ScenarioEngine(prober, settings)
    ctx = RunContext.create(settings)
    cancel = threading.Event()
    interrupted = threading.Event()
    previous = cancel_on_interrupt(cancel, interrupted)

    try:
        if args.command == "run":
            try:
                sc = prepare(scenarios.get(args.scenario), args)
            except KeyError as e:
                ap.error(str(e.args[0]))
            try:
                rc = run_one(engine, sc, ctx, settings, args, cancel=cancel)
            except PathProbeError as e:
                print(f"[ERROR] {e}", file=sys.stderr)
                return 1
            return 130 if interrupted.is_set() else rc

        # all
        log.info("=== full characterization suite -> %s (%s) ===", settings.target, settings.results_dir)
        run_suite(engine, scenarios.SUITE, cancel=cancel,
                  prepare=lambda sc: prepare(sc, args),
                  on_result=lambda name, sr: report(sr, ctx, settings))
        if interrupted.is_set():
            print(f"Suite interrupted. Partial results in {settings.results_dir}")
            return 130
        print(f"Suite complete. Results in {settings.results_dir}")
        return 0
    finally:
        signal.signal(signal.SIGINT, previous)


if __name__ == "__main__":
    sys.exit(main())
