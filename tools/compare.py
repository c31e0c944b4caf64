# tools/compare.py
# Compare two saved JSON results (written with --format json):
#   python3 -m tools.compare results/..._market_data_primary.json results/..._market_data_secondary.json
#   python3 -m tools.compare a.json b.json --metric p50 --metric p99 --threshold 5
import argparse
import sys

from pathprobe.analysis.compare import classify_loss, delta
from pathprobe.config import Settings
from pathprobe.errors import IncomparableResults
from pathprobe.report import load_result, text_summary


def build_argparser():
    ap = argparse.ArgumentParser(description="Compare two saved path characterization results")
    ap.add_argument("a", help="Reference result (JSON)")
    ap.add_argument("b", help="Result under test (JSON)")
    ap.add_argument("--metric", action="append", dest="metrics",
                    help="Metric to compare (repeatable; default p99)")
    ap.add_argument("--threshold", type=float, help="Significance threshold in percent")
    ap.add_argument("--allow-count-mismatch", action="store_true",
                    help="Compare results with different probe counts")
    return ap


def main():
    args = build_argparser().parse_args()
    settings = Settings.from_env()
    threshold = settings.significance_pct if args.threshold is None else args.threshold
    a, b = load_result(args.a), load_result(args.b)
    print(text_summary(a, "A"))
    print(text_summary(b, "B"))
    try:
        deltas = delta(a, b, metrics=tuple(args.metrics or ("p99",)), threshold_pct=threshold,
                       match_counts=not args.allow_count_mismatch)
    except IncomparableResults as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    for name, d in deltas.items():
        pct = "n/a" if d.pct is None else f"{d.pct:+.1f}%"
        diff = f"{d.diff / 1000:+.2f}us"
        print(f"{name}: {diff} ({pct})" + (" SIGNIFICANT" if d.significant else ""))
    for label, r in (("A", a), ("B", b)):
        if r.summary.lost:
            print(f"{label} loss pattern: "
                  f"{classify_loss(r, settings.burst_min_run, settings.burst_share)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
