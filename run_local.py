"""
run_local.py — Command-line interface for Money Muling Detection Engine.

Run with:  python run_local.py [csv_file]
           python run_local.py --sample    (use built-in sample data)
           python run_local.py data.csv --json report.json
"""

import argparse
import sys
import time
from pathlib import Path

from utils.validation import read_csv_text, validate_csv, quick_stats
from utils.sample_data import generate_sample_csv
from utils.json_export import report_to_json_string, build_ring_summary_table
from detection.pipeline import run_analysis


def print_separator(title: str = "") -> None:
    """Print a visual separator."""
    if title:
        print(f"\n{'='*60}\n  {title}\n{'='*60}")
    else:
        print("-" * 60)


def load_transactions(args: argparse.Namespace):
    """Load and validate the input batch; exit with code 1 on failure."""
    if args.sample or args.csv_file is None:
        print("[INFO] Using built-in sample data with embedded fraud patterns...")
        is_valid, errors, cleaned_df = validate_csv(generate_sample_csv())
    else:
        csv_path = Path(args.csv_file)
        if not csv_path.exists():
            print(f"[ERROR] File not found: {csv_path}")
            sys.exit(1)
        print(f"[INFO] Loading CSV: {csv_path}")
        is_valid, errors, cleaned_df = read_csv_text(csv_path.read_text(encoding="utf-8"))

    if not is_valid:
        print("\n[ERROR] Invalid CSV data:")
        for err in errors:
            print(f"  - row {err['row']}: {err['message']}")
        sys.exit(1)

    stats = quick_stats(cleaned_df)
    print(
        f"[OK] Loaded {stats['total_transactions']} transactions across "
        f"{stats['unique_accounts']} accounts ({stats['date_range'][0]} → {stats['date_range'][1]})"
    )
    return cleaned_df


def print_results(results: dict, top: int = 20) -> None:
    """Print detection results to console."""
    report = results["report"]
    cycle_results = results["cycle_results"]
    smurfing_results = results["smurfing_results"]
    layering_results = results["layering_results"]

    # ── High-risk accounts ───────────────────────────────────────────────
    print_separator("HIGH-RISK ACCOUNTS (Score >= 50)")
    high_risk = [s for s in report["suspicious_accounts"] if s["suspicion_score"] >= 50]

    if high_risk:
        print(f"{'Account':<20} {'Score':>8}  {'Ring':<10} {'Patterns':<40}")
        print("-" * 80)
        for acc in high_risk[:top]:
            patterns = ", ".join(acc["detected_patterns"])
            print(f"{acc['account_id']:<20} {acc['suspicion_score']:>8.1f}  {acc['ring_id']:<10} {patterns:<40}")
    else:
        print("No high-risk accounts found.")

    # ── Detected cycles ──────────────────────────────────────────────────
    print_separator("CIRCULAR FUND ROUTING (Cycles)")
    cycles = cycle_results["rings"]
    if cycles:
        for ring in cycles[:top]:
            path = " -> ".join(ring["member_accounts"])
            flags = []
            if ring["temporal_proximity"]:
                flags.append("within 72h")
            if ring["amount_similarity"]:
                flags.append("similar amounts")
            print(f"  [{ring['ring_id']}] {path} -> {ring['member_accounts'][0]}  "
                  f"risk={ring['risk_score']}  {', '.join(flags)}")
        if len(cycles) > top:
            print(f"  ... {len(cycles) - top} more")
    else:
        print("No circular routing detected.")

    # ── Smurfing hubs ────────────────────────────────────────────────────
    print_separator("SMURFING HUBS")
    hubs = smurfing_results["rings"]
    if hubs:
        for ring in hubs[:top]:
            print(f"  [{ring['ring_id']}] {ring['hub_account']}: {ring['direction']}, "
                  f"in={ring['fan_in_count']} out={ring['fan_out_count']}, "
                  f"velocity={ring['velocity']:.2f}, risk={ring['risk_score']}")
    else:
        print("No smurfing hubs detected.")
    suppressed = smurfing_results.get("suppressed_hubs", [])
    if suppressed:
        print(f"\n  Suppressed as merchant/payroll: {', '.join(suppressed)}")

    # ── Layering chains ──────────────────────────────────────────────────
    print_separator("LAYERED SHELL CHAINS")
    chains = layering_results["rings"]
    if chains:
        for ring in chains[:top]:
            accts = " → ".join(ring["chain"])
            print(f"  [{ring['ring_id']}] {accts}  ({ring['hop_count']} hops, "
                  f"{ring['shell_count']} shells, risk={ring['risk_score']})")
    else:
        print("No layering chains detected.")

    # ── Ring table ───────────────────────────────────────────────────────
    print_separator("FRAUD RING SUMMARY")
    for row in build_ring_summary_table(report)[:top]:
        print(f"  {row['Ring ID']:<10} {row['Pattern Type']:<10} "
              f"{row['Member Count']:>4} members  risk={row['Risk Score']:>5.1f}")

    # ── Summary statistics ───────────────────────────────────────────────
    print_separator("SUMMARY")
    summary = report["summary"]
    print(f"  Total Accounts Analyzed:  {summary['total_accounts_analyzed']}")
    print(f"  Suspicious Accounts:      {summary['suspicious_accounts_flagged']}")
    print(f"  Fraud Rings Detected:     {summary['fraud_rings_detected']}")
    print(f"  Processing Time (s):      {summary['processing_time_seconds']:.2f}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Money Muling Detection Engine")
    parser.add_argument("csv_file", nargs="?", help="transaction CSV file")
    parser.add_argument("--sample", action="store_true", help="use built-in sample data")
    parser.add_argument(
        "--json",
        nargs="?",
        const="detection_report.json",
        default=None,
        metavar="PATH",
        help="write the JSON report (default: detection_report.json)",
    )
    parser.add_argument("--top", type=int, default=20, help="rows to show per section")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    print_separator("Money Muling Detection Engine")

    start_time = time.perf_counter()
    cleaned_df = load_transactions(args)

    print("[...] Running cycle, smurfing and layering detection...")
    results = run_analysis(cleaned_df, started_at=start_time)

    print_results(results, top=args.top)

    if args.json:
        output_path = Path(args.json)
        output_path.write_text(report_to_json_string(results["report"]))
        print(f"\n[OK] JSON report saved to: {output_path}")

    print("\n" + "=" * 60)
    print("  Detection complete!")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
