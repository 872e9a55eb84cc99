#!/usr/bin/env python3
"""
Does the moon phase move restaurant review ratings?

Joins every review with the moon phase in effect on its date and tests for a
rating difference at two granularities:
  1. by phase (New Moon / First Quarter / Full Moon / Last Quarter), all reviews
  2. by complete lunar cycle (group_id), reviews inside complete cycles only

For each grouping: Levene's test for equal variances, then one-way ANOVA if
variances look equal or Welch's ANOVA if they do not. Kruskal-Wallis is
reported alongside as a rank-based cross-check.

Usage:
  python research_moon_reviews.py
  python research_moon_reviews.py --reviews data/reviews.csv --phases data/moon_phases.csv --alpha 0.01

Output (results/):
  moon_reviews_report.txt           full console report
  moon_reviews_phase_summary.csv    mean/sd per phase
  moon_reviews_cycle_summary.csv    mean/sd/total per complete cycle
  moon_reviews_phase_distribution.csv
  moon_reviews_tests.csv            statistic / p-value per test
  moon_reviews_bad_rows.csv         review rows that failed to parse
  moon_reviews_*.png                violin+box, histograms, ridgeline, cycle totals
"""

import sys
import time
import argparse
import warnings
from pathlib import Path

import pandas as pd

from moon_reviews import (
    REVIEWS_CSV, MOON_PHASES_CSV, RESULTS_DIR, PHASE_NAMES,
    ParseError, UnknownPhaseLabelError,
    load_reviews, load_moon_phases, normalize_reviews, normalize_moon_phases,
    check_coverage, join_moon_phases, group_cycles, cycle_frame,
)
from moon_stats import (
    ALPHA, summarize_ratings, rating_distribution, compare_groups, results_table,
)

REPORT_NAME = "moon_reviews_report.txt"


class TeeWriter:
    """Write to both stdout and a file simultaneously."""
    def __init__(self, filepath, stdout):
        self.file = open(filepath, "w", encoding="utf-8")
        self.stdout = stdout

    def write(self, text):
        self.stdout.write(text)
        self.file.write(text)

    def flush(self):
        self.stdout.flush()
        self.file.flush()

    def close(self):
        self.file.close()


def _day(ts):
    return "n/a" if pd.isna(ts) else f"{ts:%Y-%m-%d}"


def _banner(title):
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}")


def _print_test(res):
    stat = f"{res.statistic:.4f}" if pd.notna(res.statistic) else "n/a"
    p = f"{res.p_value:.4f}" if pd.notna(res.p_value) else "n/a"
    dfs = ""
    if pd.notna(res.df_between):
        dfs = f" df=({res.df_between:g}" + (f", {res.df_within:.1f})" if pd.notna(res.df_within) else ")")
    print(f"    {res.name:<15s} stat={stat:>10s}  p={p:>8s}{dfs}")
    for w in res.warnings:
        print(f"      WARNING: {w}")


def _print_comparison(comp, alpha):
    print(f"\n  Grouping: {comp['by']} ({comp['n_groups']} groups)")
    for key in ("levene", "anova", "welch", "kruskal"):
        _print_test(comp[key])
    verdict = "equal" if comp["equal_variances"] else "UNEQUAL"
    chosen = comp["mean_test"]
    print(f"    → variances {verdict} (alpha={alpha}), reading {chosen.name}")


def _conclusion(comp, alpha, what):
    chosen = comp["mean_test"]
    if pd.isna(chosen.p_value):
        return f"{what}: not testable ({'; '.join(chosen.warnings) or 'no result'})"
    if chosen.significant(alpha):
        return f"{what}: mean rating DIFFERS ({chosen.name} p={chosen.p_value:.4f} < {alpha})"
    return f"{what}: no evidence of a difference ({chosen.name} p={chosen.p_value:.4f} >= {alpha})"


def run(reviews_path=REVIEWS_CSV, phases_path=MOON_PHASES_CSV, results_dir=RESULTS_DIR,
        alpha=ALPHA, make_plots=True):
    """Run the full analysis and write every artifact into results_dir."""
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)

    _banner("1. LOAD")
    raw_reviews = load_reviews(reviews_path)
    raw_phases = load_moon_phases(phases_path)

    _banner("2. NORMALIZE")
    phases = normalize_moon_phases(raw_phases)
    reviews, bad_rows = normalize_reviews(raw_reviews)
    print(f"  Reviews kept: {len(reviews):,} ({len(bad_rows)} bad rows)")
    print(f"  Phase starts: {len(phases):,}")

    if reviews.empty:
        print("  WARNING: no reviews left after parsing, nothing to analyze")
    cov = check_coverage(reviews, phases)
    print(f"  Review window: {_day(cov['review_min'])} → {_day(cov['review_max'])}")
    print(f"  Phase window:  {_day(cov['phase_min'])} → {_day(cov['phase_max'])}")
    if not cov["brackets"]:
        print(f"  WARNING: phase window does not bracket review window "
              f"({cov['n_before']} reviews before first phase, "
              f"{cov['n_after']} after last phase start)")

    _banner("3. JOIN REVIEWS → MOON PHASE")
    joined, n_uncovered = join_moon_phases(reviews, phases)
    print(f"  Joined: {len(joined):,} reviews, excluded (outside coverage): {n_uncovered}")

    _banner("4. LUNAR CYCLE GROUPS")
    groups, discarded = group_cycles(joined)
    cycles = cycle_frame(groups)
    print(f"  Complete cycles: {len(groups)} ({len(cycles):,} reviews)")
    print(f"  Reviews in incomplete cycles (excluded from cycle view): {len(discarded):,}")
    if groups:
        print(f"  First: group {groups[0].group_id} {groups[0].start:%Y-%m-%d} → {groups[0].end:%Y-%m-%d}")
        print(f"  Last:  group {groups[-1].group_id} {groups[-1].start:%Y-%m-%d} → {groups[-1].end:%Y-%m-%d}")

    _banner("5. DESCRIPTIVE STATISTICS")
    phase_summary = summarize_ratings(joined, "phase_code")
    phase_summary.insert(0, "phase", [PHASE_NAMES[c] for c in phase_summary.index])
    cycle_summary = summarize_ratings(cycles, "group_id")
    distribution = rating_distribution(joined, "phase_label")

    print("\n  Rating by phase:")
    print(phase_summary.round(3).to_string())
    print("\n  Rating share by phase (rows sum to 1):")
    print(distribution.round(3).to_string())
    if len(cycle_summary):
        print(f"\n  Rating by cycle ({len(cycle_summary)} cycles), mean of cycle means "
              f"{cycle_summary['mean'].mean():.3f}, sd {cycle_summary['mean'].std():.3f}")
        print(cycle_summary.round(3).head(10).to_string())
        if len(cycle_summary) > 10:
            print(f"  ... {len(cycle_summary) - 10} more in moon_reviews_cycle_summary.csv")

    _banner("6. HYPOTHESIS TESTS")
    by_phase = compare_groups(joined, "phase_code", alpha=alpha)
    by_cycle = compare_groups(cycles, "group_id", alpha=alpha)
    _print_comparison(by_phase, alpha)
    _print_comparison(by_cycle, alpha)
    tests = results_table([by_phase, by_cycle])

    tables = {
        'moon_reviews_phase_summary.csv': phase_summary,
        'moon_reviews_cycle_summary.csv': cycle_summary,
        'moon_reviews_phase_distribution.csv': distribution,
    }
    for name, table in tables.items():
        table.to_csv(results_dir / name)
    tests.to_csv(results_dir / 'moon_reviews_tests.csv', index=False)
    bad_rows.to_csv(results_dir / 'moon_reviews_bad_rows.csv', index=False)
    print(f"\n  Saved: {len(tables) + 2} CSVs")

    if make_plots and joined.empty:
        print("\n  WARNING: no joined reviews, charts skipped")
    elif make_plots:
        _banner("7. CHARTS")
        from plot_moon_reviews import plot_all
        plot_all(joined, cycles, results_dir)

    _banner("CONCLUSION")
    conclusions = [
        _conclusion(by_phase, alpha, "By moon phase"),
        _conclusion(by_cycle, alpha, "By lunar cycle"),
    ]
    for line in conclusions:
        print(f"  {line}")

    return {
        "reviews": reviews,
        "bad_rows": bad_rows,
        "phases": phases,
        "coverage": cov,
        "joined": joined,
        "n_uncovered": n_uncovered,
        "groups": groups,
        "discarded": discarded,
        "phase_summary": phase_summary,
        "cycle_summary": cycle_summary,
        "by_phase": by_phase,
        "by_cycle": by_cycle,
        "tests": tests,
        "conclusions": conclusions,
    }


def main(argv=None):
    parser = argparse.ArgumentParser(description="Moon phase vs restaurant review ratings")
    parser.add_argument("--reviews", default=str(REVIEWS_CSV),
                        help="Review CSV with columns date (YYYY-MM-DD), rating (1-5)")
    parser.add_argument("--phases", default=str(MOON_PHASES_CSV),
                        help="Moon phase CSV with columns date (MM/DD/YYYY), phase")
    parser.add_argument("--results-dir", default=str(RESULTS_DIR))
    parser.add_argument("--alpha", type=float, default=ALPHA,
                        help="Significance level for all tests")
    parser.add_argument("--no-plots", action="store_true", help="Skip PNG charts")
    args = parser.parse_args(argv)
    warnings.filterwarnings("ignore", category=FutureWarning)

    results_dir = Path(args.results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)

    tee = TeeWriter(results_dir / REPORT_NAME, sys.stdout)
    old_stdout = sys.stdout
    sys.stdout = tee
    t0 = time.time()
    try:
        print("=" * 70)
        print("  MOON PHASE x RESTAURANT REVIEW RATINGS")
        print(f"  Reviews: {args.reviews}")
        print(f"  Phases:  {args.phases}")
        print(f"  Alpha:   {args.alpha}")
        print("=" * 70)
        run(args.reviews, args.phases, results_dir, args.alpha, make_plots=not args.no_plots)
    except (ParseError, UnknownPhaseLabelError, FileNotFoundError) as e:
        print(f"\nERROR: {e}")
        return 1
    finally:
        print(f"\nDone! {time.time() - t0:.1f}s total")
        sys.stdout = old_stdout
        tee.close()

    print(f"<<< Report → {results_dir / REPORT_NAME}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
