#!/usr/bin/env python3
"""Charts for the moon phase x review rating study."""

from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from moon_reviews import PHASE_NAMES, RESULTS_DIR

PHASE_ORDER = [PHASE_NAMES[c] for c in sorted(PHASE_NAMES)]
PHASE_COLORS = {
    "New Moon": '#37474F',
    "First Quarter": '#1E88E5',
    "Full Moon": '#FBC02D',
    "Last Quarter": '#8E24AA',
}


def _save(fig, path):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    print(f"  Saved: {path}")
    return path


def plot_violin_box(joined, path=RESULTS_DIR / 'moon_reviews_violin.png'):
    """Violin of rating per phase with a narrow box plot overlaid."""
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.violinplot(data=joined, x='phase_label', y='rating', order=PHASE_ORDER,
                   hue='phase_label', palette=PHASE_COLORS, legend=False,
                   inner=None, cut=0, linewidth=1, ax=ax)
    sns.boxplot(data=joined, x='phase_label', y='rating', order=PHASE_ORDER,
                width=0.15, color='white', linecolor='black', fliersize=2, ax=ax)

    ax.set_xlabel('')
    ax.set_ylabel('Rating (stars)', fontsize=11)
    ax.set_yticks(range(1, 6))
    ax.set_title('Review Rating by Moon Phase', fontsize=13, fontweight='bold')
    ax.grid(True, alpha=0.3, axis='y')
    return _save(fig, path)


def plot_phase_histograms(joined, path=RESULTS_DIR / 'moon_reviews_hist.png'):
    """2x2 grid, one rating histogram per phase (shared axes)."""
    fig, axes = plt.subplots(2, 2, figsize=(12, 8), sharex=True, sharey=True)
    bins = np.arange(0.5, 6.5, 1.0)

    for ax, label in zip(axes.flat, PHASE_ORDER):
        sub = joined[joined['phase_label'] == label]
        sns.histplot(sub['rating'], bins=bins, stat='percent', color=PHASE_COLORS[label],
                     edgecolor='white', ax=ax)
        mean = sub['rating'].mean() if len(sub) else np.nan
        ax.set_title(f'{label} (n={len(sub):,}, mean={mean:.2f})', fontsize=11)
        ax.set_xticks(range(1, 6))
        ax.set_xlabel('Rating')
        ax.grid(True, alpha=0.3, axis='y')

    fig.suptitle('Rating Distribution per Moon Phase', fontsize=13, fontweight='bold')
    return _save(fig, path)


def plot_ridgeline(joined, path=RESULTS_DIR / 'moon_reviews_ridgeline.png', overlap=0.6):
    """Stacked KDE curves of rating, one ridge per phase (New Moon on top)."""
    fig, ax = plt.subplots(figsize=(10, 6))
    xs = np.linspace(0.5, 5.5, 300)

    curves = {}
    for label in PHASE_ORDER:
        vals = joined.loc[joined['phase_label'] == label, 'rating'].astype(float).values
        if len(vals) < 2 or np.ptp(vals) == 0:
            print(f"  WARNING: ridgeline skips {label} (n={len(vals)}, no spread)")
            continue
        curves[label] = stats.gaussian_kde(vals)(xs)

    peak = max((c.max() for c in curves.values()), default=1.0)
    step = 1.0 - overlap
    for i, label in enumerate(PHASE_ORDER):
        base = (len(PHASE_ORDER) - 1 - i) * step
        if label in curves:
            y = base + curves[label] / peak
            ax.fill_between(xs, base, y, color=PHASE_COLORS[label], alpha=0.7, zorder=10 + i)
            ax.plot(xs, y, color='black', linewidth=0.8, zorder=10 + i)
        ax.axhline(base, color='gray', linewidth=0.5, alpha=0.5)

    ax.set_yticks([(len(PHASE_ORDER) - 1 - i) * step for i in range(len(PHASE_ORDER))])
    ax.set_yticklabels(PHASE_ORDER)
    ax.set_xticks(range(1, 6))
    ax.set_xlabel('Rating', fontsize=11)
    ax.set_title('Rating Density by Moon Phase (ridgeline)', fontsize=13, fontweight='bold')
    return _save(fig, path)


def plot_cycle_totals(cycles, path=RESULTS_DIR / 'moon_reviews_cycles.png'):
    """Bar chart of total rating per complete cycle group.

    cycles: records of complete groups (with group_id), see cycle_frame()."""
    totals = cycles.groupby('group_id').agg(total=('rating', 'sum'), start=('date', 'min'))
    fig, ax = plt.subplots(figsize=(14, 5))

    x = np.arange(len(totals))
    mean_val = totals['total'].mean() if len(totals) else 0.0
    colors = ['#43A047' if t >= mean_val else '#E53935' for t in totals['total']]
    ax.bar(x, totals['total'].values, color=colors, alpha=0.8)
    ax.axhline(y=mean_val, color='gray', linewidth=1, linestyle='--', alpha=0.7,
               label=f'mean = {mean_val:.0f}')

    every = max(1, len(totals) // 20)
    ax.set_xticks(x[::every])
    ax.set_xticklabels([f'{gid}\n{pd.Timestamp(s):%Y-%m}' for gid, s in
                        zip(totals.index[::every], totals['start'].iloc[::every])], fontsize=8)
    ax.set_xlabel('Cycle group (start month)', fontsize=11)
    ax.set_ylabel('Total rating (sum of stars)', fontsize=11)
    ax.set_title('Total Rating per Complete Lunar Cycle', fontsize=13, fontweight='bold')
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3, axis='y')
    return _save(fig, path)


def plot_all(joined, cycles, results_dir=RESULTS_DIR):
    results_dir = Path(results_dir)
    return [
        plot_violin_box(joined, results_dir / 'moon_reviews_violin.png'),
        plot_phase_histograms(joined, results_dir / 'moon_reviews_hist.png'),
        plot_ridgeline(joined, results_dir / 'moon_reviews_ridgeline.png'),
        plot_cycle_totals(cycles, results_dir / 'moon_reviews_cycles.png'),
    ]
