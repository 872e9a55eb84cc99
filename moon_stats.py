#!/usr/bin/env python3
"""
Group statistics and hypothesis tests for ratings by moon phase / cycle.

Tests run on each grouping:
  - Levene (median-centered): H0 equal variances across groups
  - One-way ANOVA: H0 equal means, assumes equal variances
  - Welch's ANOVA: H0 equal means, robust to unequal variances
  - Kruskal-Wallis: rank-based cross-check, no normality assumption

When Levene rejects equal variances the Welch result is the one to read.

Precondition problems (tiny groups, a single group, zero variance) are
attached to the TestResult as warnings and give NaN statistics; they never
raise.
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.oneway import anova_oneway


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

ALPHA = 0.05
MIN_GROUP_SIZE = 2
RATING_LEVELS = [1, 2, 3, 4, 5]


# ---------------------------------------------------------------------------
# Descriptive
# ---------------------------------------------------------------------------

def summarize_ratings(df, by, value="rating"):
    """Per-group n / mean / sd / var / median / total, sorted by group key."""
    g = df.groupby(by, sort=True)[value]
    out = pd.DataFrame({
        "n": g.size(),
        "mean": g.mean(),
        "sd": g.std(ddof=1),
        "var": g.var(ddof=1),
        "median": g.median(),
        "total": g.sum(),
    })
    return out


def rating_distribution(df, by, value="rating"):
    """Share of each rating level per group. Rows sum to 1."""
    if df.empty:
        return pd.DataFrame(columns=RATING_LEVELS, dtype=float)
    counts = pd.crosstab(df[by], df[value])
    counts = counts.reindex(columns=RATING_LEVELS, fill_value=0)
    return counts.div(counts.sum(axis=1), axis=0)


# ---------------------------------------------------------------------------
# Test results
# ---------------------------------------------------------------------------

@dataclass
class TestResult:
    name: str
    statistic: float = np.nan
    p_value: float = np.nan
    df_between: float = np.nan
    df_within: float = np.nan
    warnings: list = field(default_factory=list)

    # not a pytest test class
    __test__ = False

    def significant(self, alpha=ALPHA):
        return bool(np.isfinite(self.p_value) and self.p_value < alpha)

    def as_row(self):
        return {
            "test": self.name,
            "statistic": self.statistic,
            "p_value": self.p_value,
            "df_between": self.df_between,
            "df_within": self.df_within,
            "warnings": "; ".join(self.warnings),
        }


def _usable_groups(groups, name):
    """Drop groups below MIN_GROUP_SIZE. Returns (arrays, warnings)."""
    arrays = []
    warns = []
    for key, values in groups.items():
        a = np.asarray(values, dtype=float)
        a = a[np.isfinite(a)]
        if len(a) < MIN_GROUP_SIZE:
            warns.append(f"{name}: group {key} excluded (n={len(a)} < {MIN_GROUP_SIZE})")
            continue
        arrays.append(a)
    if len(arrays) < 2:
        warns.append(f"{name}: needs at least 2 groups with n>={MIN_GROUP_SIZE}, got {len(arrays)}")
    return arrays, warns


def _split(df, by, value):
    return {key: grp[value].values for key, grp in df.groupby(by, sort=True)}


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def levene_test(groups):
    """groups: {key: values}."""
    arrays, warns = _usable_groups(groups, "Levene")
    res = TestResult("Levene", warnings=warns)
    if len(arrays) < 2:
        return res
    if all(np.ptp(a) == 0 for a in arrays):
        res.warnings.append("Levene: every group is constant, variances are all zero")
        return res
    res.statistic, res.p_value = (float(x) for x in stats.levene(*arrays, center="median"))
    res.df_between = len(arrays) - 1
    res.df_within = sum(len(a) for a in arrays) - len(arrays)
    return res


def anova_test(groups):
    arrays, warns = _usable_groups(groups, "ANOVA")
    res = TestResult("ANOVA", warnings=warns)
    if len(arrays) < 2:
        return res
    if all(np.ptp(a) == 0 for a in arrays):
        res.warnings.append("ANOVA: zero within-group variance")
        return res
    res.statistic, res.p_value = (float(x) for x in stats.f_oneway(*arrays))
    res.df_between = len(arrays) - 1
    res.df_within = sum(len(a) for a in arrays) - len(arrays)
    return res


def welch_anova(groups):
    """Welch's heteroscedastic one-way ANOVA (statsmodels, use_var="unequal").

    Weights are n_i / s_i^2, so a zero-variance group is reported instead of
    tested."""
    arrays, warns = _usable_groups(groups, "Welch ANOVA")
    res = TestResult("Welch ANOVA", warnings=warns)
    if len(arrays) < 2:
        return res
    if any(a.var(ddof=1) == 0 for a in arrays):
        res.warnings.append("Welch ANOVA: a group has zero variance, weights undefined")
        return res

    out = anova_oneway(arrays, use_var="unequal")
    res.statistic = float(out.statistic)
    res.p_value = float(out.pvalue)
    res.df_between = float(out.df_num)
    res.df_within = float(out.df_denom)
    return res


def kruskal_test(groups):
    arrays, warns = _usable_groups(groups, "Kruskal-Wallis")
    res = TestResult("Kruskal-Wallis", warnings=warns)
    if len(arrays) < 2:
        return res
    pooled = np.concatenate(arrays)
    if np.ptp(pooled) == 0:
        res.warnings.append("Kruskal-Wallis: all values identical")
        return res
    res.statistic, res.p_value = (float(x) for x in stats.kruskal(*arrays))
    res.df_between = len(arrays) - 1
    return res


def compare_groups(df, by, value="rating", alpha=ALPHA):
    """Run all four tests on df grouped by `by`.

    Returns a dict with the TestResults, `equal_variances` and `mean_test`
    (the mean comparison to trust: Welch when Levene rejects at alpha)."""
    groups = _split(df, by, value)
    levene = levene_test(groups)
    anova = anova_test(groups)
    welch = welch_anova(groups)
    kruskal = kruskal_test(groups)

    equal_var = not levene.significant(alpha)
    mean_test = anova if equal_var else welch
    return {
        "by": by,
        "n_groups": len(groups),
        "levene": levene,
        "anova": anova,
        "welch": welch,
        "kruskal": kruskal,
        "equal_variances": equal_var,
        "mean_test": mean_test,
    }


def results_table(comparisons):
    """Flatten compare_groups outputs into one DataFrame (one row per test)."""
    rows = []
    for comp in comparisons:
        for key in ("levene", "anova", "welch", "kruskal"):
            row = comp[key].as_row()
            row["grouping"] = comp["by"]
            row["chosen"] = comp[key] is comp["mean_test"]
            rows.append(row)
    cols = ["grouping", "test", "statistic", "p_value", "df_between", "df_within", "chosen", "warnings"]
    return pd.DataFrame(rows, columns=cols)
