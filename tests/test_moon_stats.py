"""Tests for rating summaries and the hypothesis tests."""
import numpy as np
import pandas as pd
import pytest
from scipy import stats

from moon_stats import (
    summarize_ratings, rating_distribution, levene_test, anova_test,
    welch_anova, kruskal_test, compare_groups, results_table,
)


def frame(groups):
    """{key: values} -> long DataFrame with columns key, rating."""
    return pd.DataFrame(
        [(k, v) for k, values in groups.items() for v in values],
        columns=["key", "rating"],
    )


def test_summarize_ratings():
    df = frame({2: [4, 4, 5, 3], 1: [1, 3]})

    out = summarize_ratings(df, "key")

    assert out.index.tolist() == [1, 2]
    assert out.loc[1, "n"] == 2
    assert out.loc[1, "mean"] == pytest.approx(2.0)
    assert out.loc[1, "sd"] == pytest.approx(np.sqrt(2.0))
    assert out.loc[2, "total"] == 16
    assert out.loc[2, "median"] == pytest.approx(4.0)


def test_rating_distribution_rows_sum_to_one():
    df = frame({"a": [1, 1, 5, 5], "b": [3, 4]})

    dist = rating_distribution(df, "key")

    assert dist.columns.tolist() == [1, 2, 3, 4, 5]
    assert dist.loc["a", 1] == pytest.approx(0.5)
    assert dist.loc["b", 2] == 0
    np.testing.assert_allclose(dist.sum(axis=1).values, 1.0)


def test_welch_anova_two_groups_equals_welch_t_test():
    rng = np.random.default_rng(0)
    a = rng.normal(3.0, 0.5, 40)
    b = rng.normal(3.4, 1.5, 25)

    res = welch_anova({"a": a, "b": b})
    t = stats.ttest_ind(a, b, equal_var=False)

    assert res.statistic == pytest.approx(t.statistic ** 2)
    assert res.p_value == pytest.approx(t.pvalue)
    assert res.df_between == 1


def test_welch_anova_detects_shifted_group():
    rng = np.random.default_rng(1)
    groups = {
        1: rng.normal(3.0, 1.0, 200),
        2: rng.normal(3.0, 0.3, 200),
        3: rng.normal(4.0, 2.0, 200),
    }
    res = welch_anova(groups)
    assert res.p_value < 1e-6
    assert res.significant()


def test_anova_matches_scipy():
    groups = {"a": [1, 2, 3, 4], "b": [2, 3, 4, 5], "c": [5, 5, 4, 4]}
    res = anova_test(groups)
    expected = stats.f_oneway(*groups.values())
    assert res.statistic == pytest.approx(expected.statistic)
    assert res.p_value == pytest.approx(expected.pvalue)
    assert (res.df_between, res.df_within) == (2, 9)


def test_compare_groups_uses_anova_when_variances_equal():
    base = [1, 2, 3, 4, 5] * 4
    df = frame({"a": base, "b": [v + 1 for v in base], "c": base})

    comp = compare_groups(df, "key")

    assert comp["equal_variances"]
    assert comp["levene"].p_value == pytest.approx(1.0)
    assert comp["mean_test"] is comp["anova"]


def test_compare_groups_falls_back_to_welch():
    rng = np.random.default_rng(2)
    df = frame({"calm": rng.normal(3, 0.1, 200), "wild": rng.normal(3, 5.0, 200)})

    comp = compare_groups(df, "key")

    assert not comp["equal_variances"]
    assert comp["levene"].p_value < 0.001
    assert comp["mean_test"] is comp["welch"]


def test_tiny_group_is_excluded_with_warning():
    res = anova_test({"a": [1], "b": [1, 2, 3], "c": [2, 3, 4]})

    assert np.isfinite(res.p_value)
    assert res.df_between == 1
    assert any("group a excluded" in w for w in res.warnings)


def test_single_group_gives_nan_not_error():
    for test in (levene_test, anova_test, welch_anova, kruskal_test):
        res = test({"only": [1, 2, 3, 4]})
        assert np.isnan(res.statistic)
        assert np.isnan(res.p_value)
        assert not res.significant()
        assert any("at least 2 groups" in w for w in res.warnings)


def test_zero_variance_group_is_reported_by_welch():
    res = welch_anova({"a": [3, 3, 3], "b": [1, 2, 3]})
    assert np.isnan(res.p_value)
    assert any("zero variance" in w for w in res.warnings)


def test_constant_data_is_reported():
    groups = {"a": [4, 4, 4], "b": [4, 4]}
    assert np.isnan(kruskal_test(groups).p_value)
    assert np.isnan(levene_test(groups).p_value)
    assert np.isnan(anova_test(groups).p_value)


def test_results_table_marks_chosen_test():
    base = [1, 2, 3, 4, 5] * 3
    df = frame({"a": base, "b": base})
    comps = [compare_groups(df, "key"), compare_groups(df.assign(key="x"), "key")]

    table = results_table(comps)

    assert len(table) == 8
    assert table["chosen"].sum() == 2
    assert table.loc[table["chosen"], "test"].tolist() == ["ANOVA", "ANOVA"]
    single = table.iloc[4:]
    assert single["p_value"].isna().all()
    assert single["warnings"].str.contains("at least 2 groups").all()


def test_welch_anova_three_groups_matches_welch_formula():
    groups = {
        "a": np.array([3.0, 4.0, 4.0, 5.0, 3.0, 4.0]),
        "b": np.array([1.0, 5.0, 2.0, 5.0, 1.0]),
        "c": np.array([4.0, 4.0, 5.0, 5.0, 4.0, 5.0, 4.0]),
    }
    n = np.array([len(a) for a in groups.values()], dtype=float)
    m = np.array([a.mean() for a in groups.values()])
    w = n / np.array([a.var(ddof=1) for a in groups.values()])
    m_w = (w * m).sum() / w.sum()
    lam = ((1 - w / w.sum()) ** 2 / (n - 1)).sum()
    f_stat = (w * (m - m_w) ** 2).sum() / 2 / (1 + 2 * 1 / 8 * lam)
    df2 = 8 / (3 * lam)

    res = welch_anova(groups)

    assert res.statistic == pytest.approx(f_stat)
    assert res.df_between == 2
    assert res.df_within == pytest.approx(df2)
    assert res.p_value == pytest.approx(stats.f.sf(f_stat, 2, df2))


def test_rating_distribution_empty_frame():
    dist = rating_distribution(frame({}), "key")

    assert dist.empty
    assert dist.columns.tolist() == [1, 2, 3, 4, 5]
