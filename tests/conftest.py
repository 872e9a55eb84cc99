"""
Pytest configuration and shared fixtures.

Synthetic inputs shaped like the real files: a moon-phase table with one row
per principal phase (MM/DD/YYYY) and a daily review export (YYYY-MM-DD).
"""
import numpy as np
import pandas as pd
import pytest

from moon_reviews import PHASE_NAMES

SYNODIC_DAYS = 29.53
PHASE_OFFSETS = [0, 7, 15, 22]  # day offsets of the four phases inside a cycle


def make_raw_phases(start="2020-01-01", n_cycles=12):
    start = pd.Timestamp(start)
    rows = []
    for cycle in range(n_cycles):
        base = int(round(cycle * SYNODIC_DAYS))
        for code, offset in zip(sorted(PHASE_NAMES), PHASE_OFFSETS):
            day = start + pd.Timedelta(days=base + offset)
            rows.append({"date": day.strftime("%m/%d/%Y"), "phase": PHASE_NAMES[code]})
    return pd.DataFrame(rows)


def make_raw_reviews(start="2020-01-01", days=300, per_day=3, seed=7):
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=days, freq="D").repeat(per_day)
    return pd.DataFrame({
        "date": dates.strftime("%Y-%m-%d"),
        "rating": rng.integers(1, 6, size=len(dates)).astype(str),
    })


def with_source_row(df):
    return df.assign(source_row=np.arange(1, len(df) + 1))


@pytest.fixture
def raw_phases() -> pd.DataFrame:
    return with_source_row(make_raw_phases())


@pytest.fixture
def raw_reviews() -> pd.DataFrame:
    return with_source_row(make_raw_reviews())


@pytest.fixture
def csv_inputs(tmp_path):
    """Write synthetic reviews/phases CSVs and return their paths."""
    reviews_path = tmp_path / "reviews.csv"
    phases_path = tmp_path / "moon_phases.csv"
    # reviews start a few days before the first phase so some fall outside coverage
    make_raw_reviews(start="2019-12-28", days=320).to_csv(reviews_path, index=False)
    make_raw_phases().to_csv(phases_path, index=False)
    return reviews_path, phases_path


@pytest.fixture
def phases_jan_2024() -> pd.DataFrame:
    return pd.DataFrame({
        "start_date": pd.to_datetime(["2024-01-01", "2024-01-08", "2024-01-16", "2024-01-23"]),
        "phase_label": [PHASE_NAMES[c] for c in (1, 2, 3, 4)],
        "phase_code": [1, 2, 3, 4],
    })
