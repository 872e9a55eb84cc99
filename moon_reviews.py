#!/usr/bin/env python3
"""
Moon phase x restaurant reviews: data preparation.

Loads the review export and the moon-phase table, normalizes both, attaches
to every review the moon phase in effect on its date, and splits the joined
series into complete lunar cycles.

PHASES:
=======
The phase table lists the START date of each principal phase. A phase is in
effect from its start date until the next start date:

  1 = New Moon
  2 = First Quarter
  3 = Full Moon
  4 = Last Quarter

A review dated exactly on a start date belongs to that phase.

CYCLE GROUPS:
=============
Walking the date-sorted joined series, every 4 -> 1 wrap opens a new group.
The first record always opens group 0. Only groups that contain all four
phase codes are kept; the partial head and tail (and any cycle that skipped a
phase because of missing data) are discarded from the grouped view.
"""

from pathlib import Path
from dataclasses import dataclass

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DATA_DIR = Path("./data")
RESULTS_DIR = Path("./results")
REVIEWS_CSV = DATA_DIR / "reviews.csv"
MOON_PHASES_CSV = DATA_DIR / "moon_phases.csv"

REVIEW_DATE_FORMAT = "%Y-%m-%d"
PHASE_DATE_FORMAT = "%m/%d/%Y"

# Abort when bad review rows exceed max(MAX_BAD_ROWS, MAX_BAD_FRACTION * n)
MAX_BAD_ROWS = 5
MAX_BAD_FRACTION = 0.01

MIN_RATING = 1
MAX_RATING = 5

UNKNOWN_PHASE = 0
PHASE_NAMES = {
    1: "New Moon",
    2: "First Quarter",
    3: "Full Moon",
    4: "Last Quarter",
}
FULL_CYCLE = frozenset(PHASE_NAMES)

# lookup key: label without whitespace, case-folded ("New Moon" -> "newmoon")
_PHASE_LOOKUP = {name.replace(" ", "").casefold(): code for code, name in PHASE_NAMES.items()}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ParseError(ValueError):
    """A date or rating field could not be parsed.

    `rows` holds the offending source records (with `source_row`)."""

    def __init__(self, message, rows=None):
        super().__init__(message)
        self.rows = rows if rows is not None else pd.DataFrame()


class UnknownPhaseLabelError(ValueError):
    """Phase label outside the four recognized values."""

    def __init__(self, message, rows=None):
        super().__init__(message)
        self.rows = rows if rows is not None else pd.DataFrame()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_table(path, columns):
    """Read a CSV as strings and rename `columns` ({source: canonical})."""
    path = Path(path)
    with open(path, encoding="utf-8", newline="") as f:
        df = pd.read_csv(f, dtype=str, keep_default_na=False, skipinitialspace=True)

    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing column(s) {missing}, found {df.columns.tolist()}")

    df = df[list(columns)].rename(columns=columns)
    df["source_row"] = np.arange(1, len(df) + 1)
    return df


def load_reviews(path=REVIEWS_CSV, date_col="date", rating_col="rating"):
    df = _read_table(path, {date_col: "date", rating_col: "rating"})
    print(f"  Reviews: {len(df):,} rows from {path}", flush=True)
    return df


def load_moon_phases(path=MOON_PHASES_CSV, date_col="date", phase_col="phase"):
    df = _read_table(path, {date_col: "date", phase_col: "phase"})
    print(f"  Moon phases: {len(df):,} rows from {path}", flush=True)
    return df


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def encode_phase_labels(labels):
    """Map phase labels to codes 1-4. Unrecognized labels map to UNKNOWN_PHASE."""
    labels = pd.Series(labels)
    keys = labels.astype(str).str.replace(r"\s+", "", regex=True).str.casefold()
    return keys.map(_PHASE_LOOKUP).fillna(UNKNOWN_PHASE).astype(int)


def _parse_dates(values, fmt):
    text = pd.Series(values).astype(str).str.strip()
    return pd.to_datetime(text, format=fmt, errors="coerce")


def normalize_moon_phases(raw):
    """Parse MM/DD/YYYY start dates and encode phase labels.

    Fails fast: the first unparseable date raises ParseError, any unknown
    label raises UnknownPhaseLabelError listing every offending row."""
    df = raw.copy()
    start = _parse_dates(df["date"], PHASE_DATE_FORMAT)

    bad = start.isna()
    if bad.any():
        first = df[bad].iloc[0]
        raise ParseError(
            f"moon phase row {first['source_row']}: cannot parse date {first['date']!r} "
            f"(expected MM/DD/YYYY)",
            rows=df[bad],
        )

    codes = encode_phase_labels(df["phase"])
    unknown = codes == UNKNOWN_PHASE
    if unknown.any():
        rows = df[unknown]
        detail = ", ".join(f"row {r} ({d}): {p!r}"
                           for r, d, p in zip(rows["source_row"], rows["date"], rows["phase"]))
        raise UnknownPhaseLabelError(f"{unknown.sum()} unknown phase label(s): {detail}", rows=rows)

    return pd.DataFrame({
        "start_date": start.values,
        "phase_label": codes.map(PHASE_NAMES).values,
        "phase_code": codes.values,
        "source_row": df["source_row"].values,
    })


def normalize_reviews(raw, max_bad_rows=MAX_BAD_ROWS, max_bad_fraction=MAX_BAD_FRACTION):
    """Parse ISO dates and integer 1-5 ratings.

    Rows failing to parse are removed and returned separately. Returns
    (reviews, bad_rows). Raises ParseError when the number of bad rows points
    to a schema problem rather than isolated bad data."""
    df = raw.copy()
    dates = _parse_dates(df["date"], REVIEW_DATE_FORMAT)
    ratings = pd.to_numeric(df["rating"].astype(str).str.strip(), errors="coerce")

    valid_rating = ratings.notna() & (ratings % 1 == 0) & ratings.between(MIN_RATING, MAX_RATING)
    bad = dates.isna() | ~valid_rating
    bad_rows = df[bad].reset_index(drop=True)

    n = len(df)
    limit = max(max_bad_rows, max_bad_fraction * n)
    if len(bad_rows):
        print(f"  WARNING: {len(bad_rows)} of {n:,} review rows failed to parse", flush=True)
        for _, row in bad_rows.head(5).iterrows():
            print(f"    row {row['source_row']}: date={row['date']!r} rating={row['rating']!r}")
    if len(bad_rows) > limit:
        raise ParseError(
            f"{len(bad_rows)} of {n} review rows failed to parse (limit {limit:g}); "
            f"check the date/rating columns",
            rows=bad_rows,
        )

    reviews = pd.DataFrame({
        "date": dates[~bad].values,
        "rating": ratings[~bad].astype(int).values,
        "source_row": df.loc[~bad, "source_row"].values,
    })
    return reviews, bad_rows


def check_coverage(reviews, phases):
    """Compare the review window with the phase window. Reports, never corrects."""
    review_min, review_max = reviews["date"].min(), reviews["date"].max()
    phase_min, phase_max = phases["start_date"].min(), phases["start_date"].max()
    coverage = {
        "review_min": review_min,
        "review_max": review_max,
        "phase_min": phase_min,
        "phase_max": phase_max,
        "n_before": int((reviews["date"] < phase_min).sum()),
        "n_after": int((reviews["date"] > phase_max).sum()),
    }
    coverage["brackets"] = bool(phase_min <= review_min and phase_max >= review_max)
    return coverage


# ---------------------------------------------------------------------------
# Temporal join
# ---------------------------------------------------------------------------

def dedupe_phase_starts(phases):
    """Sort by start date (input order breaks ties) and keep the last row per date."""
    ordered = phases.sort_values("start_date", kind="mergesort")
    dup = ordered["start_date"].duplicated(keep=False)
    if dup.any():
        dates = sorted(ordered.loc[dup, "start_date"].dt.strftime("%Y-%m-%d").unique())
        print(f"  WARNING: {len(dates)} duplicated phase start date(s), keeping last: "
              f"{', '.join(dates)}", flush=True)
    return ordered.drop_duplicates("start_date", keep="last").reset_index(drop=True)


def join_moon_phases(reviews, phases):
    """Attach the most recent phase with start_date <= review date.

    Returns (joined, n_uncovered). Reviews earlier than the first phase start
    have no phase and are dropped; n_uncovered counts them. The result is
    sorted by date."""
    table = dedupe_phase_starts(phases)[["start_date", "phase_label", "phase_code"]]
    table = table.assign(start_date=table["start_date"].astype("datetime64[ns]"))
    left = reviews.sort_values("date", kind="mergesort").reset_index(drop=True)
    left = left.assign(date=left["date"].astype("datetime64[ns]"))

    merged = pd.merge_asof(
        left, table,
        left_on="date", right_on="start_date",
        direction="backward", allow_exact_matches=True,
    )
    uncovered = merged["phase_code"].isna()
    n_uncovered = int(uncovered.sum())
    if n_uncovered and table.empty:
        print(f"  WARNING: phase table is empty, all {n_uncovered} review(s) dropped", flush=True)
    elif n_uncovered:
        print(f"  WARNING: {n_uncovered} review(s) dated before the first phase start "
              f"({table['start_date'].iloc[0]:%Y-%m-%d}) dropped", flush=True)

    joined = merged[~uncovered].rename(columns={"start_date": "phase_start"})
    joined = joined.assign(phase_code=joined["phase_code"].astype(int)).reset_index(drop=True)
    cols = [c for c in ("date", "rating", "phase_label", "phase_code", "phase_start", "source_row")
            if c in joined.columns]
    return joined[cols], n_uncovered


# ---------------------------------------------------------------------------
# Cycle grouping
# ---------------------------------------------------------------------------

@dataclass
class CycleGroup:
    group_id: int
    records: pd.DataFrame

    @property
    def phase_codes(self):
        return frozenset(int(c) for c in self.records["phase_code"].unique())

    @property
    def is_complete(self):
        return self.phase_codes == FULL_CYCLE

    @property
    def start(self):
        return self.records["date"].iloc[0]

    @property
    def end(self):
        return self.records["date"].iloc[-1]

    @property
    def n_reviews(self):
        return len(self.records)

    @property
    def total_rating(self):
        return int(self.records["rating"].sum())

    @property
    def mean_rating(self):
        return float(self.records["rating"].mean())


def label_cycle_groups(joined):
    """Add group_id: the number of 4 -> 1 wraps seen so far.

    Input need not be sorted; records are stable-sorted by date first."""
    df = joined.sort_values("date", kind="mergesort").reset_index(drop=True)
    code = df["phase_code"]
    wraps = (code == 1) & (code.shift() == 4)
    df["group_id"] = wraps.cumsum().astype(int)
    return df


def group_cycles(joined):
    """Split joined records into complete cycle groups.

    Returns (groups, discarded): the list of complete CycleGroup and the
    records belonging to incomplete groups."""
    df = label_cycle_groups(joined)
    groups = []
    discarded = []
    for gid, recs in df.groupby("group_id", sort=True):
        group = CycleGroup(int(gid), recs.reset_index(drop=True))
        if group.is_complete:
            groups.append(group)
        else:
            discarded.append(recs)

    discarded = pd.concat(discarded, ignore_index=True) if discarded else df.iloc[0:0]
    return groups, discarded


def cycle_frame(groups):
    """Concatenate complete groups back into one DataFrame (keeps group_id)."""
    if not groups:
        return pd.DataFrame({
            "date": pd.Series(dtype="datetime64[ns]"),
            "rating": pd.Series(dtype=int),
            "phase_label": pd.Series(dtype=object),
            "phase_code": pd.Series(dtype=int),
            "phase_start": pd.Series(dtype="datetime64[ns]"),
            "source_row": pd.Series(dtype=int),
            "group_id": pd.Series(dtype=int),
        })
    return pd.concat([g.records for g in groups], ignore_index=True)
