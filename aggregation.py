"""
aggregation.py

Group-by aggregations over the cleaned incident frame.

- aggregate_daily_counts:
    One row per distinct occurrence date (date, count, month), ascending.
    Dates without incidents are absent, not zero-filled.
- merge_daily_counts:
    Combine daily aggregates computed on disjoint record partitions.
- aggregate_borough_counts:
    One row per borough label, ranked by descending count.
- monthly_summary:
    Descriptive per-month totals and means of the daily series.
"""

import logging
from typing import Iterable

import pandas as pd

from config import BOROUGH_COL, DATE_COL

log = logging.getLogger(__name__)

DAILY_COLUMNS = ["date", "count", "month"]
BOROUGH_COLUMNS = ["borough", "count"]


def _empty_daily() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "date": pd.Series(dtype="datetime64[ns]"),
            "count": pd.Series(dtype="int64"),
            "month": pd.Series(dtype="int64"),
        }
    )


def _finalise_daily(counts: pd.Series) -> pd.DataFrame:
    daily = counts.rename("count").rename_axis("date").reset_index()
    daily["date"] = pd.to_datetime(daily["date"])
    daily["count"] = daily["count"].astype("int64")
    daily["month"] = daily["date"].dt.month.astype("int64")
    return daily.sort_values("date", kind="mergesort").reset_index(drop=True)[DAILY_COLUMNS]


def aggregate_daily_counts(records: pd.DataFrame) -> pd.DataFrame:
    """
    Count incidents per calendar date.

    Parameters
    ----------
    records : DataFrame
        Cleaned incident frame with an 'occurred_on' datetime column.

    Returns
    -------
    DataFrame with columns date, count, month sorted ascending by date.
    """
    if DATE_COL not in records.columns:
        raise ValueError(f"Records frame has no '{DATE_COL}' column.")
    if records.empty:
        return _empty_daily()

    dates = pd.to_datetime(records[DATE_COL]).dt.normalize()
    counts = dates.groupby(dates).size()
    daily = _finalise_daily(counts)
    log.info("Aggregated %d incidents into %d daily counts", len(records), len(daily))
    return daily


def merge_daily_counts(parts: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Merge daily aggregates from disjoint record partitions by summing per date."""
    frames = [part for part in parts if not part.empty]
    if not frames:
        return _empty_daily()
    combined = pd.concat(frames, ignore_index=True)
    counts = combined.groupby("date")["count"].sum()
    return _finalise_daily(counts)


def aggregate_borough_counts(records: pd.DataFrame) -> pd.DataFrame:
    """
    Count incidents per borough label, ranked by descending count.

    Ties are broken by label so the ranking is reproducible.
    """
    if BOROUGH_COL not in records.columns:
        raise ValueError(f"Records frame has no '{BOROUGH_COL}' column.")
    if records.empty:
        return pd.DataFrame(
            {"borough": pd.Series(dtype=object), "count": pd.Series(dtype="int64")}
        )

    boroughs = (
        records.groupby(BOROUGH_COL)
        .size()
        .rename("count")
        .rename_axis("borough")
        .reset_index()
    )
    boroughs["count"] = boroughs["count"].astype("int64")
    boroughs = boroughs.sort_values(
        ["count", "borough"], ascending=[False, True], kind="mergesort"
    ).reset_index(drop=True)
    return boroughs[BOROUGH_COLUMNS]


def monthly_summary(daily: pd.DataFrame) -> pd.DataFrame:
    """Days observed, total and mean daily incidents per calendar month."""
    if daily.empty:
        return pd.DataFrame(columns=["month", "days", "total", "mean_daily"])
    out = (
        daily.groupby("month")["count"]
        .agg(days="size", total="sum", mean_daily="mean")
        .reset_index()
        .sort_values("month")
        .reset_index(drop=True)
    )
    return out
