"""
ingestion.py

Thin loading/cleaning layer that turns the raw NYPD shooting incident
extract into the cleaned record frame consumed by the aggregation step.

Cleaned frame columns: incident_key, occurred_on (datetime64, normalised
to midnight), borough.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Mapping, Optional, Union

import pandas as pd

from config import (
    BOROUGH_COL,
    DATE_COL,
    ID_COL,
    RAW_COLUMN_MAP,
    RAW_DATE_FORMAT,
    UNKNOWN_BOROUGH,
)

log = logging.getLogger(__name__)

CLEAN_COLUMNS = [ID_COL, DATE_COL, BOROUGH_COL]


@dataclass(frozen=True)
class IncidentRecord:
    """One shooting incident."""

    occurred_on: date
    borough: str


def standardise_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lowercase + snake_case column names."""
    df = df.copy()
    df.columns = (
        df.columns
        .str.strip()
        .str.lower()
        .str.replace(r"[^\w]+", "_", regex=True)
        .str.replace("__+", "_", regex=True)
        .str.strip("_")
    )
    return df


def clean_incidents(df: pd.DataFrame, date_format: Optional[str] = None) -> pd.DataFrame:
    """
    Parse dates, drop undated rows and normalise borough labels.

    Expects the columns incident_key (optional), occurred_on and borough.
    Rows whose date cannot be parsed are dropped; they never reach the
    aggregation step.
    """
    missing = [c for c in (DATE_COL, BOROUGH_COL) if c not in df.columns]
    if missing:
        raise ValueError(f"Incident data is missing required columns: {missing}")

    df = df.copy()
    if ID_COL not in df.columns:
        df[ID_COL] = range(len(df))

    df[DATE_COL] = pd.to_datetime(df[DATE_COL], format=date_format, errors="coerce").dt.normalize()
    undated = int(df[DATE_COL].isna().sum())
    if undated:
        log.warning("Dropping %d incident(s) without a valid occurrence date", undated)
        df = df.dropna(subset=[DATE_COL])

    df[BOROUGH_COL] = (
        df[BOROUGH_COL]
        .astype("string")
        .str.strip()
        .str.upper()
        .replace({"": pd.NA})
        .fillna(UNKNOWN_BOROUGH)
        .astype(str)
    )

    return df[CLEAN_COLUMNS].reset_index(drop=True)


def load_incidents(source) -> pd.DataFrame:
    """Read the raw incident CSV (path or uploaded buffer) and clean it."""
    df = pd.read_csv(source, dtype={"INCIDENT_KEY": str})
    df = standardise_columns(df)
    df = df.rename(columns=RAW_COLUMN_MAP)
    log.info("Loaded %d raw incident rows", len(df))
    return clean_incidents(df, date_format=RAW_DATE_FORMAT)


def records_to_frame(
    records: Mapping[object, Union[IncidentRecord, Dict[str, object]]],
) -> pd.DataFrame:
    """
    Convert a mapping of record id -> IncidentRecord (or an equivalent dict
    with 'occurred_on' and 'borough') into the cleaned record frame.
    """
    rows = []
    for key, record in records.items():
        if isinstance(record, IncidentRecord):
            occurred_on, borough = record.occurred_on, record.borough
        else:
            occurred_on, borough = record[DATE_COL], record[BOROUGH_COL]
        rows.append({ID_COL: key, DATE_COL: occurred_on, BOROUGH_COL: borough})

    if not rows:
        empty = pd.DataFrame(columns=CLEAN_COLUMNS)
        empty[DATE_COL] = pd.to_datetime(empty[DATE_COL])
        return empty

    return clean_incidents(pd.DataFrame(rows))
