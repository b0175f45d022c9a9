import numpy as np
import pandas as pd
import pytest

from aggregation import aggregate_daily_counts


def make_records(date_counts, borough="BROOKLYN"):
    """Cleaned record frame with `n` incidents on each given date."""
    rows = []
    key = 0
    for day, n in date_counts.items():
        for _ in range(n):
            rows.append({"incident_key": str(key), "occurred_on": pd.Timestamp(day), "borough": borough})
            key += 1
    return pd.DataFrame(rows, columns=["incident_key", "occurred_on", "borough"])


@pytest.fixture
def scenario_records():
    return make_records(
        {"2021-01-01": 2, "2021-01-02": 1, "2021-02-01": 3, "2021-02-02": 3}
    )


@pytest.fixture
def scenario_daily(scenario_records):
    return aggregate_daily_counts(scenario_records)


@pytest.fixture
def year_daily():
    """A year of daily counts with a mild summer bump and a few missing days."""
    rng = np.random.default_rng(7)
    dates = pd.date_range("2019-01-01", "2019-12-31", freq="D")
    dates = dates[rng.random(len(dates)) > 0.05]
    months = dates.month.to_numpy()
    lam = 4.0 + 2.0 * np.isin(months, [6, 7, 8])
    counts = rng.poisson(lam) + 1
    return pd.DataFrame({"date": dates, "count": counts.astype("int64"), "month": months.astype("int64")})
