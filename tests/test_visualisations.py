import pandas as pd
import pytest

from aggregation import monthly_summary
from modelling import fit_month_model, fitted_vs_actual, model_diagnostics
from visualisations import (
    actual_vs_fitted,
    bar_borough_counts,
    bar_monthly_mean,
    cooks_distance_bar,
    line_daily_counts,
    residual_histogram,
    residual_timeline,
    residual_vs_expected_chart,
)


def test_descriptive_figures(scenario_daily):
    boroughs = pd.DataFrame({"borough": ["BROOKLYN", "BRONX"], "count": [5, 2]})

    daily_fig = line_daily_counts(scenario_daily)
    assert list(daily_fig.data[0].y) == [2, 1, 3, 3]

    borough_fig = bar_borough_counts(boroughs)
    assert list(borough_fig.data[0].x) == ["BROOKLYN", "BRONX"]

    month_fig = bar_monthly_mean(monthly_summary(scenario_daily))
    assert list(month_fig.data[0].x) == ["Jan", "Feb"]


def test_diagnostic_figures(scenario_daily):
    model = fit_month_model(scenario_daily)
    comparison = fitted_vs_actual(model, scenario_daily, first=2)
    diag = model_diagnostics(model)

    overlay = actual_vs_fitted(comparison)
    assert [trace.name for trace in overlay.data] == ["Actual", "Fitted"]

    timeline = residual_timeline(diag["residuals"])
    assert list(timeline.data[0].y) == pytest.approx([0.5, -0.5, 0.0, 0.0], abs=1e-12)
    assert list(timeline.data[0].customdata) == ["Jan", "Jan", "Feb", "Feb"]
    assert len(residual_histogram(diag["residuals"]).data) == 1

    cooks_fig = cooks_distance_bar(diag["cooks_distance"], top_n=3)
    assert len(cooks_fig.data[0].x) == 3
    assert cooks_fig.data[0].x[0].startswith("2021-01-0")


def test_residual_vs_expected_chart_carries_date_and_month(scenario_daily):
    diag = model_diagnostics(fit_month_model(scenario_daily))
    spec = residual_vs_expected_chart(diag).to_dict()

    encoding = spec["layer"][0]["encoding"]
    assert [tip["field"] for tip in encoding["tooltip"]] == ["date", "month", "expected", "residual"]
    assert encoding["color"]["field"] == "month"
    assert encoding["x"]["field"] == "expected"
