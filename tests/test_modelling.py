import json
import logging
from math import sqrt

import numpy as np
import pandas as pd
import pytest

import modelling
from modelling import (
    DegenerateFitError,
    DesignMatrix,
    EmptyDatasetError,
    ModellingError,
    MonthEncoding,
    SingularDesignError,
    UnknownCategoryError,
    encode_months,
    fit_month_model,
    fit_ols,
    fitted_vs_actual,
    flag_unusual_days,
    model_diagnostics,
    predict_counts,
    regularized_incomplete_beta,
    summarise_model,
    t_two_sided_p,
)


def daily_frame(dates, counts):
    dates = pd.to_datetime(dates)
    return pd.DataFrame({"date": dates, "count": counts, "month": dates.month})


# ---------- Student t / incomplete beta ---------- #

@pytest.mark.parametrize("t", [0.5, 1.0, 3.0, 10.0])
def test_t_p_value_matches_closed_form_for_two_df(t):
    # df = 2: P(|T| > t) = 1 - t / sqrt(2 + t^2)
    assert t_two_sided_p(t, 2) == pytest.approx(1 - t / sqrt(2 + t * t), abs=1e-12)
    assert t_two_sided_p(-t, 2) == pytest.approx(t_two_sided_p(t, 2))


def test_t_p_value_known_values():
    assert t_two_sided_p(1.0, 1) == pytest.approx(0.5, abs=1e-12)
    assert t_two_sided_p(2.0, 10) == pytest.approx(0.0733880, abs=1e-6)
    assert t_two_sided_p(1.959964, 1e4) == pytest.approx(0.05, abs=1e-4)


def test_t_p_value_limits():
    assert t_two_sided_p(0.0, 5) == 1.0
    assert t_two_sided_p(float("inf"), 5) == 0.0
    assert np.isnan(t_two_sided_p(float("nan"), 5))
    with pytest.raises(ValueError):
        t_two_sided_p(1.0, 0)


def test_incomplete_beta_identities():
    assert regularized_incomplete_beta(1.0, 1.0, 0.3) == pytest.approx(0.3)
    assert regularized_incomplete_beta(4.5, 4.5, 0.5) == pytest.approx(0.5)
    assert regularized_incomplete_beta(2.0, 3.0, 0.0) == 0.0
    assert regularized_incomplete_beta(2.0, 3.0, 1.0) == 1.0


# ---------- Encoding ---------- #

def test_encoding_uses_lowest_month_as_reference(scenario_daily):
    design = encode_months(scenario_daily)

    assert design.encoding.reference_month == 1
    assert list(design.X.columns) == ["const", "month_2"]
    assert design.X.to_numpy().tolist() == [[1, 0], [1, 0], [1, 1], [1, 1]]
    assert list(design.X.index) == list(scenario_daily["date"])


def test_encoding_when_data_starts_after_january():
    daily = daily_frame(
        ["2020-03-01", "2020-11-02", "2020-05-03", "2020-03-04", "2020-11-05"],
        [1, 2, 3, 4, 5],
    )
    design = encode_months(daily)

    assert design.encoding.reference_month == 3
    assert design.encoding.months == (5, 11)
    assert list(design.X.columns) == ["const", "month_5", "month_11"]
    # column count is 1 + distinct non-reference months, none all zero
    assert design.shape == (5, 1 + daily["month"].nunique() - 1)
    assert (design.X.iloc[:, 1:].sum() > 0).all()


def test_encoding_is_reproducible(year_daily):
    first = encode_months(year_daily)
    second = encode_months(year_daily.sample(frac=1.0, random_state=1))
    assert first.encoding == second.encoding
    assert first.encoding.columns == ("const",) + tuple(f"month_{m}" for m in range(2, 13))


def test_transform_rejects_unknown_month():
    encoding = MonthEncoding.from_months([1, 2])
    with pytest.raises(UnknownCategoryError) as info:
        encoding.transform([1, 7])
    assert info.value.month == 7
    assert isinstance(info.value, ModellingError)


def test_transform_keeps_trained_columns_for_partial_subset():
    encoding = MonthEncoding.from_months([1, 4, 9])
    X = encoding.transform([1, 1])
    assert list(X.columns) == ["const", "month_4", "month_9"]
    assert X.to_numpy().tolist() == [[1, 0, 0], [1, 0, 0]]


def test_encode_empty_daily_raises():
    empty = daily_frame([], [])
    with pytest.raises(EmptyDatasetError):
        encode_months(empty)


# ---------- OLS ---------- #

def test_scenario_coefficients_and_statistics(scenario_daily):
    model = fit_month_model(scenario_daily)

    assert model.columns == ("const", "month_2")
    assert model.coef == pytest.approx([1.5, 1.5])
    assert model.residuals == pytest.approx([0.5, -0.5, 0.0, 0.0], abs=1e-12)
    assert model.df_resid == 2
    assert model.sigma2 == pytest.approx(0.25)
    # (X'X)^-1 = [[0.5, -0.5], [-0.5, 1.0]]
    assert model.std_err == pytest.approx([sqrt(0.125), 0.5])
    assert model.t_stat == pytest.approx([1.5 / sqrt(0.125), 3.0])
    assert model.p_value[1] == pytest.approx(1 - 3 / sqrt(11), abs=1e-10)
    assert model.r2 == pytest.approx(1 - 0.5 / 2.75)
    assert model.adj_r2 == pytest.approx(1 - (0.5 / 2.75) * 3 / 2)
    assert model.r2_defined


def test_matches_numpy_lstsq_and_normal_equations(year_daily):
    model = fit_month_model(year_daily)
    X = encode_months(year_daily).X.to_numpy()
    y = year_daily["count"].to_numpy(dtype=float)

    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    assert model.coef == pytest.approx(beta, rel=1e-9, abs=1e-9)

    XtX_inv = np.linalg.inv(X.T @ X)
    se = np.sqrt(model.sigma2 * np.diag(XtX_inv))
    assert model.std_err == pytest.approx(se, rel=1e-8)


def test_r2_bounds_and_determinism(year_daily):
    first = fit_month_model(year_daily)
    second = fit_month_model(year_daily)

    assert 0.0 <= first.r2 <= 1.0
    assert first.adj_r2 <= first.r2
    np.testing.assert_array_equal(first.coef, second.coef)
    np.testing.assert_array_equal(first.std_err, second.std_err)
    assert first.r2 == second.r2


def test_degenerate_fit_when_no_residual_df():
    daily = daily_frame(["2020-01-01", "2020-02-01"], [3, 5])
    with pytest.raises(DegenerateFitError) as info:
        fit_month_model(daily)
    assert info.value.n_obs == 2
    assert info.value.n_params == 2
    assert info.value.df_resid == 0


def test_single_day_is_degenerate():
    with pytest.raises(DegenerateFitError):
        fit_month_model(daily_frame(["2020-01-01"], [3]))


def test_singular_design_is_reported_with_column():
    daily = daily_frame(["2020-01-01", "2020-01-02", "2020-02-01", "2020-02-02"], [1, 2, 3, 4])
    design = encode_months(daily)
    X = design.X.copy()
    X["month_2_copy"] = X["const"] - X["month_2"]
    with pytest.raises(SingularDesignError) as info:
        fit_ols(DesignMatrix(X=X, encoding=design.encoding), daily["count"])
    assert info.value.column == "month_2_copy"
    assert info.value.position == 2


def test_mismatched_response_length():
    design = encode_months(daily_frame(["2020-01-01", "2020-01-02", "2020-02-01"], [1, 2, 3]))
    with pytest.raises(ValueError):
        fit_ols(design, [1, 2])


def test_intercept_only_model_reports_r2_explicitly():
    daily = daily_frame(["2020-05-01", "2020-05-02", "2020-05-03"], [1, 2, 6])
    model = fit_month_model(daily)

    assert model.columns == ("const",)
    assert model.coef == pytest.approx([3.0])
    assert model.r2 == 0.0
    assert model.adj_r2 == 0.0
    assert not model.r2_defined


def test_constant_response_reports_r2_undefined():
    daily = daily_frame(["2020-01-01", "2020-01-02", "2020-02-01", "2020-02-02"], [2, 2, 2, 2])
    model = fit_month_model(daily)
    assert not model.r2_defined
    assert model.r2 == 0.0


def test_model_arrays_are_read_only(scenario_daily):
    model = fit_month_model(scenario_daily)
    with pytest.raises(ValueError):
        model.coef[0] = 99.0


def test_summary_table_and_record(scenario_daily):
    model = fit_month_model(scenario_daily)
    table = summarise_model(model)

    assert list(table.columns) == ["coef", "std_err", "t_stat", "p_value"]
    assert list(table.index) == ["const", "month_2"]

    record = model.to_record()
    json.dumps(record)
    assert record["encoding"] == {
        "reference_month": 1,
        "months": [2],
        "columns": ["const", "month_2"],
    }
    assert record["coefficients"][1]["name"] == "month_2"
    assert record["coefficients"][1]["estimate"] == pytest.approx(1.5)
    assert record["df_resid"] == 2


# ---------- Prediction ---------- #

def test_first_two_rows_actual_vs_fitted(scenario_daily):
    model = fit_month_model(scenario_daily)
    comparison = fitted_vs_actual(model, scenario_daily, first=2)

    assert list(comparison.columns) == ["date", "actual", "fitted", "residual"]
    assert comparison["actual"].tolist() == [2.0, 1.0]
    assert comparison["fitted"].tolist() == pytest.approx([1.5, 1.5])


def test_date_range_subset(scenario_daily):
    model = fit_month_model(scenario_daily)
    comparison = fitted_vs_actual(model, scenario_daily, start="2021-01-02", end="2021-02-01")

    assert comparison["actual"].tolist() == [1.0, 3.0]
    assert comparison["fitted"].tolist() == pytest.approx([1.5, 3.0])


def test_prediction_matches_training_fit(year_daily):
    model = fit_month_model(year_daily)
    assert predict_counts(model, year_daily) == pytest.approx(model.fitted)


def test_prediction_rejects_unseen_month(scenario_daily):
    model = fit_month_model(scenario_daily)
    march = daily_frame(["2021-03-01"], [4])
    with pytest.raises(UnknownCategoryError):
        fitted_vs_actual(model, march)


def test_negative_first_is_rejected(scenario_daily):
    model = fit_month_model(scenario_daily)
    with pytest.raises(ValueError):
        fitted_vs_actual(model, scenario_daily, first=-1)


# ---------- Diagnostics ---------- #

def test_diagnostics(scenario_daily):
    model = fit_month_model(scenario_daily)
    diag = model_diagnostics(model)

    assert diag["leverage"].sum() == pytest.approx(model.n_params)
    assert diag["leverage"].tolist() == pytest.approx([0.5, 0.5, 0.5, 0.5])
    # D_i = e^2 / (k sigma2) * h / (1 - h)^2 = 0.25 / 0.5 * 2 = 1.0 for the January days
    assert diag["cooks_distance"].tolist() == pytest.approx([1.0, 1.0, 0.0, 0.0], abs=1e-12)
    assert list(diag["fitted"].index) == list(scenario_daily["date"])


def test_flag_unusual_days(year_daily):
    model = fit_month_model(year_daily)
    comparison = fitted_vs_actual(model, year_daily)
    flagged = flag_unusual_days(comparison, high_quantile=0.9, low_quantile=0.1)

    assert set(flagged["flag"]) <= {"above-expected", "below-expected", "as-expected"}
    above = flagged[flagged["flag"] == "above-expected"]
    below = flagged[flagged["flag"] == "below-expected"]
    assert above["residual"].min() > below["residual"].max()
    assert flagged["residual"].is_monotonic_decreasing


def test_flag_unusual_days_validates_quantiles(scenario_daily):
    model = fit_month_model(scenario_daily)
    comparison = fitted_vs_actual(model, scenario_daily)
    with pytest.raises(ValueError):
        flag_unusual_days(comparison, high_quantile=0.1, low_quantile=0.9)


def test_p_values_for_general_t_and_fit(year_daily):
    assert isinstance(modelling.log, logging.Logger)
    # 97.5th percentile of t with 7 df
    assert t_two_sided_p(2.364624, 7) == pytest.approx(0.05, abs=1e-5)

    model = fit_month_model(year_daily)
    assert np.isfinite(model.p_value).all()
    assert ((model.p_value > 0.0) & (model.p_value <= 1.0)).all()
