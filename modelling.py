"""
modelling.py

Month-of-year OLS regression on daily incident counts, WITHOUT statsmodels.

Implements:

- MonthEncoding / encode_months:
    Reference-cell coding of calendar month into a design matrix with an
    intercept 'const' followed by one indicator per non-reference month.
- fit_ols / fit_month_model:
    OLS via a reduced QR decomposition and back-substitution.
- summarise_model:
    Coefficient table (coef, std_err, t_stat, p_value).
- predict_counts / fitted_vs_actual:
    Fitted values for any subset of daily rows using the training encoding.
- model_diagnostics:
    Residuals, fitted values, leverage and Cook's distance.
- flag_unusual_days:
    Label days above/below expectation based on residual quantiles.
"""

import logging
from dataclasses import dataclass
from math import exp, isinf, isnan, lgamma, log as _ln
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from config import INTERCEPT_NAME, MONTH_PREFIX, RANK_TOLERANCE

log = logging.getLogger(__name__)


# ---------- Errors ---------- #

class ModellingError(Exception):
    """Structural data problem that stops a fit or a prediction."""


class EmptyDatasetError(ModellingError):
    def __init__(self, message: str = "No daily aggregates to fit against."):
        super().__init__(message)


class DegenerateFitError(ModellingError):
    def __init__(self, n_obs: int, n_params: int):
        self.n_obs = n_obs
        self.n_params = n_params
        self.df_resid = n_obs - n_params
        super().__init__(
            f"Residual degrees of freedom is {self.df_resid} "
            f"({n_obs} observations, {n_params} parameters); need at least 1."
        )


class SingularDesignError(ModellingError):
    def __init__(self, column: str, position: int):
        self.column = column
        self.position = position
        super().__init__(
            f"Design matrix is rank deficient: column '{column}' (position {position}) "
            "is a linear combination of the preceding columns."
        )


class UnknownCategoryError(ModellingError):
    def __init__(self, month: int, known: Tuple[int, ...]):
        self.month = month
        self.known = known
        super().__init__(
            f"Month {month} has no column in the trained encoding (known months: {list(known)})."
        )


# ---------- Helpers ---------- #

def _betacf(a: float, b: float, x: float) -> float:
    """Continued fraction for the incomplete beta function (modified Lentz)."""
    max_iter, eps, tiny = 10000, 3e-16, 1e-300
    qab, qap, qam = a + b, a + 1.0, a - 1.0
    c = 1.0
    d = 1.0 - qab * x / qap
    if abs(d) < tiny:
        d = tiny
    d = 1.0 / d
    h = d
    for m in range(1, max_iter + 1):
        m2 = 2 * m
        aa = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + aa * d
        if abs(d) < tiny:
            d = tiny
        c = 1.0 + aa / c
        if abs(c) < tiny:
            c = tiny
        d = 1.0 / d
        h *= d * c
        aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + aa * d
        if abs(d) < tiny:
            d = tiny
        c = 1.0 + aa / c
        if abs(c) < tiny:
            c = tiny
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < eps:
            break
    return h


def regularized_incomplete_beta(a: float, b: float, x: float) -> float:
    """I_x(a, b) for a, b > 0 and 0 <= x <= 1."""
    if x <= 0.0:
        return 0.0
    if x >= 1.0:
        return 1.0
    front = exp(lgamma(a + b) - lgamma(a) - lgamma(b) + a * _ln(x) + b * _ln(1.0 - x))
    # Use the symmetry relation where the continued fraction converges fastest
    if x < (a + 1.0) / (a + b + 2.0):
        return front * _betacf(a, b, x) / a
    return 1.0 - front * _betacf(b, a, 1.0 - x) / b


def t_two_sided_p(t: float, df: float) -> float:
    """Two-sided p-value P(|T| >= |t|) for Student's t with df degrees of freedom."""
    if df <= 0:
        raise ValueError("Degrees of freedom must be positive.")
    if isnan(t):
        return float("nan")
    if isinf(t):
        return 0.0
    x = df / (df + t * t)
    return min(1.0, max(0.0, regularized_incomplete_beta(df / 2.0, 0.5, x)))


def _back_substitute(R: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve R x = b for upper-triangular R (b may be a vector or a matrix)."""
    k = R.shape[0]
    x = np.zeros_like(b, dtype=float)
    for i in range(k - 1, -1, -1):
        x[i] = (b[i] - R[i, i + 1:] @ x[i + 1:]) / R[i, i]
    return x


def _frozen(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


def _json_float(value: float) -> Optional[float]:
    value = float(value)
    return None if isnan(value) or isinf(value) else value


# ---------- Encoding ---------- #

@dataclass(frozen=True)
class MonthEncoding:
    """
    Reference-cell coding for calendar month.

    The reference month is absorbed into the intercept; every other month
    seen in training gets one indicator column, ascending by month number.
    """

    reference_month: int
    months: Tuple[int, ...]

    @classmethod
    def from_months(cls, observed: Iterable[int]) -> "MonthEncoding":
        """Lowest observed month becomes the reference."""
        present = sorted({int(m) for m in observed})
        if not present:
            raise EmptyDatasetError("No months observed; cannot build an encoding.")
        bad = [m for m in present if not 1 <= m <= 12]
        if bad:
            raise ValueError(f"Month values must lie in 1..12, got {bad}")
        return cls(reference_month=present[0], months=tuple(present[1:]))

    @property
    def categories(self) -> Tuple[int, ...]:
        return (self.reference_month,) + self.months

    @property
    def columns(self) -> Tuple[str, ...]:
        return (INTERCEPT_NAME,) + tuple(f"{MONTH_PREFIX}_{m}" for m in self.months)

    def transform(self, months: Iterable[int]) -> pd.DataFrame:
        """Design rows for the given month values (intercept first)."""
        values = [int(m) for m in months]
        known = set(self.categories)
        for m in values:
            if m not in known:
                raise UnknownCategoryError(m, self.categories)

        if not values:
            return pd.DataFrame(columns=list(self.columns), dtype=float)

        cat = pd.Categorical(values, categories=list(self.categories))
        X = pd.get_dummies(cat, prefix=MONTH_PREFIX, drop_first=True, dtype=float)
        X.insert(0, INTERCEPT_NAME, 1.0)
        return X[list(self.columns)]


@dataclass(frozen=True)
class DesignMatrix:
    X: pd.DataFrame
    encoding: MonthEncoding

    @property
    def shape(self) -> Tuple[int, int]:
        return self.X.shape


def encode_months(daily: pd.DataFrame) -> DesignMatrix:
    """
    Build the month design matrix for the daily aggregate frame.

    Rows keep the order of `daily` and are indexed by date.
    """
    if daily.empty:
        raise EmptyDatasetError()
    encoding = MonthEncoding.from_months(daily["month"])
    X = encoding.transform(daily["month"])
    X.index = pd.DatetimeIndex(daily["date"], name="date")
    return DesignMatrix(X=X, encoding=encoding)


# ---------- OLS via QR ---------- #

@dataclass(frozen=True)
class RegressionModel:
    """Fitted OLS model. Array fields are read-only."""

    columns: Tuple[str, ...]
    encoding: MonthEncoding
    dates: pd.DatetimeIndex
    coef: np.ndarray
    std_err: np.ndarray
    t_stat: np.ndarray
    p_value: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    leverage: np.ndarray
    n_obs: int
    n_params: int
    df_resid: int
    sigma2: float
    r2: float
    adj_r2: float
    r2_defined: bool

    @property
    def fitted_series(self) -> pd.Series:
        return pd.Series(self.fitted, index=self.dates, name="fitted")

    @property
    def residual_series(self) -> pd.Series:
        return pd.Series(self.residuals, index=self.dates, name="residual")

    def to_record(self) -> Dict[str, object]:
        """JSON-safe summary: coefficient table, fit statistics and encoding."""
        table = summarise_model(self)
        return {
            "n_obs": self.n_obs,
            "n_params": self.n_params,
            "df_resid": self.df_resid,
            "sigma2": _json_float(self.sigma2),
            "r2": _json_float(self.r2),
            "adj_r2": _json_float(self.adj_r2),
            "r2_defined": self.r2_defined,
            "encoding": {
                "reference_month": self.encoding.reference_month,
                "months": list(self.encoding.months),
                "columns": list(self.columns),
            },
            "coefficients": [
                {
                    "name": name,
                    "estimate": _json_float(row["coef"]),
                    "std_err": _json_float(row["std_err"]),
                    "t_stat": _json_float(row["t_stat"]),
                    "p_value": _json_float(row["p_value"]),
                }
                for name, row in table.iterrows()
            ],
        }


def fit_ols(design: DesignMatrix, y) -> RegressionModel:
    """
    Fit OLS of y on the design matrix using a reduced QR decomposition.

    Raises
    ------
    EmptyDatasetError
        The design has no rows.
    DegenerateFitError
        n - p <= 0.
    SingularDesignError
        A column is a linear combination of the preceding ones.
    """
    X = design.X
    X_mat = X.to_numpy(dtype=float)
    y_vec = np.asarray(y, dtype=float).reshape(-1)
    n, k = X_mat.shape

    if n == 0:
        raise EmptyDatasetError()
    if k == 0:
        raise ValueError("Design matrix has no columns.")
    if y_vec.shape[0] != n:
        raise ValueError(f"Response has {y_vec.shape[0]} values but the design has {n} rows.")
    df_resid = n - k
    if df_resid <= 0:
        raise DegenerateFitError(n, k)

    Q, R = np.linalg.qr(X_mat, mode="reduced")
    r_diag = np.abs(np.diag(R))
    tol = RANK_TOLERANCE * r_diag.max()
    deficient = np.flatnonzero(r_diag <= tol)
    if deficient.size:
        position = int(deficient[0])
        raise SingularDesignError(str(X.columns[position]), position)

    beta = _back_substitute(R, Q.T @ y_vec)

    # Predictions & residuals
    y_hat = X_mat @ beta
    residuals = y_vec - y_hat

    # Sum of squares
    ssr = float(residuals @ residuals)
    centred = y_vec - y_vec.mean()
    sst = float(centred @ centred)

    sigma2 = ssr / df_resid

    # diag((X'X)^-1) = row sums of squares of R^-1
    R_inv = _back_substitute(R, np.eye(k))
    se = np.sqrt(sigma2 * np.sum(R_inv ** 2, axis=1))

    with np.errstate(divide="ignore", invalid="ignore"):
        t_stats = beta / se
    p_vals = np.array([t_two_sided_p(float(t), df_resid) for t in t_stats])

    if k == 1 or sst == 0.0:
        # Intercept-only model or constant response: nothing to explain
        r2, adj_r2, r2_defined = 0.0, 0.0, False
        log.info("R-squared undefined (k=%d, SST=%.3g); reporting 0.0", k, sst)
    else:
        r2 = min(max(1.0 - ssr / sst, 0.0), 1.0)
        adj_r2 = 1.0 - (1.0 - r2) * (n - 1) / df_resid
        r2_defined = True

    leverage = np.sum(Q ** 2, axis=1)

    model = RegressionModel(
        columns=tuple(str(c) for c in X.columns),
        encoding=design.encoding,
        dates=pd.DatetimeIndex(X.index, name="date"),
        coef=_frozen(beta),
        std_err=_frozen(se),
        t_stat=_frozen(t_stats),
        p_value=_frozen(p_vals),
        fitted=_frozen(y_hat),
        residuals=_frozen(residuals),
        leverage=_frozen(leverage),
        n_obs=n,
        n_params=k,
        df_resid=df_resid,
        sigma2=sigma2,
        r2=r2,
        adj_r2=adj_r2,
        r2_defined=r2_defined,
    )
    log.info("Fitted OLS: n=%d, k=%d, R2=%.4f, adj R2=%.4f", n, k, r2, adj_r2)
    return model


def fit_month_model(daily: pd.DataFrame) -> RegressionModel:
    """Encode month and fit daily count ~ month."""
    design = encode_months(daily)
    return fit_ols(design, daily["count"])


# ---------- Summaries & prediction ---------- #

def summarise_model(model: RegressionModel) -> pd.DataFrame:
    """
    Build a coefficient table from the fitted model.
    Columns: coef, std_err, t_stat, p_value
    """
    return pd.DataFrame(
        {
            "coef": model.coef,
            "std_err": model.std_err,
            "t_stat": model.t_stat,
            "p_value": model.p_value,
        },
        index=pd.Index(model.columns, name="term"),
    )


def select_rows(
    daily: pd.DataFrame,
    first: Optional[int] = None,
    start=None,
    end=None,
) -> pd.DataFrame:
    """
    Subset daily aggregates by inclusive date range, then by leading row count.
    """
    subset = daily
    if start is not None:
        subset = subset[subset["date"] >= pd.Timestamp(start)]
    if end is not None:
        subset = subset[subset["date"] <= pd.Timestamp(end)]
    if first is not None:
        if first < 0:
            raise ValueError("first must be non-negative")
        subset = subset.iloc[:first]
    return subset


def predict_counts(model: RegressionModel, daily: pd.DataFrame) -> np.ndarray:
    """Fitted counts for the given daily rows under the trained encoding."""
    X = model.encoding.transform(daily["month"])
    if tuple(X.columns) != model.columns:
        raise ValueError(
            f"Encoded columns {list(X.columns)} do not match the model's {list(model.columns)}"
        )
    return X.to_numpy(dtype=float) @ model.coef


def fitted_vs_actual(
    model: RegressionModel,
    daily: pd.DataFrame,
    first: Optional[int] = None,
    start=None,
    end=None,
) -> pd.DataFrame:
    """
    Actual vs fitted counts for a subset of daily rows.

    Returns a frame aligned by row position with columns
    date, actual, fitted, residual.
    """
    subset = select_rows(daily, first=first, start=start, end=end)
    fitted = predict_counts(model, subset)
    actual = subset["count"].to_numpy(dtype=float)
    return pd.DataFrame(
        {
            "date": subset["date"].to_numpy(),
            "actual": actual,
            "fitted": fitted,
            "residual": actual - fitted,
        }
    )


# ---------- Diagnostics ---------- #

def model_diagnostics(model: RegressionModel) -> Dict[str, pd.Series]:
    """
    Return residuals, fitted values, leverage and Cook's distance.
    """
    residuals = model.residual_series
    h_ii = model.leverage

    # D_i = (e_i^2 / (k * sigma2)) * (h_ii / (1 - h_ii)^2)
    with np.errstate(divide="ignore", invalid="ignore"):
        cooks = (model.residuals ** 2 / (model.n_params * model.sigma2)) * (h_ii / (1 - h_ii) ** 2)

    return {
        "residuals": residuals,
        "fitted": model.fitted_series,
        "leverage": pd.Series(h_ii, index=model.dates, name="leverage"),
        "cooks_distance": pd.Series(cooks, index=model.dates, name="cooks_distance"),
    }


def flag_unusual_days(
    comparison: pd.DataFrame,
    high_quantile: float = 0.9,
    low_quantile: float = 0.1,
) -> pd.DataFrame:
    """
    Label days as 'above-expected' or 'below-expected' based on residual
    quantiles.

    Parameters
    ----------
    comparison : DataFrame
        Output of fitted_vs_actual (needs 'date' and 'residual').
    high_quantile, low_quantile : float
        Thresholds to classify residuals.

    Returns
    -------
    DataFrame with date, actual, fitted, residual, flag sorted by residual.
    """
    if not 0.0 <= low_quantile < high_quantile <= 1.0:
        raise ValueError("Expected 0 <= low_quantile < high_quantile <= 1")

    diag_df = comparison.copy()
    if diag_df.empty:
        return diag_df.assign(flag=pd.Series(dtype=object))

    high_thr = diag_df["residual"].quantile(high_quantile)
    low_thr = diag_df["residual"].quantile(low_quantile)

    conditions = [
        diag_df["residual"] >= high_thr,
        diag_df["residual"] <= low_thr,
    ]
    choices = ["above-expected", "below-expected"]
    diag_df["flag"] = np.select(conditions, choices, default="as-expected")

    return diag_df.sort_values("residual", ascending=False, kind="mergesort")
