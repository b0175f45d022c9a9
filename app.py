import calendar
import io

import pandas as pd
import streamlit as st

from config import DEFAULT_FIRST_N, P_VALUE_ALPHA
from ingestion import load_incidents
from modelling import flag_unusual_days, model_diagnostics, summarise_model
from pipeline import run_pipeline
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


# ============================================================
# Helpers
# ============================================================

@st.cache_data(show_spinner=False)
def load_uploaded(content: bytes) -> pd.DataFrame:
    return load_incidents(io.BytesIO(content))


def term_label(term: str) -> str:
    """'month_7' -> 'Jul'; other terms unchanged."""
    if term.startswith("month_"):
        return calendar.month_abbr[int(term.split("_", 1)[1])]
    return term


# ============================================================
# Streamlit UI
# ============================================================

st.set_page_config(page_title="Shooting Incidents by Month", layout="wide")
st.title("NYPD Shooting Incidents – Does Month Explain Daily Counts?")

st.markdown(
    """
Upload the NYPD shooting incident extract (`INCIDENT_KEY`, `OCCUR_DATE`, `BORO`).
The app aggregates incidents per day and per borough, then fits an OLS regression
of daily counts on calendar month (NumPy QR) and shows diagnostics.
"""
)

upload = st.file_uploader("NYPD_Shooting_Incident_Data__Historic_.csv", type="csv")
if upload is None:
    st.info("Upload the incident CSV to proceed.")
    st.stop()

first_n = st.sidebar.slider("Days in actual vs fitted view", 10, 730, DEFAULT_FIRST_N, step=10)

with st.spinner("Cleaning and aggregating incidents..."):
    records = load_uploaded(upload.getvalue())
    result = run_pipeline(records, first_n=first_n)

st.success(
    f"{len(records):,} incidents on {len(result.daily):,} distinct days "
    f"across {len(result.boroughs)} boroughs."
)

tab_data, tab_viz, tab_reg = st.tabs(["Data overview", "Visualisations", "Regression & diagnostics"])

# ---------------- Data overview ----------------
with tab_data:
    st.subheader("Daily aggregates")
    st.dataframe(result.daily.head(200))

    st.subheader("Per-month summary")
    st.dataframe(result.months)

    st.caption(
        "Days with no recorded incidents are absent from the daily series rather than "
        "counted as zero, which biases monthly means upward for quiet months."
    )

# ---------------- Visualisations ----------------
with tab_viz:
    st.subheader("Exploratory visualisations")
    st.plotly_chart(line_daily_counts(result.daily), use_container_width=True)
    st.plotly_chart(bar_borough_counts(result.boroughs), use_container_width=True)
    st.plotly_chart(bar_monthly_mean(result.months), use_container_width=True)

# ---------------- Regression & diagnostics ----------------
with tab_reg:
    if not result.regression_ok:
        st.error(f"Regression could not be fitted: {result.error}")
        st.stop()

    model = result.model
    st.subheader(f"count ~ month (reference: {calendar.month_name[model.encoding.reference_month]})")

    col_a, col_b, col_c = st.columns(3)
    with col_a:
        st.metric("R-squared", f"{model.r2:.3f}")
    with col_b:
        st.metric("Adjusted R-squared", f"{model.adj_r2:.3f}")
    with col_c:
        st.metric("Residual df", f"{model.df_resid:,}")
    if not model.r2_defined:
        st.warning("R-squared is undefined for this fit (intercept only or constant counts); shown as 0.")

    coef_df = summarise_model(model)
    coef_df.index = [term_label(t) for t in coef_df.index]
    st.subheader("Coefficient table")
    st.dataframe(
        coef_df.style.format(
            {"coef": "{:.3f}", "std_err": "{:.3f}", "t_stat": "{:.2f}", "p_value": "{:.3f}"}
        )
    )
    significant = coef_df.index[coef_df["p_value"] < P_VALUE_ALPHA].tolist()
    st.write(f"Terms significant at {P_VALUE_ALPHA}: {', '.join(significant) or 'none'}")

    st.subheader(f"Actual vs fitted – first {first_n} days")
    st.plotly_chart(actual_vs_fitted(result.comparison), use_container_width=True)

    st.subheader("Residual diagnostics")
    diagnostics = model_diagnostics(model)
    chart = residual_vs_expected_chart(diagnostics)
    st.altair_chart(chart, use_container_width=True)
    st.plotly_chart(residual_timeline(diagnostics["residuals"]), use_container_width=True)
    st.plotly_chart(residual_histogram(diagnostics["residuals"]), use_container_width=True)
    st.plotly_chart(cooks_distance_bar(diagnostics["cooks_distance"]), use_container_width=True)

    st.subheader("Days furthest from the monthly expectation")
    flagged = flag_unusual_days(result.comparison)
    st.dataframe(flagged[flagged["flag"] != "as-expected"].head(15))
