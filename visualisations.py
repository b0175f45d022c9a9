"""
visualisations.py

Plotly (and one Altair) visualisations for:

- Daily incident counts over time
- Incidents by borough (ranked bar chart)
- Mean daily incidents by calendar month
- Actual vs fitted daily counts (first N days)
- Residuals by date
- Residuals vs monthly expectation (Altair)
- Residual histogram
- Cook's distance bar chart

All functions return Plotly Figure objects that are Streamlit-compatible,
except residual_vs_expected_chart, which returns an Altair chart.
"""

import calendar

import altair as alt
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

# ---------------------------------------------------------------------
# Descriptive views
# ---------------------------------------------------------------------


def line_daily_counts(
    daily: pd.DataFrame,
    title: str = "Shooting incidents per day",
) -> go.Figure:
    """
    Time series of daily incident counts.

    Days without incidents are not in the aggregate, so the line simply
    joins the observed days.
    """
    fig = px.line(daily, x="date", y="count", title=title)
    fig.update_layout(
        xaxis_title="Date",
        yaxis_title="Incidents",
        margin=dict(l=40, r=20, t=60, b=40),
    )
    return fig


def bar_borough_counts(
    boroughs: pd.DataFrame,
    title: str = "Shooting incidents by borough",
) -> go.Figure:
    """Bar chart of the borough ranking (already sorted by descending count)."""
    fig = go.Figure(
        data=[
            go.Bar(
                x=boroughs["borough"],
                y=boroughs["count"],
                name="Incidents",
            )
        ]
    )
    fig.update_layout(
        title=title,
        xaxis_title="Borough",
        yaxis_title="Incidents",
        margin=dict(l=40, r=20, t=60, b=80),
        xaxis=dict(categoryorder="array", categoryarray=list(boroughs["borough"])),
    )
    return fig


def bar_monthly_mean(
    months: pd.DataFrame,
    title: str = "Mean daily incidents by month",
) -> go.Figure:
    """Mean daily count per calendar month (output of monthly_summary)."""
    labels = [calendar.month_abbr[int(m)] for m in months["month"]]
    fig = go.Figure(
        data=[
            go.Bar(
                x=labels,
                y=months["mean_daily"],
                customdata=months[["days", "total"]].to_numpy(),
                hovertemplate="%{x}: %{y:.2f} per day<br>%{customdata[0]} days, %{customdata[1]} incidents",
                name="Mean per day",
            )
        ]
    )
    fig.update_layout(
        title=title,
        xaxis_title="Month",
        yaxis_title="Mean incidents per day",
        margin=dict(l=40, r=20, t=60, b=40),
    )
    return fig

# ---------------------------------------------------------------------
# Regression diagnostics
# ---------------------------------------------------------------------


def actual_vs_fitted(
    comparison: pd.DataFrame,
    title: str = "Actual vs fitted daily incidents",
) -> go.Figure:
    """
    Overlay of observed and fitted counts.

    Parameters
    ----------
    comparison : DataFrame
        Output of modelling.fitted_vs_actual (date, actual, fitted).
    """
    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=comparison["date"],
            y=comparison["actual"],
            mode="markers+lines",
            name="Actual",
            marker=dict(opacity=0.7),
        )
    )
    fig.add_trace(
        go.Scatter(
            x=comparison["date"],
            y=comparison["fitted"],
            mode="lines",
            name="Fitted",
            line=dict(dash="dash"),
        )
    )
    fig.update_layout(
        title=title,
        xaxis_title="Date",
        yaxis_title="Incidents",
        margin=dict(l=40, r=20, t=60, b=40),
    )
    return fig


def residual_timeline(
    residuals: pd.Series,
    title: str = "Residuals by date",
) -> go.Figure:
    """
    Daily residuals (actual minus month expectation) in date order.

    Runs of same-sign residuals point at structure the month effect does
    not capture, e.g. a trend across years.
    """
    months = [calendar.month_abbr[d.month] for d in residuals.index]
    fig = go.Figure(
        data=[
            go.Scatter(
                x=residuals.index,
                y=residuals.values,
                mode="markers",
                name="Residual",
                customdata=months,
                hovertemplate="%{x|%Y-%m-%d} (%{customdata}): %{y:.2f}",
                marker=dict(opacity=0.6, size=5),
            )
        ]
    )
    fig.add_hline(y=0, line=dict(dash="dash"))
    fig.update_layout(
        title=title,
        xaxis_title="Date",
        yaxis_title="Actual - fitted",
        margin=dict(l=40, r=20, t=60, b=40),
    )
    return fig


def residual_vs_expected_chart(diagnostics) -> alt.LayerChart:
    """Residuals against the month expectation, one point per day, coloured by month."""
    data = pd.DataFrame(
        {
            "date": diagnostics["residuals"].index,
            "expected": diagnostics["fitted"].values,
            "residual": diagnostics["residuals"].values,
        }
    )
    data["month"] = [calendar.month_abbr[d.month] for d in data["date"]]
    points = alt.Chart(data).mark_point(opacity=0.6).encode(
        x=alt.X("expected:Q", title="Expected incidents (month mean)"),
        y=alt.Y("residual:Q", title="Actual - expected"),
        color=alt.Color("month:N", sort=list(calendar.month_abbr)[1:], title="Month"),
        tooltip=[
            alt.Tooltip("date:T", format="%Y-%m-%d"),
            alt.Tooltip("month:N"),
            alt.Tooltip("expected:Q", format=".2f"),
            alt.Tooltip("residual:Q", format=".2f"),
        ],
    ).properties(
        title="Daily residuals vs monthly expectation",
        height=350
    )
    zero = alt.Chart(pd.DataFrame({"y": [0]})).mark_rule(color="red").encode(y="y:Q")
    return (points + zero).interactive()


def residual_histogram(
    residuals: pd.Series,
    title: str = "Distribution of residuals",
) -> go.Figure:
    fig = px.histogram(
        residuals,
        nbins=30,
        title=title,
    )
    fig.update_layout(
        xaxis_title="Residual",
        yaxis_title="Frequency",
        showlegend=False,
        margin=dict(l=40, r=20, t=60, b=40),
    )
    return fig


def cooks_distance_bar(
    cooks_distance: pd.Series,
    top_n: int = 20,
    title: str = "Top days by Cook's distance",
) -> go.Figure:
    """
    Bar chart of the top-N most influential days (Cook's distance).

    Parameters
    ----------
    cooks_distance : Series
        Cook's distance values indexed by date.
    top_n : int
        Number of days to display.
    """
    cd = cooks_distance.sort_values(ascending=False).head(top_n)
    labels = [
        value.strftime("%Y-%m-%d") if hasattr(value, "strftime") else str(value)
        for value in cd.index
    ]
    fig = go.Figure(
        data=[
            go.Bar(
                x=labels,
                y=cd.values,
                name="Cook's distance",
            )
        ]
    )
    fig.update_layout(
        title=title,
        xaxis_title="Date",
        yaxis_title="Cook's distance",
        margin=dict(l=40, r=20, t=60, b=80),
        xaxis=dict(tickangle=45),
    )
    return fig
