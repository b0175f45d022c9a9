"""
pipeline.py

End-to-end run: cleaned records -> daily / borough aggregates -> month OLS
-> actual vs fitted comparison. Also the command line entry point.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from aggregation import aggregate_borough_counts, aggregate_daily_counts, monthly_summary
from config import DEFAULT_FIRST_N, MODEL_REPORT_JSON, P_VALUE_ALPHA, RAW_INCIDENTS_CSV
from ingestion import load_incidents
from modelling import (
    ModellingError,
    RegressionModel,
    fit_month_model,
    fitted_vs_actual,
    summarise_model,
)

log = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    daily: pd.DataFrame
    boroughs: pd.DataFrame
    months: pd.DataFrame
    model: Optional[RegressionModel] = None
    comparison: Optional[pd.DataFrame] = None
    error: Optional[ModellingError] = field(default=None)

    @property
    def regression_ok(self) -> bool:
        return self.model is not None


def run_pipeline(records: pd.DataFrame, first_n: Optional[int] = DEFAULT_FIRST_N) -> PipelineResult:
    """
    Aggregate the cleaned records and fit count ~ month.

    A failed regression is recorded on the result; the aggregates are
    always returned.
    """
    daily = aggregate_daily_counts(records)
    boroughs = aggregate_borough_counts(records)
    result = PipelineResult(daily=daily, boroughs=boroughs, months=monthly_summary(daily))

    try:
        model = fit_month_model(daily)
        comparison = fitted_vs_actual(model, daily, first=first_n)
    except ModellingError as exc:
        log.warning("Regression stage failed: %s", exc)
        result.error = exc
        return result

    result.model = model
    result.comparison = comparison
    return result


def build_report(result: PipelineResult) -> Dict[str, object]:
    report: Dict[str, object] = {
        "days": int(len(result.daily)),
        "incidents": int(result.daily["count"].sum()) if not result.daily.empty else 0,
        "boroughs": [
            {"borough": str(borough), "count": int(count)}
            for borough, count in zip(result.boroughs["borough"], result.boroughs["count"])
        ],
    }
    if result.model is not None:
        report["model"] = result.model.to_record()
    else:
        report["error"] = {"type": type(result.error).__name__, "message": str(result.error)}
    return report


def _print_summary(result: PipelineResult) -> None:
    print("Incidents by borough:")
    print(result.boroughs.to_string(index=False))
    print()
    print(f"Daily series: {len(result.daily)} days")
    if result.model is None:
        print(f"Regression failed: {result.error}")
        return

    model = result.model
    table = summarise_model(model)
    print()
    print(f"count ~ month (reference month {model.encoding.reference_month})")
    print(table.to_string(float_format=lambda v: f"{v:.4f}"))
    significant = table.index[table["p_value"] < P_VALUE_ALPHA].tolist()
    print()
    r2_note = "" if model.r2_defined else " (undefined, reported as 0)"
    print(f"R-squared: {model.r2:.4f}{r2_note}   Adjusted R-squared: {model.adj_r2:.4f}")
    print(f"Residual df: {model.df_resid}   Significant at {P_VALUE_ALPHA}: {significant or 'none'}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Fit daily shooting incident counts on calendar month."
    )
    parser.add_argument(
        "--data",
        type=str,
        default=str(RAW_INCIDENTS_CSV),
        help="Path to the NYPD shooting incident CSV.",
    )
    parser.add_argument(
        "--first-n",
        type=int,
        default=DEFAULT_FIRST_N,
        help="Number of leading days in the actual vs fitted comparison.",
    )
    parser.add_argument(
        "--report",
        type=str,
        default=None,
        help=f"Optional JSON report path (e.g. {MODEL_REPORT_JSON}).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_path = Path(args.data).expanduser()
    if not data_path.exists():
        parser.error(f"Data file not found: {data_path}")

    records = load_incidents(data_path)
    result = run_pipeline(records, first_n=args.first_n)
    _print_summary(result)

    if args.report:
        report_path = Path(args.report).expanduser()
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with report_path.open("w", encoding="utf-8") as handle:
            json.dump(build_report(result), handle, indent=2)
        log.info("Report written to %s", report_path)

    return 0 if result.regression_ok else 1


if __name__ == "__main__":
    sys.exit(main())
