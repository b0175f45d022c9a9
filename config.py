from pathlib import Path

# Project Root
PROJECT_ROOT = Path(__file__).resolve().parent

# Data Directory
DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"

# NYPD shooting incident extract (historic)
RAW_INCIDENTS_CSV = RAW_DIR / "NYPD_Shooting_Incident_Data__Historic_.csv"

# Reports
REPORTS_DIR = PROJECT_ROOT / "reports"
MODEL_REPORT_JSON = REPORTS_DIR / "month_model.json"

# Raw column names (after standardise_columns) -> cleaned names
RAW_COLUMN_MAP = {
    "incident_key": "incident_key",
    "occur_date": "occurred_on",
    "boro": "borough",
}
RAW_DATE_FORMAT = "%m/%d/%Y"

# Cleaned record columns
ID_COL = "incident_key"
DATE_COL = "occurred_on"
BOROUGH_COL = "borough"
UNKNOWN_BOROUGH = "UNKNOWN"

# Modelling
INTERCEPT_NAME = "const"
MONTH_PREFIX = "month"
DEFAULT_FIRST_N = 100
RANK_TOLERANCE = 1e-10  # relative to the largest |R_ii| of the QR factor
P_VALUE_ALPHA = 0.05
