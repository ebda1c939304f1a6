"""
GHG Emissions ETL — Configuration

Fixed source constants for the World Bank emissions pull and the
location of the relational store.
"""
from __future__ import annotations
from pathlib import Path
import logging
import os

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

# ─── Storage Paths ───────────────────────────────────────────────────────────

DEV_DATA_ROOT = Path(__file__).parent.parent / "data"
DEV_PROCESSED_DIR = DEV_DATA_ROOT / "processed"

# SQLite file by default; any SQLAlchemy URL works via the env var
DEFAULT_DB_PATH = DEV_DATA_ROOT / "worldBankEmissions.db"
DATABASE_URL = os.environ.get("EMISSIONS_DB_URL", f"sqlite:///{DEFAULT_DB_PATH}")


# ─── Source API ──────────────────────────────────────────────────────────────

WB_BASE_URL = "https://api.worldbank.org/v2"

# Total greenhouse gas emissions, all gases, AR5 metric (Mt CO2e)
GHG_INDICATOR = "EN.GHG.ALL.MT.CE.AR5"

# One page only — no multi-page traversal
PER_PAGE = 100

# Per-request timeout; a timed-out country is treated as a failed fetch
REQUEST_TIMEOUT = 30.0


# ─── Countries ───────────────────────────────────────────────────────────────

# ISO-3166 alpha-3 codes pulled on every run
TRACKED_COUNTRIES = ["BRA", "CHN", "FRA", "IND", "JPN", "USA"]

COUNTRY_CODES = {
    "BRA": {"name": "Brazil", "iso2": "BR"},
    "CHN": {"name": "China", "iso2": "CN"},
    "FRA": {"name": "France", "iso2": "FR"},
    "IND": {"name": "India", "iso2": "IN"},
    "JPN": {"name": "Japan", "iso2": "JP"},
    "USA": {"name": "United States", "iso2": "US"},
}
