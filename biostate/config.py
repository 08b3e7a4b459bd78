"""
Biological State Engine configuration.
All settings via environment variables with sensible defaults.
"""

import os
from pathlib import Path

# --- Paths ---
BASE_DIR = Path(os.getenv("BIO_DATA_DIR", "/data"))
DB_PATH = BASE_DIR / "biostate.db"

# --- Auth ---
API_KEY = os.getenv("BIO_API_KEY", "")
DEFAULT_USER_ID = os.getenv("BIO_DEFAULT_USER_ID", "default")

# --- Timezone ---
# Used for daily/weekly safety windows when the caller does not pass one.
TIMEZONE = os.getenv("TZ", "UTC")

# --- Logging ---
LOG_LEVEL = os.getenv("BIO_LOG_LEVEL", "INFO")

# --- Pharmacokinetic defaults ---
# Conservative fallbacks when a profile has no (or degenerate) PK data
DEFAULT_PEAK_MINUTES: float = float(os.getenv("BIO_DEFAULT_PEAK_MINUTES", "60"))          # Tmax 1h
DEFAULT_HALF_LIFE_MINUTES: float = float(os.getenv("BIO_DEFAULT_HALF_LIFE_MINUTES", "240"))  # t1/2 4h

CLEARED_THRESHOLD_PERCENT = 1.0     # below this a compound reads as cleared
PEAK_WINDOW_MINUTES = 30            # phase "peak" lasts until Tmax + 30 min
DAMPENING_RDA_MULTIPLE = 3.0        # saturation starts above 3x RDA

# --- Windows ---
STATE_WINDOW_HOURS: int = int(os.getenv("BIO_STATE_WINDOW_HOURS", "24"))
TIMELINE_INTERVAL_MINUTES: int = int(os.getenv("BIO_TIMELINE_INTERVAL_MINUTES", "15"))
TIMELINE_WINDOW_HOURS: int = int(os.getenv("BIO_TIMELINE_WINDOW_HOURS", "24"))
TIMELINE_PROJECTION_HOURS: int = int(os.getenv("BIO_TIMELINE_PROJECTION_HOURS", "4"))
TIMELINE_CAP_PERCENT = 150.0        # summed repeat doses are capped here

# --- Bio-Score ---
BIO_SCORE_BASE = 100.0
BIO_SCORE_EMPTY = 50.0              # neutral score when nothing is active
ZONE_PENALTY = {
    "critical": 50.0,
    "medium": 25.0,
    "low": 15.0,
}
SYNERGY_BONUS = 5.0
SYNERGY_BONUS_CAP = 20.0

# --- Ratio rules ---
# Fractional widening of min/max ratio bounds (0.15 -> min*0.85, max*1.15)
RATIO_TOLERANCE: float = float(os.getenv("BIO_RATIO_TOLERANCE", "0.0"))
