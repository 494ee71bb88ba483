"""Configuration values for the culture planner."""
from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
EXPORTS_DIR = Path(os.environ.get("CULTURE_EXPORTS_DIR", BASE_DIR / "exports"))
PLOTS_DIR = Path(os.environ.get("CULTURE_PLOTS_DIR", BASE_DIR / "plots"))

# In-memory by default: records live only as long as the process.
DATABASE_URL = os.environ.get("CULTURE_DB_URL", "sqlite://")
LOG_LEVEL = os.environ.get("CULTURE_LOG_LEVEL")

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_API_BASE = os.environ.get("OPENAI_API_BASE", "https://api.openai.com/v1/chat/completions")

# Logistic growth
DEFAULT_CARRYING_CAPACITY = 4.0
CAPACITY_MULTIPLIER = 1.2
STATIONARY_FRACTION = 0.95

# Growth chart
CHART_MIN_MINUTES = 120
CHART_MAX_MINUTES = 48 * 60
CHART_POINTS = 60
CHART_POINTS_DETAILED = 100

# Timeline
PIXELS_PER_MINUTE = 3
SNAP_MINUTES = 1
VIEW_PAST_MINUTES = 30
VIEW_LOOKAHEAD_MINUTES = 240
VIEW_MARGIN_MINUTES = 60
MIN_ITEM_WIDTH_PX = 60
ROW_SPACING_MINUTES = 5
MIN_ROWS = 6
ROW_HEIGHT_PX = 52
HEADER_HEIGHT_PX = 40
MIN_TIMELINE_HEIGHT_PX = 500

DEFAULT_EXPERIMENT = {
    "inoculum_od": "2.5",
    "target_volume": "500",
    "target_start_od": "0.1",
    "target_harvest_od": "0.8",
    "doubling_time": "20",
    "lag_time": "20",
    "calculation_mode": "total_volume",
}
