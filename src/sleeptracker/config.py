"""Configuration and directory management for SleepTracker."""

import os
from pathlib import Path

SLEEPTRACKER_DIR = Path(os.environ.get("SLEEPTRACKER_HOME", Path.home() / ".sleeptracker"))
DB_PATH = SLEEPTRACKER_DIR / "sleep.db"

# Name of the table holding one row per night
NIGHTS_TABLE = "daily_sleep_quality_table"


def ensure_dirs() -> None:
    """Ensure the SleepTracker directory exists."""
    SLEEPTRACKER_DIR.mkdir(parents=True, exist_ok=True)
