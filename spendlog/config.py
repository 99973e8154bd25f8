"""Configuration values for spendlog.

Paths and defaults live here; environment variables override them.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR = Path(os.getenv("SPENDLOG_DATA_DIR", "data"))

EXPENSES_FILE = "expenses.json"
RECURRING_EXPENSES_FILE = "recurring_expenses.json"
BUDGETS_FILE = "category_budgets.json"
PREFERENCES_FILE = "preferences.json"

DEFAULT_CURRENCY = "USD"

# code -> (symbol, name)
AVAILABLE_CURRENCIES = {
    "USD": ("$", "US Dollar"),
    "EUR": ("€", "Euro"),
    "GBP": ("£", "British Pound"),
    "JPY": ("¥", "Japanese Yen"),
    "CAD": ("$", "Canadian Dollar"),
    "AUD": ("$", "Australian Dollar"),
    "CNY": ("¥", "Chinese Yuan"),
    "INR": ("₹", "Indian Rupee"),
}

INSIGHT_TIMEOUT = float(os.getenv("SPENDLOG_INSIGHT_TIMEOUT", "30"))

TREND_PERIODS = 5


def ensure_data_dir(directory: Path | None = None) -> Path:
    """Create the data directory if it doesn't exist and return it."""
    target = directory or DATA_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target
