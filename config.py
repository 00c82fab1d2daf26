# config.py
# Paths, empty defaults and billing constants

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.getenv("BUDGET_DATA_DIR", BASE_DIR / "data"))

BILLS_FILE = "bills.json"
INCOMES_FILE = "incomes.json"
PAYMENT_SOURCES_FILE = "payment_sources.json"
MONTHS_DIR = "months"

# Empty defaults for a fresh data directory
EMPTY_BILLS = []
EMPTY_INCOMES = []
EMPTY_PAYMENT_SOURCES = []

# Payoff bills are dated on a day every month has
PAYOFF_DAY = 28

PERIODS_PER_YEAR = {
    "monthly": 12,
    "bi_weekly": 26,
    "weekly": 52,
    "semi_annually": 2,
}

STEP_DAYS = {
    "bi_weekly": 14,
    "weekly": 7,
}

SEMI_ANNUAL_STEP_MONTHS = 6
