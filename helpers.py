# helpers.py
# Month keys, date clamping and integer rounding

from typing import Tuple
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
import calendar
import logging
import re

from errors import ValidationError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

def parse_month(month: str) -> Tuple[int, int]:
    """Split a 'YYYY-MM' key into (year, month), rejecting malformed keys."""
    match = MONTH_RE.match(str(month or ""))
    if not match:
        raise ValidationError(f"Month must be in YYYY-MM format, got {month!r}", field="month")
    y, m = int(match.group(1)), int(match.group(2))
    if not 1 <= m <= 12:
        raise ValidationError(f"Month number out of range in {month!r}", field="month")
    return y, m

def format_month(y: int, m: int) -> str:
    return f"{y:04d}-{m:02d}"

def month_of(d: date) -> str:
    """Return the 'YYYY-MM' key a date falls in."""
    return format_month(d.year, d.month)

# ---------- Date helpers ----------
def month_range(y: int, m: int) -> Tuple[date, date]:
    """Return the first and last date of a given month."""
    start = date(y, m, 1)
    last = calendar.monthrange(y, m)[1]
    return start, date(y, m, last)

def safe_date(y: int, m: int, d: int) -> date:
    """Return a valid date, clamping the day to the last day of the month if necessary."""
    last = calendar.monthrange(y, m)[1]
    return date(y, m, max(1, min(d, last)))


# ---------- Money ----------
def round_half_up(numerator: int, denominator: int) -> int:
    """Divide two integers and round the quotient half away from zero."""
    if denominator == 0:
        raise ValidationError("Cannot divide by a zero period length")
    quotient = Decimal(numerator) / Decimal(denominator)
    return int(quotient.quantize(Decimal(1), rounding=ROUND_HALF_UP))
