# schedule.py
# Expand a recurring template into the dates it falls on within one month

from typing import List, Optional, Union
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from config import STEP_DAYS, SEMI_ANNUAL_STEP_MONTHS
from errors import ValidationError
from helpers import parse_month, month_range, safe_date
from models import BillingPeriod, Template


TYPICAL_OCCURRENCES = {
    BillingPeriod.MONTHLY: 1,
    BillingPeriod.BI_WEEKLY: 2,
    BillingPeriod.WEEKLY: 4,
    BillingPeriod.SEMI_ANNUALLY: 0,
}

def coerce_period(period: Union[BillingPeriod, str]) -> BillingPeriod:
    try:
        return BillingPeriod(period)
    except ValueError:
        raise ValidationError(
            f"Billing period must be one of: {', '.join(p.value for p in BillingPeriod)}",
            field="billing_period",
        ) from None

def expand(anchor_date: Optional[date], period: Union[BillingPeriod, str], target_month: str) -> List[date]:
    """
    Return every date in target_month on which a template with this anchor
    and billing period occurs, ascending.

    monthly       one date, on the anchor's day clamped to the month (1st without an anchor)
    bi_weekly     14-day steps from the anchor, in both directions
    weekly        7-day steps from the anchor, in both directions
    semi_annually anchor + 6k months for k >= 0
    """
    period = coerce_period(period)
    y, m = parse_month(target_month)

    if period == BillingPeriod.MONTHLY:
        day = anchor_date.day if anchor_date else 1
        return [safe_date(y, m, day)]

    if anchor_date is None:
        raise ValidationError(
            f"An anchor date is required for {period.value} billing", field="anchor_date"
        )

    if period == BillingPeriod.SEMI_ANNUALLY:
        months_diff = (y - anchor_date.year) * 12 + (m - anchor_date.month)
        if months_diff >= 0 and months_diff % SEMI_ANNUAL_STEP_MONTHS == 0:
            return [anchor_date + relativedelta(months=months_diff)]
        return []

    step = STEP_DAYS[period.value]
    first, last = month_range(y, m)
    # Smallest k with anchor + k*step >= first; k may be negative
    delta = (first - anchor_date).days
    k = -(-delta // step)
    current = anchor_date + timedelta(days=k * step)
    dates = []
    while current <= last:
        dates.append(current)
        current += timedelta(days=step)
    return dates

def expand_template(template: Template, target_month: str) -> List[date]:
    return expand(template.anchor_date, template.billing_period, target_month)

def occurrence_count(anchor_date: Optional[date], period: Union[BillingPeriod, str], target_month: str) -> int:
    return len(expand(anchor_date, period, target_month))

def typical_occurrence_count(period: Union[BillingPeriod, str]) -> int:
    return TYPICAL_OCCURRENCES[coerce_period(period)]

def is_extra_occurrence_month(period: Union[BillingPeriod, str], count: int) -> bool:
    """True for a 3-paycheck bi-weekly month or a 5-week weekly month."""
    period = coerce_period(period)
    if period in (BillingPeriod.BI_WEEKLY, BillingPeriod.WEEKLY):
        return count > TYPICAL_OCCURRENCES[period]
    return False
