# leftover.py
# Leftover figure for a month, section tallies and the monthly-equivalent summary of templates

import datetime as dt
from typing import Iterable, List, Optional, Union

import pandas as pd

from config import PERIODS_PER_YEAR
from errors import NotFoundError
from helpers import parse_month, round_half_up
from models import BillingPeriod, Income, LeftoverBreakdown, MonthRecord, Template
from schedule import coerce_period

SUMMARY_COLUMNS = ["id", "name", "kind", "billing_period", "amount", "monthly_equivalent"]
LINE_ITEM_COLUMNS = ["source", "id", "name", "cents"]
INSTANCE_COLUMNS = ["id", "name", "category_id", "occurrence_date", "amount", "settled"]
TALLY_COLUMNS = ["section", "expected", "actual", "remaining"]
CATEGORY_COLUMNS = ["section", "category_id", "expected", "actual"]
OVERDUE_COLUMNS = ["id", "name", "amount", "due_date", "days_overdue"]

UNCATEGORIZED = "uncategorized"


def monthly_contribution(amount: int, period: Union[BillingPeriod, str]) -> int:
    """
    Spread a per-occurrence amount over a month: amount * periods-per-year / 12,
    rounded half-up to whole cents.
    """
    period = coerce_period(period)
    return round_half_up(amount * PERIODS_PER_YEAR[period.value], 12)


def monthly_equivalent_frame(templates: Iterable[Template], active_only: bool = True) -> pd.DataFrame:
    """
    One row per template with its monthly-equivalent contribution.
    Each row is rounded on its own; subtotals are sums of the rounded rows.
    """
    rows = []
    for t in templates:
        if active_only and not t.is_active:
            continue
        rows.append({
            "id": t.id,
            "name": t.name,
            "kind": "income" if isinstance(t, Income) else "bill",
            "billing_period": t.billing_period.value,
            "amount": t.amount,
            "monthly_equivalent": monthly_contribution(t.amount, t.billing_period),
        })
    df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    return df.astype({"amount": "int64", "monthly_equivalent": "int64"})


def monthly_equivalent_total(templates: Iterable[Template], active_only: bool = True) -> int:
    return sum(
        monthly_contribution(t.amount, t.billing_period)
        for t in templates
        if t.is_active or not active_only
    )


def owed(balance: int) -> int:
    """Amount owed on a card; a card in credit owes nothing."""
    return max(balance, 0)


def instance_frame(instances, settled_attr: str) -> pd.DataFrame:
    """Bill or income instances as rows; settled is the paid/received flag."""
    rows = [
        {
            "id": i.id,
            "name": i.name,
            "category_id": i.category_id or UNCATEGORIZED,
            "occurrence_date": i.occurrence_date,
            "amount": i.amount,
            "settled": bool(getattr(i, settled_attr)),
        }
        for i in instances
    ]
    df = pd.DataFrame(rows, columns=INSTANCE_COLUMNS)
    return df.astype({"amount": "int64", "settled": "bool"})


def section_tally(df: pd.DataFrame) -> dict:
    """expected = everything scheduled, actual = paid/received, remaining = the rest."""
    expected = int(df["amount"].sum())
    actual = int(df.loc[df["settled"], "amount"].sum())
    return {"expected": expected, "actual": actual, "remaining": expected - actual}


def category_subtotals(df: pd.DataFrame, section: str) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=CATEGORY_COLUMNS)
    df = df.assign(actual=df["amount"].where(df["settled"], 0))
    grouped = (
        df.groupby("category_id", sort=True)
        .agg(expected=("amount", "sum"), actual=("actual", "sum"))
        .reset_index()
    )
    grouped.insert(0, "section", section)
    return grouped[CATEGORY_COLUMNS].astype({"expected": "int64", "actual": "int64"})


class LeftoverCalculator:
    """
    leftover = asset balances (bank, cash; signed)
             - credit card balances owed (a card in credit counts as 0)
             + income instances
             - bill instances (payoff bills excluded, the card balance covers them)
             - variable expenses
             - free-flowing expenses

    Always derived from storage; nothing is cached.
    """

    def __init__(self, storage):
        self.storage = storage

    def _load(self, month: str) -> MonthRecord:
        parse_month(month)
        record = self.storage.load_month(month)
        if record is None:
            raise NotFoundError("Month", month)
        return record

    def breakdown(self, month: str) -> LeftoverBreakdown:
        record = self._load(month)
        sources = [s for s in self.storage.load_payment_sources() if s.is_active]

        asset_balances = sum(s.balance for s in sources if not s.is_debt)
        debt_balances = sum(owed(s.balance) for s in sources if s.is_debt)
        income = sum(i.amount for i in record.income_instances)
        bills = sum(i.amount for i in record.bill_instances if not i.is_payoff)
        variable = sum(e.amount for e in record.variable_expenses)
        free_flowing = sum(e.amount for e in record.free_flowing_expenses)

        return LeftoverBreakdown(
            month=month,
            asset_balances=asset_balances,
            debt_balances=debt_balances,
            income=income,
            bills=bills,
            variable_expenses=variable,
            free_flowing_expenses=free_flowing,
            leftover=asset_balances - debt_balances + income - bills - variable - free_flowing,
        )

    def compute_leftover(self, month: str) -> int:
        return self.breakdown(month).leftover

    def line_items(self, month: str) -> pd.DataFrame:
        """Every signed term of the leftover as its own row; the column sums to the leftover."""
        record = self._load(month)
        rows: List[dict] = []
        for s in self.storage.load_payment_sources():
            if not s.is_active:
                continue
            signed = -owed(s.balance) if s.is_debt else s.balance
            rows.append({"source": "payment_source", "id": s.id, "name": s.name, "cents": signed})
        for i in record.income_instances:
            rows.append({"source": "income_instance", "id": i.id, "name": i.name, "cents": i.amount})
        for i in record.bill_instances:
            if not i.is_payoff:
                rows.append({"source": "bill_instance", "id": i.id, "name": i.name, "cents": -i.amount})
        for e in record.variable_expenses:
            rows.append({"source": "variable_expense", "id": e.id, "name": e.name, "cents": -e.amount})
        for e in record.free_flowing_expenses:
            rows.append({"source": "free_flowing_expense", "id": e.id, "name": e.name, "cents": -e.amount})
        df = pd.DataFrame(rows, columns=LINE_ITEM_COLUMNS)
        return df.astype({"cents": "int64"})

    # ---------- Tallies ----------
    def tally(self, month: str) -> pd.DataFrame:
        """Expected, actual and remaining totals for the bills and income sections."""
        record = self._load(month)
        rows = [
            {"section": "bills", **section_tally(instance_frame(record.bill_instances, "paid"))},
            {"section": "income", **section_tally(instance_frame(record.income_instances, "received"))},
        ]
        return pd.DataFrame(rows, columns=TALLY_COLUMNS)

    def category_subtotals(self, month: str) -> pd.DataFrame:
        """Expected and actual per category, bills first, categories sorted."""
        record = self._load(month)
        frames = [
            category_subtotals(instance_frame(record.bill_instances, "paid"), "bills"),
            category_subtotals(instance_frame(record.income_instances, "received"), "income"),
        ]
        frames = [f for f in frames if not f.empty]
        if not frames:
            return pd.DataFrame(columns=CATEGORY_COLUMNS)
        return pd.concat(frames, ignore_index=True)

    def overdue_bills(self, month: str, today: Optional[dt.date] = None) -> pd.DataFrame:
        """Unpaid bill instances dated before today, oldest first."""
        record = self._load(month)
        today = today or dt.date.today()
        rows = [
            {
                "id": i.id,
                "name": i.name,
                "amount": i.amount,
                "due_date": i.occurrence_date,
                "days_overdue": (today - i.occurrence_date).days,
            }
            for i in record.bill_instances
            if not i.paid and i.occurrence_date < today
        ]
        df = pd.DataFrame(rows, columns=OVERDUE_COLUMNS)
        df = df.astype({"amount": "int64", "days_overdue": "int64"})
        return df.sort_values("due_date", kind="stable").reset_index(drop=True)
