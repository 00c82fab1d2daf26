# generator.py
# Build and merge the per-month bill/income instances from the active templates

import logging
from typing import List, Set

from config import PAYOFF_DAY
from helpers import parse_month, safe_date
from models import (
    BillInstance, IncomeInstance, MonthRecord, PaymentSource, Template, TemplateKind,
)
from schedule import expand_template

logger = logging.getLogger(__name__)


def _bill_instances(template: Template, month: str) -> List[BillInstance]:
    return [
        BillInstance(
            template_id=template.id,
            month=month,
            occurrence_date=d,
            amount=template.amount,
            name=template.name,
            payment_source_id=template.payment_source_id,
            category_id=template.category_id,
        )
        for d in expand_template(template, month)
    ]


def _income_instances(template: Template, month: str) -> List[IncomeInstance]:
    return [
        IncomeInstance(
            template_id=template.id,
            month=month,
            occurrence_date=d,
            amount=template.amount,
            name=template.name,
            payment_source_id=template.payment_source_id,
            category_id=template.category_id,
        )
        for d in expand_template(template, month)
    ]


def _payoff_instance(source: PaymentSource, month: str) -> BillInstance:
    y, m = parse_month(month)
    return BillInstance(
        month=month,
        occurrence_date=safe_date(y, m, PAYOFF_DAY),
        amount=source.balance,
        name=f"{source.name} Payoff".strip(),
        payment_source_id=source.id,
        payoff_source_id=source.id,
    )


def _generated_for(instances) -> Set[str]:
    return {i.template_id for i in instances if i.template_id is not None}


class InstanceGenerator:
    """
    Expands active templates into a month's instances.

    A template that already has any instance in the month is skipped, so
    edits the user made to that month survive and running generation again
    is a no-op. Template edits never reach instances that already exist.
    """

    def __init__(self, storage):
        self.storage = storage

    def generate_month(self, month: str) -> MonthRecord:
        parse_month(month)
        record = self.storage.load_month(month)
        is_new = record is None
        if is_new:
            record = MonthRecord(month=month)
        elif record.is_read_only:
            logger.info(f"Month {month} is read-only; leaving its instances as they are")
            return record

        bills = self.storage.load_templates(TemplateKind.BILL)
        incomes = self.storage.load_templates(TemplateKind.INCOME)
        sources = self.storage.load_payment_sources()

        # Everything is expanded before anything is written
        new_bills: List[BillInstance] = []
        seen = _generated_for(record.bill_instances)
        for bill in bills:
            if bill.is_active and bill.id not in seen:
                new_bills.extend(_bill_instances(bill, month))

        seen_payoffs = {i.payoff_source_id for i in record.bill_instances if i.is_payoff}
        for source in sources:
            if not (source.is_active and source.is_debt and source.pay_off_monthly):
                continue
            # A card at zero or in credit has nothing to pay off
            if source.balance > 0 and source.id not in seen_payoffs:
                new_bills.append(_payoff_instance(source, month))

        new_incomes: List[IncomeInstance] = []
        seen = _generated_for(record.income_instances)
        for income in incomes:
            if income.is_active and income.id not in seen:
                new_incomes.extend(_income_instances(income, month))

        if not (is_new or new_bills or new_incomes):
            logger.info(f"Month {month} already up to date")
            return record

        record.bill_instances.extend(new_bills)
        record.income_instances.extend(new_incomes)
        self.storage.save_month(record)
        logger.info(
            f"Generated {month}: {len(new_bills)} bill and {len(new_incomes)} income instance(s) added"
        )
        return record
