import pytest
from datetime import date

from conftest import make_bill, make_income, save_templates
from errors import NotFoundError, ValidationError
from generator import InstanceGenerator
from leftover import (
    LeftoverCalculator, monthly_contribution, monthly_equivalent_frame, monthly_equivalent_total,
)
from models import FreeFlowingExpense, PaymentSource, VariableExpense
from payoff import PayoffSynchronizer
from undo import UndoLog


def test_scenario_monthly_bill_against_empty_account(storage, checking):
    save_templates(storage, bills=[make_bill(amount=150000)])
    InstanceGenerator(storage).generate_month("2025-01")

    assert LeftoverCalculator(storage).compute_leftover("2025-01") == -150000


def _populated_month(storage):
    storage.save_payment_sources([
        PaymentSource(id="chk", name="Checking", type="bank_account", balance=420000),
        PaymentSource(id="wallet", name="Wallet", type="cash", balance=3500),
        PaymentSource(id="visa", name="Visa", type="credit_card", balance=81234, pay_off_monthly=True),
        PaymentSource(id="amex", name="Amex", type="credit_card", balance=-1999),
        PaymentSource(id="old", name="Closed", type="bank_account", balance=77777, is_active=False),
    ])
    save_templates(
        storage,
        bills=[make_bill(amount=150000), make_bill(name="Gym", amount=2999, billing_period="weekly",
                                                   anchor_date=date(2025, 1, 6))],
        incomes=[make_income()],
    )
    record = InstanceGenerator(storage).generate_month("2025-01")
    record.variable_expenses.append(
        VariableExpense(name="Groceries", month="2025-01", amount=12345, date=date(2025, 1, 9), payment_source_id="chk")
    )
    record.free_flowing_expenses.append(
        FreeFlowingExpense(name="Movie", month="2025-01", amount=1800, date=date(2025, 1, 12), payment_source_id="wallet")
    )
    storage.save_month(record)
    return record


def test_breakdown_terms(storage):
    _populated_month(storage)
    b = LeftoverCalculator(storage).breakdown("2025-01")

    assert b.asset_balances == 423500
    # Amex is in credit and owes nothing
    assert b.debt_balances == 81234
    assert b.income == 3 * 250000
    # Four Mondays in January 2025; the Visa payoff bill is not counted again
    assert b.bills == 150000 + 4 * 2999
    assert b.variable_expenses == 12345
    assert b.free_flowing_expenses == 1800
    assert b.leftover == 423500 - 81234 + 750000 - 161996 - 12345 - 1800


def test_leftover_equals_sum_of_line_items(storage):
    record = _populated_month(storage)
    calc = LeftoverCalculator(storage)
    items = calc.line_items("2025-01")

    by_hand = (
        420000 + 3500 - 81234
        + sum(i.amount for i in record.income_instances)
        - sum(i.amount for i in record.bill_instances if not i.is_payoff)
        - 12345 - 1800
    )
    assert calc.compute_leftover("2025-01") == by_hand
    assert int(items["cents"].sum()) == by_hand
    assert isinstance(calc.compute_leftover("2025-01"), int)


def test_leftover_tracks_storage_changes(storage, checking):
    save_templates(storage, bills=[make_bill(amount=10000)])
    InstanceGenerator(storage).generate_month("2025-02")
    calc = LeftoverCalculator(storage)
    assert calc.compute_leftover("2025-02") == -10000

    storage.save_payment_source(checking.model_copy(update={"balance": 25000}))
    assert calc.compute_leftover("2025-02") == 15000


def test_missing_month(storage):
    with pytest.raises(NotFoundError):
        LeftoverCalculator(storage).compute_leftover("2030-01")


@pytest.mark.parametrize("amount,period,expected", [
    (150000, "monthly", 150000),
    (10000, "weekly", 43333),
    (10000, "bi_weekly", 21667),
    (10000, "semi_annually", 1667),
    (3, "bi_weekly", 7),
    (3, "semi_annually", 1),
])
def test_monthly_contribution(amount, period, expected):
    assert monthly_contribution(amount, period) == expected


def test_monthly_contribution_rejects_unknown_period():
    with pytest.raises(ValidationError):
        monthly_contribution(100, "yearly")


def test_subtotal_is_sum_of_rounded_lines():
    templates = [
        make_bill(name="A", amount=3, billing_period="bi_weekly", anchor_date=date(2025, 1, 3)),
        make_bill(name="B", amount=3, billing_period="bi_weekly", anchor_date=date(2025, 1, 10)),
        make_bill(name="Off", amount=999, is_active=False),
    ]
    df = monthly_equivalent_frame(templates)

    assert list(df["name"]) == ["A", "B"]
    assert list(df["monthly_equivalent"]) == [7, 7]
    # Rounding the aggregate 6.5 + 6.5 would give 13
    assert monthly_equivalent_total(templates) == 14
    assert int(df["monthly_equivalent"].sum()) == monthly_equivalent_total(templates)


def test_summary_frame_kinds_and_empty():
    df = monthly_equivalent_frame([make_bill(), make_income()])
    assert list(df["kind"]) == ["bill", "income"]
    assert list(df["monthly_equivalent"]) == [150000, 541667]

    empty = monthly_equivalent_frame([])
    assert empty.empty
    assert "monthly_equivalent" in empty.columns


def test_overpaying_a_card_does_not_lower_leftover(storage, checking, card):
    record = InstanceGenerator(storage).generate_month("2025-06")
    payoff = next(i for i in record.bill_instances if i.is_payoff)
    calc = LeftoverCalculator(storage)
    sync = PayoffSynchronizer(storage, UndoLog(storage))

    sync.apply_sync("2025-06", payoff.id, 50000)
    assert calc.compute_leftover("2025-06") == 0

    storage.save_payment_source(card.model_copy(update={"balance": -10000}))
    assert calc.compute_leftover("2025-06") == 0
    assert int(calc.line_items("2025-06")["cents"].sum()) == 0


def _tally_month(storage):
    save_templates(
        storage,
        bills=[
            make_bill(id="rent", category_id="housing"),
            make_bill(id="water", name="Water", amount=4000, category_id="utilities", anchor_date=date(2025, 3, 20)),
            make_bill(id="power", name="Power", amount=6000, category_id="utilities", anchor_date=date(2025, 3, 5)),
            make_bill(id="misc", name="Misc", amount=700),
        ],
        incomes=[make_income(category_id="salary")],
    )
    record = InstanceGenerator(storage).generate_month("2025-03")
    for i in record.bill_instances:
        if i.template_id in ("rent", "power"):
            i.paid = True
    record.income_instances[0].received = True
    storage.save_month(record)
    return record


def test_section_tally(storage, checking):
    _tally_month(storage)
    df = LeftoverCalculator(storage).tally("2025-03").set_index("section")

    assert df.loc["bills"].to_dict() == {"expected": 160700, "actual": 156000, "remaining": 4700}
    # Paychecks on March 14 and 28, only the first received
    assert df.loc["income"].to_dict() == {"expected": 500000, "actual": 250000, "remaining": 250000}


def test_category_subtotals(storage, checking):
    _tally_month(storage)
    df = LeftoverCalculator(storage).category_subtotals("2025-03")

    assert list(df["section"]) == ["bills", "bills", "bills", "income"]
    assert list(df["category_id"]) == ["housing", "uncategorized", "utilities", "salary"]
    assert list(df["expected"]) == [150000, 700, 10000, 500000]
    assert list(df["actual"]) == [150000, 0, 6000, 250000]


def test_overdue_bills(storage, checking):
    _tally_month(storage)
    df = LeftoverCalculator(storage).overdue_bills("2025-03", today=date(2025, 3, 25))

    # Misc is due on the 1st, Water on the 20th; Rent and Power are paid
    assert list(df["name"]) == ["Misc", "Water"]
    assert list(df["days_overdue"]) == [24, 5]
    assert LeftoverCalculator(storage).overdue_bills("2025-03", today=date(2025, 3, 1)).empty


def test_tallies_of_an_empty_month(storage):
    InstanceGenerator(storage).generate_month("2025-04")
    calc = LeftoverCalculator(storage)

    assert calc.tally("2025-04")["expected"].tolist() == [0, 0]
    assert calc.category_subtotals("2025-04").empty
    assert calc.overdue_bills("2025-04", today=date(2025, 5, 1)).empty
