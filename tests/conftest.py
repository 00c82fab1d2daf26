import pytest
from datetime import date

from data import JsonStorage
from engine import BudgetEngine
from models import Bill, Income, PaymentSource, TemplateKind


@pytest.fixture
def storage(tmp_path):
    return JsonStorage(tmp_path / "data")


@pytest.fixture
def engine(storage):
    return BudgetEngine(storage)


@pytest.fixture
def checking(storage):
    source = PaymentSource(id="chk", name="Checking", type="bank_account", balance=0)
    storage.save_payment_source(source)
    return source


@pytest.fixture
def card(storage):
    source = PaymentSource(id="visa", name="Visa", type="credit_card", balance=50000, pay_off_monthly=True)
    storage.save_payment_source(source)
    return source


def make_bill(**overrides):
    fields = {"name": "Rent", "amount": 150000, "payment_source_id": "chk"}
    fields.update(overrides)
    return Bill(**fields)


def make_income(**overrides):
    fields = {
        "name": "Paycheck",
        "amount": 250000,
        "billing_period": "bi_weekly",
        "anchor_date": date(2025, 1, 3),
        "payment_source_id": "chk",
    }
    fields.update(overrides)
    return Income(**fields)


def save_templates(storage, bills=(), incomes=()):
    storage.save_templates(TemplateKind.BILL, list(bills))
    storage.save_templates(TemplateKind.INCOME, list(incomes))


def snapshot(data_dir):
    """Every file under the data directory, as bytes keyed by relative path."""
    return {
        str(p.relative_to(data_dir)): p.read_bytes()
        for p in sorted(data_dir.rglob("*.json"))
    }
