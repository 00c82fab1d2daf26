import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from errors import ValidationError
from helpers import parse_month


def _new_id() -> str:
    return str(uuid4())


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    BI_WEEKLY = "bi_weekly"
    WEEKLY = "weekly"
    SEMI_ANNUALLY = "semi_annually"


class PaymentSourceType(str, Enum):
    BANK_ACCOUNT = "bank_account"
    CREDIT_CARD = "credit_card"
    CASH = "cash"


class TemplateKind(str, Enum):
    BILL = "bill"
    INCOME = "income"


class EntityType(str, Enum):
    BILL = "bill"
    INCOME = "income"
    PAYMENT_SOURCE = "payment_source"
    BILL_INSTANCE = "bill_instance"
    INCOME_INSTANCE = "income_instance"
    VARIABLE_EXPENSE = "variable_expense"
    FREE_FLOWING_EXPENSE = "free_flowing_expense"


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def _check_month(value: str) -> str:
    try:
        parse_month(value)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
    return value


def _check_amount(value: int) -> int:
    if value < 0:
        raise ValueError("amount must be a non-negative number of cents")
    return value


class Template(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    amount: int = Field(strict=True)
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    anchor_date: Optional[dt.date] = None
    payment_source_id: str
    category_id: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name cannot be blank")
        return value

    @field_validator("amount")
    @classmethod
    def check_positive_amount(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("amount must be a positive number of cents")
        return value

    @model_validator(mode="after")
    def check_anchor(self):
        if self.billing_period != BillingPeriod.MONTHLY and self.anchor_date is None:
            raise ValueError(f"anchor_date is required for {self.billing_period.value} templates")
        return self


class Bill(Template):
    pass


class Income(Template):
    pass


class BillInstance(BaseModel):
    id: str = Field(default_factory=_new_id)
    template_id: Optional[str] = None
    month: str
    occurrence_date: dt.date
    amount: int = Field(strict=True)
    paid: bool = False
    name: str = ""
    payment_source_id: Optional[str] = None
    category_id: Optional[str] = None
    payoff_source_id: Optional[str] = None

    check_month = field_validator("month")(_check_month)
    check_amount = field_validator("amount")(_check_amount)

    @property
    def is_payoff(self) -> bool:
        return self.payoff_source_id is not None


class IncomeInstance(BaseModel):
    id: str = Field(default_factory=_new_id)
    template_id: Optional[str] = None
    month: str
    occurrence_date: dt.date
    amount: int = Field(strict=True)
    received: bool = False
    name: str = ""
    payment_source_id: Optional[str] = None
    category_id: Optional[str] = None

    check_month = field_validator("month")(_check_month)
    check_amount = field_validator("amount")(_check_amount)


class VariableExpense(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str = ""
    month: str
    amount: int = Field(strict=True)
    date: dt.date
    payment_source_id: str

    check_month = field_validator("month")(_check_month)
    check_amount = field_validator("amount")(_check_amount)


class FreeFlowingExpense(VariableExpense):
    pass


class PaymentSource(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str = ""
    type: PaymentSourceType
    balance: int = Field(default=0, strict=True)
    pay_off_monthly: bool = False
    is_active: bool = True

    @property
    def is_debt(self) -> bool:
        return self.type == PaymentSourceType.CREDIT_CARD


class MonthRecord(BaseModel):
    month: str
    bill_instances: List[BillInstance] = Field(default_factory=list)
    income_instances: List[IncomeInstance] = Field(default_factory=list)
    variable_expenses: List[VariableExpense] = Field(default_factory=list)
    free_flowing_expenses: List[FreeFlowingExpense] = Field(default_factory=list)
    is_read_only: bool = False
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now().replace(microsecond=0))

    check_month = field_validator("month")(_check_month)


class UndoEntry(BaseModel):
    entity_type: EntityType
    operation: Operation
    entity_id: str
    pre_image: Optional[Dict[str, Any]] = None
    month: Optional[str] = None
    position: Optional[int] = None

    @model_validator(mode="after")
    def check_pre_image(self):
        if self.operation == Operation.CREATE and self.pre_image is not None:
            raise ValueError("a create entry has no pre-image")
        if self.operation != Operation.CREATE and self.pre_image is None:
            raise ValueError(f"an {self.operation.value} entry needs a pre-image")
        return self


class SyncProposal(BaseModel):
    instance_id: str
    payment_source_id: str
    current_balance: int
    payment_amount: int
    proposed_balance: int
    warning: Optional[str] = None


class LeftoverBreakdown(BaseModel):
    month: str
    asset_balances: int
    debt_balances: int
    income: int
    bills: int
    variable_expenses: int
    free_flowing_expenses: int
    leftover: int


TEMPLATE_MODELS = {
    TemplateKind.BILL: Bill,
    TemplateKind.INCOME: Income,
}

# MonthRecord list holding each month-scoped entity type
MONTH_COLLECTIONS = {
    EntityType.BILL_INSTANCE: ("bill_instances", BillInstance),
    EntityType.INCOME_INSTANCE: ("income_instances", IncomeInstance),
    EntityType.VARIABLE_EXPENSE: ("variable_expenses", VariableExpense),
    EntityType.FREE_FLOWING_EXPENSE: ("free_flowing_expenses", FreeFlowingExpense),
}
