"""
Report Models

Queries and read-only results produced by the report executor.
Nothing in here is ever stored.
"""

from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from pocketledger.models.ledger import (
    CardDetails,
    CreditEntry,
    Transaction,
    TransactionType,
)


TransactionSort = Literal["date-desc", "date-asc", "amount-desc", "amount-asc"]
CategorySort = Literal["name-asc", "name-desc", "type-asc", "type-desc"]


class TransactionQuery(BaseModel):
    """
    Filters for listing transactions.

    Period modes:
    - "all": no date filter
    - "day": transactions on `day`
    - "month": transactions in `month` (YYYY-MM)
    - "range": `start` to `end`, both inclusive; an open range matches all

    Days are evaluated in the report timezone.
    """

    mode: Literal["all", "day", "month", "range"] = "all"
    day: Optional[date] = None
    month: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}-(0[1-9]|1[0-2])$",
        description="Month as YYYY-MM"
    )
    start: Optional[date] = None
    end: Optional[date] = None

    type: Optional[TransactionType] = None
    category: Optional[str] = Field(
        default=None,
        description="Exact category name"
    )
    search: str = Field(
        default="",
        description="Case-insensitive text matched against note and category"
    )
    sort_by: TransactionSort = "date-desc"

    @model_validator(mode='after')
    def validate_period(self) -> 'TransactionQuery':
        if self.mode == "day" and self.day is None:
            raise ValueError("Day mode requires a day")
        if self.mode == "month" and self.month is None:
            raise ValueError("Month mode requires a month")
        if self.mode == "range" and self.start and self.end and self.start > self.end:
            raise ValueError("Range start must not be after its end")
        return self


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal


class PeriodSummary(BaseModel):
    """Income and expense totals for a filtered period."""

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    transaction_count: int = 0
    expense_by_category: list[CategoryTotal] = Field(
        default_factory=list,
        description="Largest first"
    )

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.income - self.expense

    @property
    def top_expense_category(self) -> Optional[CategoryTotal]:
        return self.expense_by_category[0] if self.expense_by_category else None


class DailyTotals(BaseModel):
    """Income and expense on one day, for trend charts."""

    day: date
    label: str
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class MonthGroup(BaseModel):
    """Transactions of one calendar month, e.g. 'November 2025'."""

    label: str
    transactions: list[Transaction]


class CreditSummary(BaseModel):
    """Totals over one of the credit ledgers."""

    total_amount: Decimal = Decimal("0")
    total_returned: Decimal = Decimal("0")
    entry_count: int = 0
    most_frequent_person: Optional[str] = None

    @computed_field
    @property
    def total_pending(self) -> Decimal:
        return self.total_amount - self.total_returned


class PendingByPerson(BaseModel):
    person_name: str
    pending_amount: Decimal


class PersonCreditProfile(BaseModel):
    """Everything lent to one person, newest first."""

    person_name: str
    entries: list[CreditEntry] = Field(default_factory=list)
    total_lent: Decimal = Decimal("0")
    total_returned: Decimal = Decimal("0")

    @computed_field
    @property
    def total_pending(self) -> Decimal:
        return self.total_lent - self.total_returned


class DashboardSummary(BaseModel):
    """Headline figures for today."""

    total_balance: Decimal
    balances: dict[str, Decimal]
    pending_credit_lent: Decimal
    pending_credit_received: Decimal
    todays_income: Decimal
    todays_expense: Decimal
    top_pending_credits: list[PendingByPerson] = Field(default_factory=list)


class CardSearchResult(BaseModel):
    card: CardDetails
    balance: Decimal
