"""
Analytics Result Models

Output shapes of the aggregation layer. They are plain pydantic models so
the CLI can print them and callers can serialize them as-is.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from expense_ledger.models.transaction import Money


class Totals(BaseModel):
    """Income and expense sums for a set of transactions."""

    income: Money = Decimal("0")
    expenses: Money = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class Summary(BaseModel):
    """Totals plus the derived balance and savings rate."""

    total_income: Money = Decimal("0")
    total_expenses: Money = Decimal("0")
    net_balance: Money = Decimal("0")
    savings_rate: float = 0.0
    transaction_count: int = Field(default=0, ge=0)


class DailyTotal(BaseModel):
    """Income and expenses on one calendar day (UTC)."""

    day: str = Field(..., description="YYYY-MM-DD")
    income: Money = Decimal("0")
    expenses: Money = Decimal("0")


class BudgetAlert(BaseModel):
    """A spending threshold that has been exceeded."""

    scope: str = Field(
        ...,
        pattern="^(total|category)$",
    )
    category: Optional[str] = None
    threshold: Money
    spent: Money
    message: str


class AnalyticsSnapshot(BaseModel):
    """
    Everything the dashboard shows for one rolling period.

    Current values cover the last `period`, previous values the one before.
    """

    period: str = Field(..., pattern="^(week|month|year)$")
    generated_at: datetime
    transaction_count: int = Field(default=0, ge=0)

    current: Totals
    previous: Totals
    income_trend: float = 0.0
    expense_trend: float = 0.0

    net_savings: Money = Decimal("0")
    savings_rate: float = 0.0

    top_categories: dict[str, Money] = Field(default_factory=dict)
    daily_totals: list[DailyTotal] = Field(default_factory=list)
    average_daily_spending: Money = Decimal("0")
    max_spending_day: Optional[DailyTotal] = None

    @property
    def has_data(self) -> bool:
        return self.transaction_count > 0


class ImportResult(BaseModel):
    """Result of a successful import."""

    success: bool = True
    message: str
    transaction_count: int = Field(default=0, ge=0)
    settings_replaced: bool = False
