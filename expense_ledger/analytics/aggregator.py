"""
Transaction Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and read-only.
Every function here takes a sequence of transactions and returns a new
value; nothing is cached and the store is never touched. Callers
recompute on every read.

Dates are bucketed in UTC, so the same ledger gives the same report
regardless of the machine's timezone.
"""

import math
from calendar import monthrange
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Union

from expense_ledger.models.analytics import BudgetAlert, DailyTotal, Summary, Totals
from expense_ledger.models.transaction import Transaction, TransactionType, UserSettings


GRANULARITIES = ("day", "week", "month", "year")
WINDOWS = ("week", "month", "year")

DEFAULT_TOP_CATEGORIES = 6
ANOMALY_MIN_POINTS = 3
ANOMALY_STDDEV_FACTOR = 2


# =============================================================================
# TOTALS
# =============================================================================

def totals(transactions: Iterable[Transaction]) -> Totals:
    """Sum amounts split by transaction type."""
    income = Decimal("0")
    expenses = Decimal("0")
    for transaction in transactions:
        if transaction.is_income:
            income += transaction.amount
        else:
            expenses += transaction.amount
    return Totals(income=income, expenses=expenses)


def savings_rate(transactions: Iterable[Transaction]) -> float:
    """
    Percentage of income retained after expenses.

    Defined as 0 when there is no income, never NaN.
    """
    result = totals(transactions)
    return _rate(result.income, result.expenses)


def _rate(income: Decimal, expenses: Decimal) -> float:
    if income == 0:
        return 0.0
    return float((income - expenses) / income * 100)


def summarize(transactions: Iterable[Transaction]) -> Summary:
    """Totals, net balance and savings rate in one pass."""
    items = list(transactions)
    result = totals(items)
    return Summary(
        total_income=result.income,
        total_expenses=result.expenses,
        net_balance=result.net,
        savings_rate=_rate(result.income, result.expenses),
        transaction_count=len(items),
    )


def trend(
    current: Union[Decimal, float],
    previous: Union[Decimal, float],
) -> float:
    """
    Percentage change from `previous` to `current`.

    +100 when previous is 0 and current is positive, 0 when both are 0.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return float((current - previous) / previous * 100)


# =============================================================================
# GROUPING
# =============================================================================

def by_category(
    transactions: Iterable[Transaction],
    transaction_type: TransactionType = TransactionType.EXPENSE,
) -> dict[str, Decimal]:
    """
    Total amount per category for one transaction type.

    Keys appear in order of first occurrence.
    """
    wanted = TransactionType(transaction_type)
    result: dict[str, Decimal] = {}
    for transaction in transactions:
        if transaction.type != wanted:
            continue
        result[transaction.category] = result.get(transaction.category, Decimal("0")) + transaction.amount
    return result


def top_categories(
    category_totals: dict[str, Decimal],
    limit: int = DEFAULT_TOP_CATEGORIES,
) -> dict[str, Decimal]:
    """The `limit` largest categories, sorted descending (ties keep first-seen order)."""
    ranked = sorted(category_totals.items(), key=lambda item: item[1], reverse=True)
    return dict(ranked[:limit])


def period_key(moment: datetime, granularity: str) -> str:
    """
    Calendar bucket key for a moment.

    day -> YYYY-MM-DD, week -> YYYY-MM-DD of the Sunday starting the week,
    month and year -> YYYY-MM. Year shares the month key, so a year
    grouping yields one bucket per calendar month.
    """
    moment = moment.astimezone(timezone.utc)
    if granularity == "day":
        return moment.strftime("%Y-%m-%d")
    if granularity == "week":
        # Monday is 0 for weekday(); Sunday starts the week here
        days_since_sunday = (moment.weekday() + 1) % 7
        return (moment.date() - timedelta(days=days_since_sunday)).isoformat()
    if granularity in ("month", "year"):
        return moment.strftime("%Y-%m")
    raise ValueError(
        f"Unknown granularity: {granularity!r} (expected one of {', '.join(GRANULARITIES)})"
    )


def by_period(
    transactions: Iterable[Transaction],
    granularity: str,
) -> dict[str, list[Transaction]]:
    """
    Group transactions into calendar buckets.

    Raises:
        ValueError: If granularity is not day, week, month or year
    """
    if granularity not in GRANULARITIES:
        raise ValueError(
            f"Unknown granularity: {granularity!r} (expected one of {', '.join(GRANULARITIES)})"
        )
    groups: dict[str, list[Transaction]] = {}
    for transaction in transactions:
        key = period_key(transaction.occurred_at, granularity)
        groups.setdefault(key, []).append(transaction)
    return groups


def daily_totals(transactions: Iterable[Transaction]) -> list[DailyTotal]:
    """Income and expenses per UTC day, sorted by day."""
    days: dict[str, DailyTotal] = {}
    for transaction in transactions:
        key = period_key(transaction.occurred_at, "day")
        entry = days.setdefault(key, DailyTotal(day=key))
        if transaction.is_income:
            entry.income += transaction.amount
        else:
            entry.expenses += transaction.amount
    return [days[key] for key in sorted(days)]


# =============================================================================
# ROLLING WINDOWS
# =============================================================================

def _shift_months(moment: datetime, months: int) -> datetime:
    """Move a datetime by whole months, clamping the day to the month length."""
    month_index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _window_start(now: datetime, period: str, steps: int) -> datetime:
    if period == "week":
        return now - timedelta(days=7 * steps)
    if period == "month":
        return _shift_months(now, -steps)
    if period == "year":
        return _shift_months(now, -12 * steps)
    raise ValueError(
        f"Unknown period: {period!r} (expected one of {', '.join(WINDOWS)})"
    )


def window_bounds(
    period: str,
    now: Optional[datetime] = None,
    previous: bool = False,
) -> tuple[datetime, datetime]:
    """
    Inclusive [start, end] of the rolling window ending at `now`.

    The previous window is the one of the same length directly before it.
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    if previous:
        return _window_start(now, period, 2), _window_start(now, period, 1)
    return _window_start(now, period, 1), now


def filter_by_window(
    transactions: Iterable[Transaction],
    period: str,
    now: Optional[datetime] = None,
    previous: bool = False,
) -> list[Transaction]:
    """Transactions dated inside the current (or previous) rolling window."""
    start, end = window_bounds(period, now, previous)
    return [t for t in transactions if start <= t.occurred_at <= end]


# =============================================================================
# SPENDING STATISTICS
# =============================================================================

def days_spanned(transactions: Iterable[Transaction]) -> int:
    """Calendar days from the earliest to the latest transaction, inclusive."""
    moments = [t.occurred_at for t in transactions]
    if not moments:
        return 0
    span = max(moments) - min(moments)
    return math.ceil(span / timedelta(days=1)) + 1


def average_daily_spending(transactions: Iterable[Transaction]) -> Decimal:
    """Total expenses divided by the number of days the transactions span."""
    items = list(transactions)
    days = days_spanned(items)
    if days == 0:
        return Decimal("0")
    return totals(items).expenses / days


def max_spending_day(transactions: Iterable[Transaction]) -> Optional[DailyTotal]:
    """The day with the highest expense total, or None without expenses."""
    best: Optional[DailyTotal] = None
    for entry in daily_totals(transactions):
        if entry.expenses <= 0:
            continue
        if best is None or entry.expenses > best.expenses:
            best = entry
    return best


def detect_anomalies(
    transactions: Iterable[Transaction],
    category: str,
) -> list[Transaction]:
    """
    Expenses in `category` whose amount exceeds mean + 2 standard deviations.

    Uses the population standard deviation of the category's expense
    amounts. Fewer than 3 data points never produce anomalies.
    """
    candidates = [
        t for t in transactions
        if t.category == category and t.is_expense
    ]
    if len(candidates) < ANOMALY_MIN_POINTS:
        return []

    amounts = [t.amount for t in candidates]
    mean = sum(amounts) / len(amounts)
    variance = sum((amount - mean) ** 2 for amount in amounts) / len(amounts)
    threshold = mean + ANOMALY_STDDEV_FACTOR * variance.sqrt()

    return [t for t in candidates if t.amount > threshold]


# =============================================================================
# SEARCH AND ALERTS
# =============================================================================

def _searchable(value: object) -> str:
    return str(value).lower()


def search(transactions: Iterable[Transaction], query: str) -> list[Transaction]:
    """Case-insensitive substring match over every field of each transaction."""
    needle = query.strip().lower()
    if not needle:
        return list(transactions)
    return [
        t for t in transactions
        if any(needle in _searchable(value) for value in t.to_record().values())
    ]


def budget_alerts(
    transactions: Iterable[Transaction],
    settings: UserSettings,
) -> list[BudgetAlert]:
    """
    Budgets exceeded by the given transactions.

    The caller decides the window (usually the current month). A budget of
    0 is treated as unset.
    """
    items = list(transactions)
    alerts: list[BudgetAlert] = []

    spent = totals(items).expenses
    if settings.monthly_budget > 0 and spent > settings.monthly_budget:
        alerts.append(BudgetAlert(
            scope="total",
            threshold=settings.monthly_budget,
            spent=spent,
            message=(
                f"Monthly expenses have exceeded "
                f"{settings.monthly_budget:,.0f} {settings.currency}"
            ),
        ))

    spent_by_category = by_category(items)
    for category, threshold in settings.category_budgets.items():
        category_spent = spent_by_category.get(category, Decimal("0"))
        if threshold > 0 and category_spent > threshold:
            alerts.append(BudgetAlert(
                scope="category",
                category=category,
                threshold=threshold,
                spent=category_spent,
                message=f"{category} expenses have exceeded {threshold:,.0f} {settings.currency}",
            ))

    return alerts


def current_month(now: Optional[datetime] = None) -> str:
    """YYYY-MM of `now` in UTC."""
    return period_key(now or datetime.now(timezone.utc), "month")


def in_month(transactions: Iterable[Transaction], month: str) -> list[Transaction]:
    """Transactions whose UTC date falls in the YYYY-MM month."""
    return [t for t in transactions if period_key(t.occurred_at, "month") == month]

