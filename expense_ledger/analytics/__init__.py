"""Read-only aggregation over transactions."""

from expense_ledger.analytics.aggregator import (
    GRANULARITIES,
    average_daily_spending,
    budget_alerts,
    by_category,
    by_period,
    current_month,
    daily_totals,
    detect_anomalies,
    filter_by_window,
    in_month,
    max_spending_day,
    period_key,
    savings_rate,
    search,
    summarize,
    top_categories,
    totals,
    trend,
    window_bounds,
)
from expense_ledger.analytics.service import AnalyticsService

__all__ = [
    "AnalyticsService",
    "GRANULARITIES",
    "average_daily_spending",
    "budget_alerts",
    "by_category",
    "by_period",
    "current_month",
    "daily_totals",
    "detect_anomalies",
    "filter_by_window",
    "in_month",
    "max_spending_day",
    "period_key",
    "savings_rate",
    "search",
    "summarize",
    "top_categories",
    "totals",
    "trend",
    "window_bounds",
]
