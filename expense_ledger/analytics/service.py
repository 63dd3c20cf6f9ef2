"""
Analytics Service

Reads the ledger from a store and turns it into dashboard snapshots.

DESIGN DECISION: Auto-refresh runs snapshots one after another in a
single task, so a slow store can never produce overlapping refreshes
whose results land out of order.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Optional, Union

import structlog

from expense_ledger.analytics import aggregator
from expense_ledger.models.analytics import AnalyticsSnapshot
from expense_ledger.services.storage.interface import TransactionStorageInterface


logger = structlog.get_logger(__name__)

DEFAULT_REFRESH_INTERVAL = 5 * 60.0

SnapshotCallback = Callable[[AnalyticsSnapshot], Union[None, Awaitable[None]]]


class AnalyticsService:
    """Computes AnalyticsSnapshots for rolling week/month/year periods."""

    def __init__(self, storage: TransactionStorageInterface):
        self._storage = storage

    async def snapshot(
        self,
        period: str = "week",
        now: Optional[datetime] = None,
    ) -> AnalyticsSnapshot:
        """
        Build the dashboard figures for the current rolling period.

        Args:
            period: "week", "month" or "year"
            now: End of the current window (defaults to the current time)

        Raises:
            ValueError: If the period is unknown
        """
        if period not in aggregator.WINDOWS:
            raise ValueError(f"Unknown period: {period!r}")

        now = now or datetime.now(timezone.utc)
        transactions = await self._storage.list_transactions()

        current_items = aggregator.filter_by_window(transactions, period, now)
        previous_items = aggregator.filter_by_window(transactions, period, now, previous=True)

        current = aggregator.totals(current_items)
        previous = aggregator.totals(previous_items)

        snapshot = AnalyticsSnapshot(
            period=period,
            generated_at=now,
            transaction_count=len(current_items),
            current=current,
            previous=previous,
            income_trend=aggregator.trend(current.income, previous.income),
            expense_trend=aggregator.trend(current.expenses, previous.expenses),
            net_savings=current.net,
            savings_rate=aggregator.savings_rate(current_items),
            top_categories=aggregator.top_categories(aggregator.by_category(current_items)),
            daily_totals=aggregator.daily_totals(current_items),
            average_daily_spending=aggregator.average_daily_spending(current_items),
            max_spending_day=aggregator.max_spending_day(current_items),
        )

        logger.debug(
            "analytics_snapshot",
            period=period,
            transaction_count=snapshot.transaction_count,
        )
        return snapshot

    async def auto_refresh(
        self,
        on_update: SnapshotCallback,
        period: str = "week",
        interval: float = DEFAULT_REFRESH_INTERVAL,
        max_refreshes: Optional[int] = None,
    ) -> None:
        """
        Deliver a fresh snapshot every `interval` seconds until cancelled.

        The first snapshot is delivered immediately. A failed refresh is
        logged and the loop keeps going; cancelling the task stops it.

        Args:
            on_update: Called (or awaited, if it returns an awaitable) with each snapshot
            period: Rolling period to report on
            interval: Seconds between the end of one refresh and the next
            max_refreshes: Stop after this many refreshes (None runs forever)
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        count = 0
        while max_refreshes is None or count < max_refreshes:
            try:
                result = on_update(await self.snapshot(period))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("analytics_refresh_failed", period=period, error=str(e))

            count += 1
            if max_refreshes is not None and count >= max_refreshes:
                break
            await asyncio.sleep(interval)
