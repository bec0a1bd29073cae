from __future__ import annotations

import logging
from bisect import bisect_right
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from ledger_engine.balance_engine import (
    BalanceLedger,
    compute_savings_value,
    compute_total_cash_value,
    compute_total_net_worth,
)
from ledger_engine.models import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_FOREIGN_CURRENCY,
    ZERO,
    Account,
    LedgerEntry,
    MonthlySnapshot,
    StockPrice,
    StockTrade,
)
from ledger_engine.months import iter_months, month_bounds, month_end, month_key
from ledger_engine.position_engine import compute_positions
from ledger_engine.tickers import canonical_ticker

logger = logging.getLogger(__name__)


def compute_monthly_snapshots(
    accounts: Iterable[Account],
    ledger: Iterable[LedgerEntry],
    trades: Iterable[StockTrade],
    prices: Iterable[StockPrice] = (),
    price_history: Iterable[StockPrice] = (),
    fx_rate: Decimal | None = None,
    current_month: Optional[str] = None,
    cost_basis_fallback: bool = True,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    foreign_currency: str = DEFAULT_FOREIGN_CURRENCY,
) -> List[MonthlySnapshot]:
    """One snapshot per month from the earliest to the latest recorded month.

    Cash balances are accumulated month by month from a single seeded
    ``BalanceLedger``. Stock values only see the prices known at each month
    end; the live ``prices`` are used for ``current_month`` alone (the last
    month of the range when not given). Undated entries and trades are left
    out of the series.
    """
    if current_month is not None and month_bounds(current_month) is None:
        logger.debug("Malformed current month %r, returning no snapshots", current_month)
        return []

    accounts = list(accounts)
    live_prices = list(prices)
    ledger_by_month: Dict[str, List[LedgerEntry]] = {}
    trades_by_month: Dict[str, List[StockTrade]] = {}
    dates: List[date] = []
    for entry in ledger:
        if entry.date is None:
            continue
        ledger_by_month.setdefault(month_key(entry.date), []).append(entry)
        dates.append(entry.date)
    for trade in trades:
        if trade.date is None:
            continue
        trades_by_month.setdefault(month_key(trade.date), []).append(trade)
        dates.append(trade.date)
    if not dates:
        return []

    months = iter_months(min(dates), max(dates))
    live_month = current_month.strip() if current_month else month_key(months[-1])
    timeline = PriceTimeline(list(price_history) + live_prices)
    running = BalanceLedger(accounts, base_currency=base_currency)
    trades_so_far: List[StockTrade] = []
    snapshots: List[MonthlySnapshot] = []

    for first_day in months:
        key = month_key(first_day)
        for entry in ledger_by_month.get(key, ()):
            running.apply_entry(entry)
        month_trades = trades_by_month.get(key, [])
        for trade in month_trades:
            running.apply_trade(trade)
        trades_so_far.extend(month_trades)

        if key == live_month:
            month_prices: Sequence[StockPrice] = live_prices
        else:
            month_prices = timeline.as_of(datetime.combine(month_end(first_day), time.max))
        positions = compute_positions(
            trades_so_far,
            month_prices,
            accounts,
            fx_rate=fx_rate,
            cost_basis_fallback=cost_basis_fallback,
            base_currency=base_currency,
        )
        balances = running.snapshot()
        snapshots.append(
            MonthlySnapshot(
                month=key,
                stock_value=sum((position.market_value for position in positions), ZERO),
                cash_value=compute_total_cash_value(balances, fx_rate, base_currency, foreign_currency),
                savings_value=compute_savings_value(balances),
                total_value=compute_total_net_worth(
                    balances, positions, fx_rate, base_currency, foreign_currency
                ),
            )
        )
    return snapshots


class PriceTimeline:
    """Price snapshots per ticker, queried by point in time."""

    def __init__(self, prices: Iterable[StockPrice]) -> None:
        by_ticker: Dict[str, List[tuple[datetime, int, StockPrice]]] = {}
        for position, price in enumerate(prices):
            stamp = _naive_utc(price.updated_at)
            if stamp is None:
                continue
            by_ticker.setdefault(canonical_ticker(price.ticker), []).append((stamp, position, price))
        self._stamps: Dict[str, List[datetime]] = {}
        self._prices: Dict[str, List[StockPrice]] = {}
        for ticker, rows in by_ticker.items():
            rows.sort(key=lambda row: (row[0], row[1]))
            self._stamps[ticker] = [row[0] for row in rows]
            self._prices[ticker] = [row[2] for row in rows]

    def as_of(self, cutoff: datetime) -> List[StockPrice]:
        """Latest snapshot per ticker stamped on or before ``cutoff``."""
        selected: List[StockPrice] = []
        for ticker, stamps in self._stamps.items():
            index = bisect_right(stamps, cutoff)
            if index:
                selected.append(self._prices[ticker][index - 1])
        return selected


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
