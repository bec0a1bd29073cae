from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ledger_engine.currency_conversion import coerce_amount, to_base_amount
from ledger_engine.models import (
    DEFAULT_BASE_CURRENCY,
    ZERO,
    Account,
    Lot,
    Position,
    StockPrice,
    StockTrade,
)
from ledger_engine.tickers import canonical_ticker, instrument_currency

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, str]


def compute_positions(
    trades: Iterable[StockTrade],
    prices: Iterable[StockPrice],
    accounts: Iterable[Account],
    fx_rate: Decimal | None = None,
    cost_basis_fallback: bool = False,
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> List[Position]:
    """Derive open positions per (account, ticker) from the trade history.

    Sells consume the oldest lots first. Positions that end up with no
    shares are left out. Market value uses the matching price, or the
    average cost when no price exists and ``cost_basis_fallback`` is set.
    Foreign instruments are converted into ``base_currency`` when
    ``fx_rate`` is given; ``Position.currency`` keeps the native currency.
    """
    accounts_by_id = _index_accounts(accounts)
    prices_by_ticker = index_prices(prices)
    rows: List[Position] = []

    for (account_id, ticker_key), group in group_trades(trades).items():
        lots, _ = replay_lots(sort_trades(group))
        quantity = sum((lot.quantity for lot in lots), ZERO)
        if quantity <= ZERO:
            continue
        native_cost = sum((lot.total_cost for lot in lots), ZERO)
        native_avg_cost = native_cost / quantity

        account = accounts_by_id.get(account_id)
        price = prices_by_ticker.get(ticker_key)
        first_trade = group[0]
        ticker = price.ticker if price is not None else first_trade.ticker
        currency = instrument_currency(ticker, account, price, base_currency=base_currency)

        if price is not None:
            native_price = coerce_amount(price.price)
        elif cost_basis_fallback:
            native_price = native_avg_cost
        else:
            native_price = ZERO

        cost_basis = to_base_amount(native_cost, currency, fx_rate, base_currency)
        market_price = to_base_amount(native_price, currency, fx_rate, base_currency)
        market_value = to_base_amount(native_price * quantity, currency, fx_rate, base_currency)
        pnl = market_value - cost_basis
        rows.append(
            Position(
                account_id=account_id,
                account_name=account.name if account is not None else account_id,
                ticker=ticker,
                name=(price.name if price is not None and price.name else "") or first_trade.name or ticker,
                quantity=quantity,
                avg_cost=to_base_amount(native_avg_cost, currency, fx_rate, base_currency),
                cost_basis=cost_basis,
                market_price=market_price,
                market_value=market_value,
                currency=currency,
                pnl=pnl,
                pnl_rate=pnl / cost_basis if cost_basis > ZERO else ZERO,
            )
        )

    rows.sort(key=lambda row: (row.account_id, canonical_ticker(row.ticker)))
    return rows


def replay_lots(ordered_trades: Sequence[StockTrade]) -> Tuple[List[Lot], Dict[str, Decimal]]:
    """Run one account/ticker history through a FIFO lot queue.

    Returns the remaining lots and the realized P&L of every sell, keyed by
    trade id, in the instrument's native currency.
    """
    lots: List[Lot] = []
    realized: Dict[str, Decimal] = {}
    for trade in ordered_trades:
        quantity = coerce_amount(trade.quantity)
        total = coerce_amount(trade.total_amount)
        if quantity <= ZERO:
            logger.debug("Skipping trade %s with non-positive quantity", trade.id)
            continue
        if trade.is_buy:
            lots.append(Lot(quantity=quantity, total_cost=total))
            continue
        consumed_cost, unfilled = consume_lots(lots, quantity)
        if unfilled > ZERO:
            logger.warning(
                "Sell %s of %s exceeds holdings by %s; clamping at zero",
                trade.id,
                trade.ticker,
                unfilled,
            )
        realized[trade.id] = total - consumed_cost
    return lots, realized


def consume_lots(lots: List[Lot], quantity: Decimal) -> Tuple[Decimal, Decimal]:
    """Take ``quantity`` from the front of ``lots`` in place.

    Returns (cost of the consumed shares, quantity that could not be filled).
    """
    remaining = quantity
    consumed_cost = ZERO
    while remaining > ZERO and lots:
        lot = lots[0]
        used = min(remaining, lot.quantity)
        cost = lot.total_cost * used / lot.quantity
        consumed_cost += cost
        remaining -= used
        lot.quantity -= used
        lot.total_cost -= cost
        if lot.quantity <= ZERO:
            lots.pop(0)
    return consumed_cost, remaining


def compute_realized_pnl_by_trade(trades: Iterable[StockTrade]) -> Dict[str, Decimal]:
    result: Dict[str, Decimal] = {}
    for group in group_trades(trades).values():
        _, realized = replay_lots(sort_trades(group))
        result.update(realized)
    return result


def compute_realized_gain_in_period(
    trades: Iterable[StockTrade],
    start_date: date,
    end_date: date,
    account_ids: Optional[Set[str]] = None,
    accounts: Iterable[Account] = (),
    fx_rate: Decimal | None = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> Decimal:
    accounts_by_id = _index_accounts(accounts)
    total = ZERO
    for (account_id, _), group in group_trades(trades).items():
        if account_ids is not None and account_id not in account_ids:
            continue
        ordered = sort_trades(group)
        _, realized = replay_lots(ordered)
        currency = instrument_currency(group[0].ticker, accounts_by_id.get(account_id), base_currency=base_currency)
        for trade in ordered:
            if trade.id not in realized or trade.date is None:
                continue
            if start_date <= trade.date <= end_date:
                total += to_base_amount(realized[trade.id], currency, fx_rate, base_currency)
    return total


def group_trades(trades: Iterable[StockTrade]) -> Dict[GroupKey, List[StockTrade]]:
    groups: Dict[GroupKey, List[StockTrade]] = {}
    for trade in trades:
        ticker_key = canonical_ticker(trade.ticker)
        if not ticker_key:
            continue
        groups.setdefault((trade.account_id, ticker_key), []).append(trade)
    return groups


def sort_trades(trades: Sequence[StockTrade]) -> List[StockTrade]:
    # stable: same-day trades keep their recorded order, undated ones go last
    return sorted(trades, key=lambda trade: (trade.date is None, trade.date or date.min))


def index_prices(prices: Iterable[StockPrice]) -> Dict[str, StockPrice]:
    indexed: Dict[str, StockPrice] = {}
    for price in prices:
        indexed.setdefault(canonical_ticker(price.ticker), price)
    return indexed


def _index_accounts(accounts: Iterable[Account]) -> Dict[str, Account]:
    indexed: Dict[str, Account] = {}
    for account in accounts:
        indexed.setdefault(account.id, account)
    return indexed
