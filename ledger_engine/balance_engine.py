from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ledger_engine.currency_conversion import coerce_amount, is_foreign, to_base_amount
from ledger_engine.models import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_FOREIGN_CURRENCY,
    ZERO,
    Account,
    AccountBalance,
    LedgerEntry,
    Position,
    StockTrade,
)
from ledger_engine.tickers import instrument_currency

logger = logging.getLogger(__name__)

CASH_ACCOUNT_TYPES = {"checking", "securities", "other"}


def compute_account_balances(
    accounts: Iterable[Account],
    ledger: Iterable[LedgerEntry],
    trades: Iterable[StockTrade],
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> List[AccountBalance]:
    """Replay the full ledger and trade history into one balance per account.

    Pure summation, so the result does not depend on the order of ``ledger``
    or ``trades``. One row per account id; when ids repeat, the first
    account record wins.
    """
    balances = BalanceLedger(accounts, base_currency=base_currency)
    for entry in ledger:
        balances.apply_entry(entry)
    for trade in trades:
        balances.apply_trade(trade)
    return balances.snapshot()


def seed_balance(account: Account) -> Decimal:
    if account.is_securities and account.initial_cash_balance is not None:
        base = account.initial_cash_balance
    else:
        base = account.initial_balance
    return (
        coerce_amount(base)
        + coerce_amount(account.cash_adjustment)
        + coerce_amount(account.savings)
    )


class BalanceLedger:
    """Running per-account accumulators for one replay.

    Built fresh by each caller and thrown away afterwards; entries and
    trades can be fed in any order and in as many batches as needed.
    """

    def __init__(
        self,
        accounts: Iterable[Account],
        base_currency: str = DEFAULT_BASE_CURRENCY,
    ) -> None:
        self.base_currency = base_currency
        self._by_id: Dict[str, Account] = {}
        for account in accounts:
            self._by_id.setdefault(account.id, account)
        self._totals = {account_id: seed_balance(account) for account_id, account in self._by_id.items()}
        self._usd_transfer_net = dict.fromkeys(self._by_id, ZERO)
        self._income = dict.fromkeys(self._by_id, ZERO)
        self._expense = dict.fromkeys(self._by_id, ZERO)
        self._transfer_net = dict.fromkeys(self._by_id, ZERO)
        self._trade_cash = dict.fromkeys(self._by_id, ZERO)

    def apply_entry(self, entry: LedgerEntry) -> None:
        amount = coerce_amount(entry.amount)
        kind = entry.kind
        if kind == "income":
            self._post(entry.to_account_id, amount, self._income, amount)
        elif kind == "expense":
            self._post(entry.from_account_id, -amount, self._expense, amount)
            # savings-like expense also lands on its destination
            self._post(entry.to_account_id, amount, self._transfer_net, amount)
        elif kind == "transfer":
            if is_foreign(entry.currency, self.base_currency):
                self._post(entry.from_account_id, ZERO, self._usd_transfer_net, -amount)
                self._post(entry.to_account_id, ZERO, self._usd_transfer_net, amount)
            else:
                self._post(entry.from_account_id, -amount, self._transfer_net, -amount)
                self._post(entry.to_account_id, amount, self._transfer_net, amount)
        else:
            logger.debug("Skipping ledger entry %s with unknown kind %r", entry.id, kind)

    def apply_trade(self, trade: StockTrade) -> None:
        account = self._by_id.get(trade.account_id)
        if account is None:
            logger.debug("Trade %s references unknown account %s", trade.id, trade.account_id)
            return
        if account.is_securities:
            currency = instrument_currency(trade.ticker, account, base_currency=self.base_currency)
            # foreign cash legs live in usd_balance / usd_transfer_net only
            if is_foreign(currency, self.base_currency):
                return
        impact = coerce_amount(trade.cash_impact)
        self._totals[account.id] += impact
        self._trade_cash[account.id] += impact

    def snapshot(self) -> List[AccountBalance]:
        rows: List[AccountBalance] = []
        for account_id, account in self._by_id.items():
            rows.append(
                AccountBalance(
                    account=account,
                    current_balance=self._totals[account_id],
                    usd_transfer_net=self._usd_transfer_net[account_id],
                    income_sum=self._income[account_id],
                    expense_sum=self._expense[account_id],
                    transfer_net=self._transfer_net[account_id],
                    trade_cash_impact=self._trade_cash[account_id],
                )
            )
        return rows

    def _post(
        self,
        account_id: Optional[str],
        balance_delta: Decimal,
        bucket: Dict[str, Decimal],
        bucket_delta: Decimal,
    ) -> None:
        if not self._known(account_id):
            return
        self._totals[account_id] += balance_delta
        bucket[account_id] += bucket_delta

    def _known(self, account_id: Optional[str]) -> bool:
        if account_id is None:
            return False
        if account_id not in self._by_id:
            logger.debug("Ignoring reference to unknown account %s", account_id)
            return False
        return True


def foreign_cash(balance: AccountBalance) -> Decimal:
    account = balance.account
    if not account.is_securities:
        return ZERO
    return coerce_amount(account.usd_balance or ZERO) + balance.usd_transfer_net


def stock_value_by_account(positions: Iterable[Position]) -> Dict[str, Decimal]:
    values: Dict[str, Decimal] = {}
    for position in positions:
        values[position.account_id] = values.get(position.account_id, ZERO) + position.market_value
    return values


def compute_total_net_worth(
    balances: Iterable[AccountBalance],
    positions: Iterable[Position],
    fx_rate: Decimal | None = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    foreign_currency: str = DEFAULT_FOREIGN_CURRENCY,
) -> Decimal:
    """Base cash + converted foreign cash + stock value + signed debt, over all accounts."""
    stock_values = stock_value_by_account(positions)
    total = ZERO
    for balance in balances:
        account = balance.account
        total += balance.current_balance
        total += to_base_amount(foreign_cash(balance), foreign_currency, fx_rate, base_currency)
        total += stock_values.get(account.id, ZERO)
        total += coerce_amount(account.debt)
    return total


def compute_total_cash_value(
    balances: Iterable[AccountBalance],
    fx_rate: Decimal | None = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    foreign_currency: str = DEFAULT_FOREIGN_CURRENCY,
) -> Decimal:
    total = ZERO
    for balance in balances:
        if balance.account.type not in CASH_ACCOUNT_TYPES:
            continue
        total += balance.current_balance
        total += to_base_amount(foreign_cash(balance), foreign_currency, fx_rate, base_currency)
    return total


def compute_savings_value(balances: Iterable[AccountBalance]) -> Decimal:
    """Savings-account balances plus the savings baseline held on other accounts."""
    total = ZERO
    for balance in balances:
        if balance.account.type == "savings":
            total += balance.current_balance
        else:
            total += coerce_amount(balance.account.savings)
    return total


def compute_total_debt(accounts: Iterable[Account]) -> Decimal:
    return sum((coerce_amount(account.debt) for account in accounts), ZERO)
