from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional, Tuple, Union

ZERO = Decimal("0")
DEFAULT_BASE_CURRENCY = "KRW"
DEFAULT_FOREIGN_CURRENCY = "USD"

ACCOUNT_TYPES = {"checking", "savings", "card", "securities", "other"}
SAVINGS_LIKE_ACCOUNT_TYPES = {"savings", "securities"}
TRADE_SIDES = {"buy", "sell"}
LEDGER_KINDS = {"income", "expense", "transfer"}


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    type: str = "checking"
    institution: str = ""
    initial_balance: Decimal = ZERO
    initial_cash_balance: Optional[Decimal] = None
    usd_balance: Optional[Decimal] = None
    cash_adjustment: Decimal = ZERO
    savings: Decimal = ZERO
    debt: Decimal = ZERO
    currency: Optional[str] = None

    @property
    def is_securities(self) -> bool:
        return self.type == "securities"


@dataclass(frozen=True, kw_only=True)
class LedgerEntry:
    """Fields shared by every ledger variant.

    Use one of the concrete variants; ``kind`` tells them apart and each
    variant only carries the account references that make sense for it.
    """

    kind: ClassVar[str] = ""

    id: str
    date: Optional[date]
    amount: Decimal
    category: str = ""
    sub_category: str = ""
    description: str = ""
    currency: Optional[str] = None
    is_fixed_expense: bool = False
    note: str = ""

    @property
    def month(self) -> Optional[str]:
        if self.date is None:
            return None
        return f"{self.date.year:04d}-{self.date.month:02d}"


@dataclass(frozen=True, kw_only=True)
class IncomeEntry(LedgerEntry):
    kind: ClassVar[str] = "income"

    to_account_id: Optional[str] = None

    @property
    def from_account_id(self) -> None:
        return None


@dataclass(frozen=True, kw_only=True)
class ExpenseEntry(LedgerEntry):
    kind: ClassVar[str] = "expense"

    from_account_id: Optional[str] = None
    # set when the expense also funds a savings/investment account
    to_account_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class TransferEntry(LedgerEntry):
    kind: ClassVar[str] = "transfer"

    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None


AnyLedgerEntry = Union[IncomeEntry, ExpenseEntry, TransferEntry]


@dataclass(frozen=True)
class StockTrade:
    id: str
    date: Optional[date]
    account_id: str
    ticker: str
    side: str
    quantity: Decimal
    price: Decimal
    total_amount: Decimal
    cash_impact: Decimal
    name: str = ""
    fee: Decimal = ZERO

    @property
    def is_buy(self) -> bool:
        return self.side == "buy"


@dataclass(frozen=True)
class StockPrice:
    ticker: str
    price: Decimal
    name: str = ""
    currency: Optional[str] = None
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class RecurringExpense:
    id: str
    title: str
    amount: Decimal
    category: str = ""
    frequency: str = "monthly"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None


@dataclass(frozen=True)
class CategoryPresets:
    income: Tuple[str, ...] = ()
    expense: Tuple[str, ...] = ()
    transfer: Tuple[str, ...] = ()
    fixed_categories: Tuple[str, ...] = ()
    savings_categories: Tuple[str, ...] = ("Savings",)
    pure_transfer_categories: Tuple[str, ...] = (
        "Transfer",
        "Account Transfer",
        "Card Payment Transfer",
    )
    # (category, sub_category) pairs that count as fixed on their own
    fixed_sub_categories: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class BudgetGoal:
    id: str
    category: str
    monthly_limit: Decimal
    note: str = ""


# --- derived, rebuilt on every call ---


@dataclass
class Lot:
    quantity: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class AccountBalance:
    account: Account
    current_balance: Decimal
    usd_transfer_net: Decimal = ZERO
    income_sum: Decimal = ZERO
    expense_sum: Decimal = ZERO
    transfer_net: Decimal = ZERO
    trade_cash_impact: Decimal = ZERO


@dataclass(frozen=True)
class Position:
    account_id: str
    ticker: str
    quantity: Decimal
    avg_cost: Decimal
    market_value: Decimal
    currency: str
    account_name: str = ""
    name: str = ""
    cost_basis: Decimal = ZERO
    market_price: Decimal = ZERO
    pnl: Decimal = ZERO
    pnl_rate: Decimal = ZERO


@dataclass(frozen=True)
class MonthlySnapshot:
    month: str
    stock_value: Decimal
    savings_value: Decimal
    total_value: Decimal
    cash_value: Decimal = ZERO


@dataclass(frozen=True)
class Dataset:
    accounts: Tuple[Account, ...] = ()
    ledger: Tuple[AnyLedgerEntry, ...] = ()
    trades: Tuple[StockTrade, ...] = ()
    prices: Tuple[StockPrice, ...] = ()
    price_history: Tuple[StockPrice, ...] = ()
    recurring: Tuple[RecurringExpense, ...] = ()
    budget_goals: Tuple[BudgetGoal, ...] = ()
    presets: CategoryPresets = field(default_factory=CategoryPresets)
