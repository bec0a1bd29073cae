from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ledger_engine.currency_conversion import safe_normalize_currency
from ledger_engine.models import (
    ACCOUNT_TYPES,
    DEFAULT_BASE_CURRENCY,
    LEDGER_KINDS,
    TRADE_SIDES,
    ZERO,
    Account,
    AnyLedgerEntry,
    BudgetGoal,
    CategoryPresets,
    Dataset,
    ExpenseEntry,
    IncomeEntry,
    RecurringExpense,
    StockPrice,
    StockTrade,
    TransferEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AccountRecord(_Record):
    id: str | int
    name: str | None = None
    institution: str | None = None
    type: str | None = "checking"
    initial_balance: Decimal | None = Field(default=None, alias="initialBalance")
    initial_cash_balance: Decimal | None = Field(default=None, alias="initialCashBalance")
    usd_balance: Decimal | None = Field(default=None, alias="usdBalance")
    cash_adjustment: Decimal | None = Field(default=None, alias="cashAdjustment")
    savings: Decimal | None = None
    debt: Decimal | None = None
    currency: str | None = None


class LedgerRecord(_Record):
    id: str | int
    entry_date: str | date | None = Field(default=None, alias="date")
    kind: str
    category: str | None = None
    sub_category: str | None = Field(default=None, alias="subCategory")
    description: str | None = None
    from_account_id: str | int | None = Field(default=None, alias="fromAccountId")
    to_account_id: str | int | None = Field(default=None, alias="toAccountId")
    amount: Decimal | None = None
    currency: str | None = None
    is_fixed_expense: bool | None = Field(default=None, alias="isFixedExpense")
    note: str | None = None


class TradeRecord(_Record):
    id: str | int
    trade_date: str | date | None = Field(default=None, alias="date")
    account_id: str | int = Field(alias="accountId")
    ticker: str
    name: str | None = None
    side: str
    quantity: Decimal | None = None
    price: Decimal | None = None
    fee: Decimal | None = None
    total_amount: Decimal | None = Field(default=None, alias="totalAmount")
    cash_impact: Decimal | None = Field(default=None, alias="cashImpact")


class PriceRecord(_Record):
    ticker: str
    name: str | None = None
    price: Decimal | None = None
    currency: str | None = None
    change: Decimal | None = None
    change_percent: Decimal | None = Field(default=None, alias="changePercent")
    updated_at: str | datetime | None = Field(default=None, alias="updatedAt")


class RecurringRecord(_Record):
    id: str | int
    title: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    frequency: str | None = "monthly"
    start_date: str | date | None = Field(default=None, alias="startDate")
    end_date: str | date | None = Field(default=None, alias="endDate")
    from_account_id: str | int | None = Field(default=None, alias="fromAccountId")
    to_account_id: str | int | None = Field(default=None, alias="toAccountId")


class CategoryTypesRecord(_Record):
    fixed: list[str] | None = None
    savings: list[str] | None = None
    transfer: list[str] | None = None


class PresetsRecord(_Record):
    income: list[str] = Field(default_factory=list)
    expense: list[str] = Field(default_factory=list)
    transfer: list[str] = Field(default_factory=list)
    category_types: CategoryTypesRecord | None = Field(default=None, alias="categoryTypes")
    fixed_sub_categories: list[tuple[str, str]] = Field(
        default_factory=list, alias="fixedSubCategories"
    )


class BudgetGoalRecord(_Record):
    id: str | int
    category: str | None = None
    monthly_limit: Decimal | None = Field(default=None, alias="monthlyLimit")
    note: str | None = None


def parse_account(raw: Mapping[str, Any]) -> Optional[Account]:
    record = _validate(AccountRecord, raw, "account")
    if record is None:
        return None
    account_id = str(record.id)
    account_type = (record.type or "checking").strip().lower()
    if account_type not in ACCOUNT_TYPES:
        logger.warning("Account %s has unknown type %r, treating it as other", account_id, record.type)
        account_type = "other"
    return Account(
        id=account_id,
        name=(record.name or "").strip() or account_id,
        institution=(record.institution or "").strip(),
        type=account_type,
        initial_balance=_amount(record.initial_balance),
        initial_cash_balance=record.initial_cash_balance,
        usd_balance=record.usd_balance,
        cash_adjustment=_amount(record.cash_adjustment),
        savings=_amount(record.savings),
        debt=_amount(record.debt),
        currency=record.currency.strip().upper() if record.currency else None,
    )


def parse_ledger_entry(
    raw: Mapping[str, Any],
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> Optional[AnyLedgerEntry]:
    record = _validate(LedgerRecord, raw, "ledger entry")
    if record is None:
        return None
    kind = record.kind.strip().lower()
    if kind not in LEDGER_KINDS:
        logger.warning("Skipping ledger entry %s with unknown kind %r", record.id, record.kind)
        return None
    common = dict(
        id=str(record.id),
        date=parse_date(record.entry_date),
        amount=_non_negative(record.amount, "ledger entry", record.id),
        category=(record.category or "").strip(),
        sub_category=(record.sub_category or "").strip(),
        description=record.description or "",
        currency=safe_normalize_currency(record.currency, base_currency),
        is_fixed_expense=bool(record.is_fixed_expense),
        note=record.note or "",
    )
    from_account_id = _optional_id(record.from_account_id)
    to_account_id = _optional_id(record.to_account_id)
    if kind == "income":
        return IncomeEntry(to_account_id=to_account_id, **common)
    if kind == "expense":
        return ExpenseEntry(from_account_id=from_account_id, to_account_id=to_account_id, **common)
    return TransferEntry(from_account_id=from_account_id, to_account_id=to_account_id, **common)


def parse_trade(raw: Mapping[str, Any]) -> Optional[StockTrade]:
    record = _validate(TradeRecord, raw, "trade")
    if record is None:
        return None
    side = record.side.strip().lower()
    if side not in TRADE_SIDES:
        logger.warning("Skipping trade %s with unknown side %r", record.id, record.side)
        return None
    quantity = _non_negative(record.quantity, "trade", record.id)
    price = _non_negative(record.price, "trade", record.id)
    fee = _non_negative(record.fee, "trade", record.id)
    if record.total_amount is None:
        total_amount = quantity * price + fee
    else:
        total_amount = _non_negative(record.total_amount, "trade", record.id)
    # buys take cash out, sells bring it in
    expected_cash_impact = -total_amount if side == "buy" else total_amount
    cash_impact = record.cash_impact
    if cash_impact is None:
        cash_impact = expected_cash_impact
    elif (side == "buy" and cash_impact > ZERO) or (side == "sell" and cash_impact < ZERO):
        logger.warning("Trade %s has a cash impact against its side, deriving it from the total", record.id)
        cash_impact = expected_cash_impact
    return StockTrade(
        id=str(record.id),
        date=parse_date(record.trade_date),
        account_id=str(record.account_id),
        ticker=record.ticker.strip(),
        name=record.name or "",
        side=side,
        quantity=quantity,
        price=price,
        fee=fee,
        total_amount=total_amount,
        cash_impact=cash_impact,
    )


def parse_price(raw: Mapping[str, Any]) -> Optional[StockPrice]:
    record = _validate(PriceRecord, raw, "price")
    if record is None:
        return None
    return StockPrice(
        ticker=record.ticker.strip(),
        name=record.name or "",
        price=_amount(record.price),
        currency=record.currency.strip().upper() if record.currency else None,
        change=record.change,
        change_percent=record.change_percent,
        updated_at=parse_datetime(record.updated_at),
    )


def parse_recurring(raw: Mapping[str, Any]) -> Optional[RecurringExpense]:
    record = _validate(RecurringRecord, raw, "recurring expense")
    if record is None:
        return None
    return RecurringExpense(
        id=str(record.id),
        title=(record.title or "").strip(),
        amount=_amount(record.amount),
        category=(record.category or "").strip(),
        frequency=(record.frequency or "monthly").strip().lower(),
        start_date=parse_date(record.start_date),
        end_date=parse_date(record.end_date),
        from_account_id=_optional_id(record.from_account_id),
        to_account_id=_optional_id(record.to_account_id),
    )


def parse_presets(raw: Optional[Mapping[str, Any]]) -> CategoryPresets:
    defaults = CategoryPresets()
    if not raw:
        return defaults
    record = _validate(PresetsRecord, raw, "category presets")
    if record is None:
        return defaults
    types = record.category_types or CategoryTypesRecord()
    return CategoryPresets(
        income=tuple(record.income),
        expense=tuple(record.expense),
        transfer=tuple(record.transfer),
        fixed_categories=tuple(types.fixed) if types.fixed is not None else defaults.fixed_categories,
        savings_categories=tuple(types.savings) if types.savings is not None else defaults.savings_categories,
        pure_transfer_categories=(
            tuple(types.transfer) if types.transfer is not None else defaults.pure_transfer_categories
        ),
        fixed_sub_categories=tuple(record.fixed_sub_categories),
    )


def parse_budget_goal(raw: Mapping[str, Any]) -> Optional[BudgetGoal]:
    record = _validate(BudgetGoalRecord, raw, "budget goal")
    if record is None:
        return None
    return BudgetGoal(
        id=str(record.id),
        category=(record.category or "").strip(),
        monthly_limit=_amount(record.monthly_limit),
        note=record.note or "",
    )


def load_dataset(
    payload: Mapping[str, Any],
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> Dataset:
    """Build a Dataset from the app's stored document, skipping unusable records."""
    return Dataset(
        accounts=_parse_all(payload.get("accounts"), parse_account),
        ledger=_parse_all(payload.get("ledger"), lambda raw: parse_ledger_entry(raw, base_currency)),
        trades=_parse_all(payload.get("trades"), parse_trade),
        prices=_parse_all(payload.get("prices"), parse_price),
        price_history=_parse_all(payload.get("priceHistory"), parse_price),
        recurring=_parse_all(payload.get("recurringExpenses"), parse_recurring),
        budget_goals=_parse_all(payload.get("budgetGoals"), parse_budget_goal),
        presets=parse_presets(payload.get("categoryPresets")),
    )


def parse_date(value: str | date | None) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_datetime(value: str | datetime | None) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _validate(model: type[_Record], raw: Any, label: str) -> Optional[Any]:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Skipping malformed %s record: %s", label, exc.errors()[0].get("msg"))
        return None


def _parse_all(raw_items: Optional[Iterable[Any]], parser: Callable[[Any], Optional[T]]) -> tuple[T, ...]:
    parsed: List[T] = []
    for raw in raw_items or ():
        item = parser(raw)
        if item is not None:
            parsed.append(item)
    return tuple(parsed)


def _amount(value: Decimal | None) -> Decimal:
    return ZERO if value is None else value


def _non_negative(value: Decimal | None, label: str, record_id: Any) -> Decimal:
    amount = _amount(value)
    if amount < ZERO:
        logger.warning("Clamping negative amount on %s %s to zero", label, record_id)
        return ZERO
    return amount


def _optional_id(value: str | int | None) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
