import logging
import os
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from ledger_engine.balance_engine import (
    compute_account_balances,
    compute_savings_value,
    compute_total_cash_value,
    compute_total_debt,
    compute_total_net_worth,
)
from ledger_engine.budget_engine import evaluate_budget_goals
from ledger_engine.classification_engine import learn_classification_rules, suggest_category
from ledger_engine.currency_conversion import coerce_rate, normalize_currency
from ledger_engine.models import DEFAULT_BASE_CURRENCY, DEFAULT_FOREIGN_CURRENCY, Dataset
from ledger_engine.position_engine import (
    compute_positions,
    compute_realized_gain_in_period,
    compute_realized_pnl_by_trade,
)
from ledger_engine.records import load_dataset
from ledger_engine.recurring_projection import expand_recurring_for_month, expected_recurring_total
from ledger_engine.reports import generate_category_report, generate_monthly_report
from ledger_engine.time_series import compute_monthly_snapshots


def get_currency_setting(name: str, default: str) -> str:
    raw = os.getenv(name, default)
    try:
        return normalize_currency(raw)
    except ValueError:
        return default


BASE_CURRENCY = get_currency_setting("BASE_CURRENCY", DEFAULT_BASE_CURRENCY)
FOREIGN_CURRENCY = get_currency_setting("FOREIGN_CURRENCY", DEFAULT_FOREIGN_CURRENCY)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("ledger_engine")

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class DatasetPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    accounts: list[dict[str, Any]] = Field(default_factory=list)
    ledger: list[dict[str, Any]] = Field(default_factory=list)
    trades: list[dict[str, Any]] = Field(default_factory=list)
    prices: list[dict[str, Any]] = Field(default_factory=list)
    price_history: list[dict[str, Any]] = Field(default_factory=list, alias="priceHistory")
    recurring_expenses: list[dict[str, Any]] = Field(default_factory=list, alias="recurringExpenses")
    budget_goals: list[dict[str, Any]] = Field(default_factory=list, alias="budgetGoals")
    category_presets: dict[str, Any] | None = Field(default=None, alias="categoryPresets")
    fx_rate: Decimal | None = Field(default=None, alias="fxRate")

    def to_dataset(self) -> Dataset:
        return load_dataset(self.model_dump(by_alias=True), base_currency=BASE_CURRENCY)


class AccountBalanceResponse(BaseModel):
    account_id: str
    account_name: str
    account_type: str
    current_balance: Decimal
    usd_transfer_net: Decimal
    income_sum: Decimal
    expense_sum: Decimal
    transfer_net: Decimal
    trade_cash_impact: Decimal


class PositionResponse(BaseModel):
    account_id: str
    account_name: str
    ticker: str
    name: str
    quantity: Decimal
    avg_cost: Decimal
    cost_basis: Decimal
    market_price: Decimal
    market_value: Decimal
    currency: str
    pnl: Decimal
    pnl_rate: Decimal


class RealizedTradeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trade_id: str
    account_id: str
    ticker: str
    trade_date: date | None = Field(default=None, alias="date")
    realized_pnl: Decimal


class RealizedGainResponse(BaseModel):
    trades: list[RealizedTradeResponse]
    period_total: Decimal
    currency: str


class NetWorthResponse(BaseModel):
    total: Decimal
    cash: Decimal
    savings: Decimal
    stock: Decimal
    debt: Decimal
    currency: str


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    entry_date: date | None = Field(default=None, alias="date")
    kind: str
    category: str
    sub_category: str
    description: str
    amount: Decimal
    from_account_id: str | None = None
    to_account_id: str | None = None
    is_fixed_expense: bool


class RecurringExpansionResponse(BaseModel):
    month: str
    entries: list[LedgerEntryResponse]
    expected_total: Decimal


class MonthlySnapshotResponse(BaseModel):
    month: str
    stock_value: Decimal
    cash_value: Decimal
    savings_value: Decimal
    total_value: Decimal


class MonthlyReportResponse(BaseModel):
    month: str
    income: Decimal
    expense: Decimal
    savings_expense: Decimal
    transfer: Decimal
    net: Decimal


class CategoryReportResponse(BaseModel):
    category: str
    sub_category: str
    category_type: str
    total: Decimal
    count: int
    average: Decimal


class BudgetEvaluationResponse(BaseModel):
    goal_id: str
    category: str
    spent: Decimal
    limit: Decimal
    remaining: Decimal
    percentage: Decimal
    status: str


class CategorySuggestionResponse(BaseModel):
    category: str | None = None
    sub_category: str | None = None
    confidence: float | None = None


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/balances", response_model=list[AccountBalanceResponse])
def account_balances(payload: DatasetPayload) -> list[AccountBalanceResponse]:
    dataset = payload.to_dataset()
    balances = compute_account_balances(
        dataset.accounts, dataset.ledger, dataset.trades, base_currency=BASE_CURRENCY
    )
    return [
        AccountBalanceResponse(
            account_id=balance.account.id,
            account_name=balance.account.name,
            account_type=balance.account.type,
            current_balance=balance.current_balance,
            usd_transfer_net=balance.usd_transfer_net,
            income_sum=balance.income_sum,
            expense_sum=balance.expense_sum,
            transfer_net=balance.transfer_net,
            trade_cash_impact=balance.trade_cash_impact,
        )
        for balance in balances
    ]


@app.post("/positions", response_model=list[PositionResponse])
def positions(
    payload: DatasetPayload,
    cost_basis_fallback: bool = Query(False),
) -> list[PositionResponse]:
    dataset = payload.to_dataset()
    rows = compute_positions(
        dataset.trades,
        dataset.prices,
        dataset.accounts,
        fx_rate=coerce_rate(payload.fx_rate),
        cost_basis_fallback=cost_basis_fallback,
        base_currency=BASE_CURRENCY,
    )
    return [
        PositionResponse(
            account_id=row.account_id,
            account_name=row.account_name,
            ticker=row.ticker,
            name=row.name,
            quantity=row.quantity,
            avg_cost=row.avg_cost,
            cost_basis=row.cost_basis,
            market_price=row.market_price,
            market_value=row.market_value,
            currency=row.currency,
            pnl=row.pnl,
            pnl_rate=row.pnl_rate,
        )
        for row in rows
    ]


@app.post("/positions/realized", response_model=RealizedGainResponse)
def realized_gains(
    payload: DatasetPayload,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
) -> RealizedGainResponse:
    dataset = payload.to_dataset()
    start = start_date or date.min
    end = end_date or date.max
    realized = compute_realized_pnl_by_trade(dataset.trades)
    sells = [
        trade
        for trade in dataset.trades
        if trade.id in realized and trade.date is not None and start <= trade.date <= end
    ]
    sells.sort(key=lambda trade: (trade.date, trade.id))
    return RealizedGainResponse(
        trades=[
            RealizedTradeResponse(
                trade_id=trade.id,
                account_id=trade.account_id,
                ticker=trade.ticker,
                trade_date=trade.date,
                realized_pnl=realized[trade.id],
            )
            for trade in sells
        ],
        period_total=compute_realized_gain_in_period(
            dataset.trades,
            start,
            end,
            accounts=dataset.accounts,
            fx_rate=coerce_rate(payload.fx_rate),
            base_currency=BASE_CURRENCY,
        ),
        currency=BASE_CURRENCY,
    )


@app.post("/net-worth", response_model=NetWorthResponse)
def net_worth(payload: DatasetPayload) -> NetWorthResponse:
    dataset = payload.to_dataset()
    fx_rate = coerce_rate(payload.fx_rate)
    balances = compute_account_balances(
        dataset.accounts, dataset.ledger, dataset.trades, base_currency=BASE_CURRENCY
    )
    rows = compute_positions(
        dataset.trades,
        dataset.prices,
        dataset.accounts,
        fx_rate=fx_rate,
        base_currency=BASE_CURRENCY,
    )
    return NetWorthResponse(
        total=compute_total_net_worth(balances, rows, fx_rate, BASE_CURRENCY, FOREIGN_CURRENCY),
        cash=compute_total_cash_value(balances, fx_rate, BASE_CURRENCY, FOREIGN_CURRENCY),
        savings=compute_savings_value(balances),
        stock=sum((row.market_value for row in rows), Decimal("0")),
        debt=compute_total_debt(dataset.accounts),
        currency=BASE_CURRENCY,
    )


@app.post("/recurring/expand", response_model=RecurringExpansionResponse)
def recurring_expand(
    payload: DatasetPayload,
    month: str = Query(...),
) -> RecurringExpansionResponse:
    dataset = payload.to_dataset()
    candidates = expand_recurring_for_month(dataset.recurring, month, dataset.ledger)
    return RecurringExpansionResponse(
        month=month,
        entries=[
            LedgerEntryResponse(
                id=entry.id,
                entry_date=entry.date,
                kind=entry.kind,
                category=entry.category,
                sub_category=entry.sub_category,
                description=entry.description,
                amount=entry.amount,
                from_account_id=entry.from_account_id,
                to_account_id=entry.to_account_id,
                is_fixed_expense=entry.is_fixed_expense,
            )
            for entry in candidates
        ],
        expected_total=expected_recurring_total(dataset.recurring, month),
    )


@app.post("/snapshots", response_model=list[MonthlySnapshotResponse])
def monthly_snapshots(
    payload: DatasetPayload,
    current_month: str | None = Query(None),
) -> list[MonthlySnapshotResponse]:
    dataset = payload.to_dataset()
    snapshots = compute_monthly_snapshots(
        dataset.accounts,
        dataset.ledger,
        dataset.trades,
        prices=dataset.prices,
        price_history=dataset.price_history,
        fx_rate=coerce_rate(payload.fx_rate),
        current_month=current_month,
        base_currency=BASE_CURRENCY,
        foreign_currency=FOREIGN_CURRENCY,
    )
    return [
        MonthlySnapshotResponse(
            month=snapshot.month,
            stock_value=snapshot.stock_value,
            cash_value=snapshot.cash_value,
            savings_value=snapshot.savings_value,
            total_value=snapshot.total_value,
        )
        for snapshot in snapshots
    ]


@app.post("/reports/monthly", response_model=list[MonthlyReportResponse])
def monthly_report(
    payload: DatasetPayload,
    start_month: str | None = Query(None),
    end_month: str | None = Query(None),
) -> list[MonthlyReportResponse]:
    dataset = payload.to_dataset()
    rows = generate_monthly_report(
        dataset.ledger,
        dataset.accounts,
        dataset.presets,
        fx_rate=coerce_rate(payload.fx_rate),
        start_month=start_month,
        end_month=end_month,
        base_currency=BASE_CURRENCY,
    )
    return [
        MonthlyReportResponse(
            month=row.month,
            income=row.income,
            expense=row.expense,
            savings_expense=row.savings_expense,
            transfer=row.transfer,
            net=row.net,
        )
        for row in rows
    ]


@app.post("/reports/categories", response_model=list[CategoryReportResponse])
def category_report(
    payload: DatasetPayload,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
) -> list[CategoryReportResponse]:
    dataset = payload.to_dataset()
    rows = generate_category_report(
        dataset.ledger,
        dataset.accounts,
        dataset.presets,
        start_date=start_date,
        end_date=end_date,
        fx_rate=coerce_rate(payload.fx_rate),
        base_currency=BASE_CURRENCY,
    )
    return [
        CategoryReportResponse(
            category=row.category,
            sub_category=row.sub_category,
            category_type=row.category_type,
            total=row.total,
            count=row.count,
            average=row.average,
        )
        for row in rows
    ]


@app.post("/budget/evaluate", response_model=list[BudgetEvaluationResponse])
def budget_evaluate(
    payload: DatasetPayload,
    month: str = Query(...),
) -> list[BudgetEvaluationResponse]:
    dataset = payload.to_dataset()
    evaluations = evaluate_budget_goals(dataset.budget_goals, dataset.ledger, month)
    return [
        BudgetEvaluationResponse(
            goal_id=evaluation.goal_id,
            category=evaluation.category,
            spent=evaluation.spent,
            limit=evaluation.limit,
            remaining=evaluation.remaining,
            percentage=evaluation.percentage,
            status=evaluation.status,
        )
        for evaluation in evaluations
    ]


@app.post("/categories/suggest", response_model=CategorySuggestionResponse)
def categories_suggest(
    payload: DatasetPayload,
    description: str = Query(...),
) -> CategorySuggestionResponse:
    dataset = payload.to_dataset()
    suggestion = suggest_category(description, learn_classification_rules(dataset.ledger))
    if suggestion is None:
        logger.debug("No category suggestion for %r", description)
        return CategorySuggestionResponse()
    return CategorySuggestionResponse(
        category=suggestion.category,
        sub_category=suggestion.sub_category,
        confidence=suggestion.confidence,
    )
