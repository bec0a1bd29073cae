from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ledger_engine.classification_engine import get_category_type, is_savings_expense_entry
from ledger_engine.currency_conversion import to_base_amount
from ledger_engine.models import (
    DEFAULT_BASE_CURRENCY,
    ZERO,
    Account,
    CategoryPresets,
    LedgerEntry,
)


@dataclass(frozen=True)
class MonthlyReport:
    month: str
    income: Decimal
    expense: Decimal
    savings_expense: Decimal
    transfer: Decimal
    net: Decimal


@dataclass(frozen=True)
class CategoryReport:
    category: str
    sub_category: str
    category_type: str
    total: Decimal
    count: int
    average: Decimal


def generate_monthly_report(
    ledger: Iterable[LedgerEntry],
    accounts: Iterable[Account],
    presets: CategoryPresets,
    fx_rate: Decimal | None = None,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> List[MonthlyReport]:
    """Income, spending and savings per month.

    Savings-like entries never count as spending; they are reported in
    ``savings_expense`` instead, whether they are expenses or transfers.
    """
    accounts = list(accounts)
    totals: Dict[str, Dict[str, Decimal]] = {}
    for entry in ledger:
        month = entry.month
        if month is None:
            continue
        if start_month and month < start_month:
            continue
        if end_month and month > end_month:
            continue
        bucket = totals.setdefault(
            month,
            {"income": ZERO, "expense": ZERO, "savings_expense": ZERO, "transfer": ZERO},
        )
        amount = to_base_amount(entry.amount, entry.currency, fx_rate, base_currency)
        if entry.kind == "income":
            bucket["income"] += amount
        elif is_savings_expense_entry(entry, accounts, presets):
            bucket["savings_expense"] += amount
        elif entry.kind == "expense":
            bucket["expense"] += amount
        elif entry.kind == "transfer":
            bucket["transfer"] += amount

    return [
        MonthlyReport(
            month=month,
            income=data["income"],
            expense=data["expense"],
            savings_expense=data["savings_expense"],
            transfer=data["transfer"],
            net=data["income"] - data["expense"] - data["savings_expense"],
        )
        for month, data in sorted(totals.items())
    ]


def generate_category_report(
    ledger: Iterable[LedgerEntry],
    accounts: Iterable[Account],
    presets: CategoryPresets,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    fx_rate: Decimal | None = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> List[CategoryReport]:
    accounts = list(accounts)
    groups: Dict[tuple[str, str], Dict[str, object]] = {}
    for entry in ledger:
        if entry.kind != "expense" or entry.date is None:
            continue
        if start_date and entry.date < start_date:
            continue
        if end_date and entry.date > end_date:
            continue
        if is_savings_expense_entry(entry, accounts, presets):
            continue
        key = (entry.category, entry.sub_category)
        group = groups.setdefault(
            key,
            {
                "type": get_category_type(entry.category, entry.sub_category, entry.kind, presets),
                "total": ZERO,
                "count": 0,
            },
        )
        group["total"] += to_base_amount(entry.amount, entry.currency, fx_rate, base_currency)
        group["count"] += 1

    reports = [
        CategoryReport(
            category=category,
            sub_category=sub_category,
            category_type=data["type"],
            total=data["total"],
            count=data["count"],
            average=data["total"] / data["count"],
        )
        for (category, sub_category), data in groups.items()
    ]
    reports.sort(key=lambda report: (-report.total, report.category, report.sub_category))
    return reports
