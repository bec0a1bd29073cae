from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from ledger_engine.currency_conversion import coerce_amount
from ledger_engine.models import ZERO, BudgetGoal, LedgerEntry
from ledger_engine.months import month_bounds

HUNDRED = Decimal("100")
DEFAULT_WARNING_THRESHOLD = Decimal("80")


@dataclass(frozen=True)
class BudgetEvaluation:
    goal_id: str
    category: str
    spent: Decimal
    limit: Decimal
    remaining: Decimal
    percentage: Decimal
    status: str


def evaluate_budget_goals(
    goals: Iterable[BudgetGoal],
    ledger: Iterable[LedgerEntry],
    month: str,
    threshold: Decimal | int = DEFAULT_WARNING_THRESHOLD,
) -> List[BudgetEvaluation]:
    bounds = month_bounds(month)
    if bounds is None:
        return []
    month_start, month_end = bounds
    warning_at = coerce_amount(threshold)

    filtered = [
        entry
        for entry in ledger
        if entry.kind == "expense"
        and entry.date is not None
        and month_start <= entry.date <= month_end
    ]

    evaluations: List[BudgetEvaluation] = []
    for goal in goals:
        limit = coerce_amount(goal.monthly_limit)
        spent = _sum_expenses(filtered, category=goal.category or None)
        percentage = spent / limit * HUNDRED if limit > ZERO else ZERO
        if percentage >= HUNDRED:
            status = "over"
        elif percentage >= warning_at:
            status = "warning"
        else:
            status = "ok"
        evaluations.append(
            BudgetEvaluation(
                goal_id=goal.id,
                category=goal.category,
                spent=spent,
                limit=limit,
                remaining=limit - spent,
                percentage=percentage,
                status=status,
            )
        )
    return evaluations


def _sum_expenses(
    entries: Iterable[LedgerEntry],
    *,
    category: Optional[str] = None,
) -> Decimal:
    total = ZERO
    for entry in entries:
        if category is not None and category not in (entry.category, entry.sub_category):
            continue
        total += coerce_amount(entry.amount)
    return total
