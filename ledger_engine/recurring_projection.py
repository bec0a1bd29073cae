from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Set, Tuple

from ledger_engine.currency_conversion import coerce_amount
from ledger_engine.models import (
    ZERO,
    AnyLedgerEntry,
    ExpenseEntry,
    LedgerEntry,
    RecurringExpense,
    TransferEntry,
)
from ledger_engine.months import month_bounds

logger = logging.getLogger(__name__)

WEEKLY_DAYS = 7
SUPPORTED_FREQUENCIES = {"weekly", "monthly", "yearly"}
DEFAULT_CATEGORY = "(Fixed expense)"

DedupKey = Tuple[date, str, str, Decimal, Optional[str], Optional[str]]


def expand_recurring_for_month(
    templates: Iterable[RecurringExpense],
    month: str,
    existing_ledger: Iterable[LedgerEntry] = (),
) -> List[AnyLedgerEntry]:
    """Turn recurring templates into ledger candidates for one ``YYYY-MM`` month.

    Candidates already present in ``existing_ledger`` (same date, category,
    sub-category, amount and accounts) are dropped, so applying the result
    and expanding again yields nothing new. A malformed month yields [].
    """
    bounds = month_bounds(month)
    if bounds is None:
        logger.debug("Cannot expand recurring expenses for malformed month %r", month)
        return []
    month_start, month_end = bounds

    seen = _index_existing_entries(existing_ledger, month_start, month_end)
    candidates: List[AnyLedgerEntry] = []
    for template in templates:
        for occurrence in _occurrences_in_month(template, month_start, month_end):
            candidate = _build_entry(template, occurrence)
            key = _dedup_key(candidate)
            if key in seen:
                continue
            seen.add(key)
            candidates.append(candidate)
    return candidates


def expected_recurring_total(templates: Iterable[RecurringExpense], month: str) -> Decimal:
    """Expected recurring spend for a month: monthly once, weekly per occurrence, yearly / 12."""
    bounds = month_bounds(month)
    if bounds is None:
        return ZERO
    month_start, month_end = bounds
    total = ZERO
    for template in templates:
        amount = coerce_amount(template.amount)
        frequency = _normalize_frequency(template.frequency)
        if amount <= ZERO or template.start_date is None:
            continue
        if template.start_date > month_end:
            continue
        if template.end_date is not None and template.end_date < month_start:
            continue
        if frequency == "monthly":
            total += amount
        elif frequency == "weekly":
            total += amount * len(_occurrences_in_month(template, month_start, month_end))
        elif frequency == "yearly":
            total += amount / 12
    return total


def _occurrences_in_month(
    template: RecurringExpense,
    month_start: date,
    month_end: date,
) -> List[date]:
    start_date = template.start_date
    end_date = template.end_date
    if start_date is None or coerce_amount(template.amount) <= ZERO:
        return []
    if end_date is not None and end_date < month_start:
        return []
    frequency = _normalize_frequency(template.frequency)
    if frequency not in SUPPORTED_FREQUENCIES:
        logger.debug("Recurring expense %s has unsupported frequency %r", template.id, template.frequency)
        return []

    if frequency == "weekly":
        dates: List[date] = []
        current_date = _first_occurrence_on_or_after(start_date, month_start, WEEKLY_DAYS)
        while current_date <= month_end:
            if end_date is None or current_date <= end_date:
                dates.append(current_date)
            if (month_end - current_date).days < WEEKLY_DAYS:
                break
            current_date += timedelta(days=WEEKLY_DAYS)
        return dates

    if frequency == "yearly" and start_date.month != month_start.month:
        return []
    target = _clamp_day(month_start.year, month_start.month, start_date.day)
    if target < start_date:
        return []
    if end_date is not None and target > end_date:
        return []
    return [target]


def _build_entry(template: RecurringExpense, occurrence: date) -> AnyLedgerEntry:
    fields = dict(
        id=f"{template.id}:{occurrence.isoformat()}",
        date=occurrence,
        amount=coerce_amount(template.amount),
        category=template.category or DEFAULT_CATEGORY,
        sub_category=template.title,
        description=template.title,
        is_fixed_expense=True,
        from_account_id=template.from_account_id,
        to_account_id=template.to_account_id,
    )
    if template.to_account_id:
        return TransferEntry(**fields)
    return ExpenseEntry(**fields)


def _index_existing_entries(
    existing_ledger: Iterable[LedgerEntry],
    month_start: date,
    month_end: date,
) -> Set[DedupKey]:
    index: Set[DedupKey] = set()
    for entry in existing_ledger:
        if entry.date is None or not (month_start <= entry.date <= month_end):
            continue
        index.add(_dedup_key(entry))
    return index


def _dedup_key(entry: LedgerEntry) -> DedupKey:
    return (
        entry.date,
        entry.category,
        entry.sub_category,
        coerce_amount(entry.amount),
        getattr(entry, "from_account_id", None),
        getattr(entry, "to_account_id", None),
    )


def _normalize_frequency(value: str | None) -> str:
    return "".join(ch for ch in (value or "").strip().lower() if ch.isalnum())


def _first_occurrence_on_or_after(
    start_date: date, minimum_date: date, interval_days: int
) -> date:
    if start_date >= minimum_date:
        return start_date
    days_between = (minimum_date - start_date).days
    intervals = (days_between + interval_days - 1) // interval_days
    return start_date + timedelta(days=interval_days * intervals)


def _clamp_day(year: int, month: int, anchor_day: int) -> date:
    last_day = monthrange(year, month)[1]
    return date(year, month, min(anchor_day, last_day))
