from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional


def month_start(value: date) -> date:
    return value.replace(day=1)


def shift_month(value: date, months: int) -> date:
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1)


def is_last_month(value: date) -> bool:
    return value.year == date.max.year and value.month == date.max.month


def iter_months(start_value: date, end_value: date) -> list[date]:
    months: list[date] = []
    cursor = month_start(start_value)
    end_month = month_start(end_value)
    while cursor <= end_month:
        months.append(cursor)
        if is_last_month(cursor):
            break
        cursor = shift_month(cursor, 1)
    return months


def month_end(value: date) -> date:
    # December 9999 has no following month to step back from
    if is_last_month(value):
        return date.max
    next_month = shift_month(month_start(value), 1)
    return next_month - timedelta(days=1)


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_month_value(value: str) -> date:
    try:
        return datetime.strptime(value.strip(), "%Y-%m").date()
    except (AttributeError, ValueError) as exc:
        raise ValueError("Invalid month format. Use YYYY-MM.") from exc


def month_bounds(value: str) -> Optional[tuple[date, date]]:
    """First and last day of a ``YYYY-MM`` month, or None when malformed."""
    try:
        first = parse_month_value(value)
    except ValueError:
        return None
    return first, month_end(first)
