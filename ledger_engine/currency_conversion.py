from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from ledger_engine.models import DEFAULT_BASE_CURRENCY, ZERO

logger = logging.getLogger(__name__)


def to_base_amount(
    amount: Decimal | int | float | str,
    currency: str | None,
    fx_rate: Decimal | int | float | str | None = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> Decimal:
    """Convert an amount into the base currency.

    ``fx_rate`` is expressed as base-currency units per one foreign unit.
    Without a usable rate the amount is returned unconverted, so a rate that
    is momentarily unavailable never blanks the rest of a computation.
    """
    coerced_amount = coerce_amount(amount)
    if not is_foreign(currency, base_currency):
        return coerced_amount

    rate = coerce_rate(fx_rate)
    if rate is None:
        logger.debug("No FX rate for %s, leaving amount unconverted", currency)
        return coerced_amount
    return coerced_amount * rate


def is_foreign(currency: str | None, base_currency: str = DEFAULT_BASE_CURRENCY) -> bool:
    if currency is None or not str(currency).strip():
        return False
    normalized_base = safe_normalize_currency(base_currency, DEFAULT_BASE_CURRENCY)
    return safe_normalize_currency(currency, normalized_base) != normalized_base


def coerce_rate(value: Decimal | int | float | str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        rate = coerce_amount(value)
    except (InvalidOperation, ValueError):
        return None
    if not rate.is_finite() or rate <= ZERO:
        return None
    return rate


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def safe_normalize_currency(value: str | None, fallback: str) -> str:
    if not value:
        return fallback
    try:
        return normalize_currency(value)
    except ValueError:
        return fallback


def coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
