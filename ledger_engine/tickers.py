from __future__ import annotations

import re

from ledger_engine.models import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_FOREIGN_CURRENCY,
    Account,
    StockPrice,
)

_EXCHANGE_SUFFIX = re.compile(r"\.(KS|KQ|KO|K|KSQ)$", re.IGNORECASE)
_SHORT_CODE = re.compile(r"^(?=.*[0-9])[0-9A-Z]+$")


def clean_ticker(raw: str) -> str:
    return _EXCHANGE_SUFFIX.sub("", raw.upper())


def canonical_ticker(raw: str | None) -> str:
    """Key used to match trades and prices for the same instrument.

    Domestic codes are six characters; a 4-5 character code containing a
    digit has lost its leading zeros and is padded back.
    """
    cleaned = clean_ticker((raw or "").strip())
    if not cleaned:
        return cleaned
    if 4 <= len(cleaned) <= 5 and _SHORT_CODE.match(cleaned):
        return cleaned.rjust(6, "0")
    return cleaned


def is_foreign_ticker(ticker: str | None) -> bool:
    cleaned = canonical_ticker(ticker)
    return bool(cleaned) and len(cleaned) <= 4


def instrument_currency(
    ticker: str,
    account: Account | None = None,
    price: StockPrice | None = None,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    foreign_currency: str = DEFAULT_FOREIGN_CURRENCY,
) -> str:
    if price is not None and price.currency:
        return price.currency.strip().upper()
    if account is not None and account.currency and account.currency.upper() == foreign_currency:
        return foreign_currency
    if is_foreign_ticker(ticker):
        return foreign_currency
    return base_currency
