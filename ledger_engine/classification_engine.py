"""
Ledger Entry Classification Engine

Decides whether a ledger entry is fixed, variable or savings-like spending
from user-configured category presets, and suggests categories for new
entries from patterns learned over the user's own history (no AI/ML).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ledger_engine.models import (
    SAVINGS_LIKE_ACCOUNT_TYPES,
    Account,
    CategoryPresets,
    LedgerEntry,
)

CONFIDENCE_BY_PATTERN_TYPE = {
    "exact": 0.95,
    "starts_with": 0.75,
    "contains": 0.50,
}


def is_savings_expense_entry(
    entry: LedgerEntry,
    accounts: Iterable[Account],
    presets: CategoryPresets,
) -> bool:
    """
    Return True when an entry moves money into savings rather than spending it.

    A configured pure-transfer category is never savings-like, whatever its
    destination. Otherwise the entry is savings-like if its category is a
    configured savings category, or if it is a transfer landing on a savings
    or securities account.

    Args:
        entry: Ledger entry to classify
        accounts: Known accounts, used to resolve the destination type
        presets: Category configuration

    Returns:
        True for savings-like entries
    """
    if entry.category in presets.pure_transfer_categories:
        return False
    if entry.category in presets.savings_categories:
        return True
    if entry.kind == "transfer" and entry.to_account_id:
        destination = _find_account(accounts, entry.to_account_id)
        if destination is not None and destination.type in SAVINGS_LIKE_ACCOUNT_TYPES:
            return True
    return False


def get_category_type(
    category: str,
    sub_category: Optional[str],
    kind: str,
    presets: CategoryPresets,
    entry: Optional[LedgerEntry] = None,
    accounts: Optional[Iterable[Account]] = None,
) -> str:
    """
    Look up the spending type of a category.

    Income is always "income" and a transfer that is not savings-like is
    "transfer"; expenses resolve to "savings", "fixed" or "variable".

    Args:
        category: Main category label
        sub_category: Optional sub-category label
        kind: Ledger kind ("income", "expense" or "transfer")
        presets: Category configuration
        entry: Optional full entry, needed to resolve transfer destinations
        accounts: Optional accounts, needed to resolve transfer destinations

    Returns:
        One of "income", "transfer", "savings", "fixed", "variable"
    """
    if kind == "income":
        return "income"

    if category not in presets.pure_transfer_categories:
        if category in presets.savings_categories:
            return "savings"
        if entry is not None and accounts is not None:
            if is_savings_expense_entry(entry, accounts, presets):
                return "savings"

    if kind == "transfer":
        return "transfer"

    if category in presets.fixed_categories:
        return "fixed"
    if sub_category and (category, sub_category) in presets.fixed_sub_categories:
        return "fixed"

    return "variable"


def _find_account(accounts: Iterable[Account], account_id: str) -> Optional[Account]:
    for account in accounts:
        if account.id == account_id:
            return account
    return None


@dataclass(frozen=True)
class CategorySuggestion:
    category: str
    sub_category: str
    confidence: float


@dataclass
class ClassificationRules:
    """Learned (pattern, pattern_type) -> {(category, sub_category): match_count}."""

    counts: dict[tuple[str, str], dict[tuple[str, str], int]] = field(default_factory=dict)

    def record(self, pattern: str, pattern_type: str, category: str, sub_category: str) -> None:
        bucket = self.counts.setdefault((pattern, pattern_type), {})
        key = (category, sub_category)
        bucket[key] = bucket.get(key, 0) + 1

    def best_match(self, pattern: str, pattern_type: str) -> Optional[tuple[str, str]]:
        bucket = self.counts.get((pattern, pattern_type))
        if not bucket:
            return None
        # highest match_count wins, label order keeps the choice deterministic
        return min(bucket.items(), key=lambda item: (-item[1], item[0]))[0]


def extract_merchant_patterns(description: str) -> list[tuple[str, str]]:
    """
    Extract merchant patterns from a ledger description.

    Returns list of (pattern, pattern_type) tuples in order of specificity:
    1. Exact match (full description)
    2. Starts-with match (merchant name - first word/token)
    3. Contains match (merchant keyword)

    Args:
        description: Raw ledger description

    Returns:
        List of (pattern, pattern_type) tuples
    """
    if not description or not description.strip():
        return []

    patterns = []
    cleaned = " ".join(description.split()).upper()

    patterns.append((cleaned, "exact"))

    # First one or two tokens before any separator
    merchant_match = re.match(r"^(\w+(?:\s+\w+)?)", cleaned)
    merchant_name = merchant_match.group(1).strip() if merchant_match else ""
    if merchant_name and merchant_name != cleaned:
        patterns.append((merchant_name, "starts_with"))

    # First significant word (3+ chars)
    words = re.findall(r"\w{3,}", cleaned)
    if words:
        keyword = words[0]
        if keyword != cleaned and keyword != merchant_name:
            patterns.append((keyword, "contains"))

    return patterns


def learn_classification_rules(ledger: Iterable[LedgerEntry]) -> ClassificationRules:
    """
    Learn classification patterns from categorised ledger history.

    Args:
        ledger: Ledger entries; entries without description or category are skipped

    Returns:
        Fresh ClassificationRules built from the given history
    """
    rules = ClassificationRules()
    for entry in ledger:
        if not entry.description or not entry.category:
            continue
        for pattern, pattern_type in extract_merchant_patterns(entry.description):
            rules.record(pattern, pattern_type, entry.category, entry.sub_category)
    return rules


def suggest_category(
    description: str,
    rules: ClassificationRules,
) -> Optional[CategorySuggestion]:
    """
    Suggest a category for a description based on learned patterns.

    Tries patterns in order of specificity (exact, starts-with, contains)
    and returns the first hit with its confidence.

    Args:
        description: Description of the entry being entered
        rules: Rules returned by learn_classification_rules

    Returns:
        CategorySuggestion, or None if nothing matches
    """
    for pattern, pattern_type in extract_merchant_patterns(description):
        match = rules.best_match(pattern, pattern_type)
        if match is not None:
            category, sub_category = match
            return CategorySuggestion(
                category=category,
                sub_category=sub_category,
                confidence=CONFIDENCE_BY_PATTERN_TYPE.get(pattern_type, 0.5),
            )
    return None
