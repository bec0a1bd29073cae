import unittest
from datetime import date
from decimal import Decimal

from ledger_engine.models import (
    Account,
    CategoryPresets,
    ExpenseEntry,
    IncomeEntry,
    TransferEntry,
)
from ledger_engine.reports import generate_category_report, generate_monthly_report


class ReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.accounts = [
            Account(id="chk", name="Checking"),
            Account(id="sav", name="Savings", type="savings"),
            Account(id="card", name="Card", type="card"),
        ]
        self.presets = CategoryPresets(fixed_categories=("Rent",))
        self.ledger = [
            IncomeEntry(id="i1", date=date(2024, 1, 25), amount=Decimal("3000"), to_account_id="chk"),
            ExpenseEntry(
                id="e1",
                date=date(2024, 1, 3),
                amount=Decimal("900"),
                category="Rent",
                from_account_id="chk",
            ),
            ExpenseEntry(
                id="e2",
                date=date(2024, 1, 9),
                amount=Decimal("60"),
                category="Food",
                sub_category="Groceries",
                from_account_id="chk",
            ),
            ExpenseEntry(
                id="e3",
                date=date(2024, 2, 9),
                amount=Decimal("40"),
                category="Food",
                sub_category="Groceries",
                from_account_id="chk",
            ),
            ExpenseEntry(
                id="e4",
                date=date(2024, 1, 28),
                amount=Decimal("500"),
                category="Savings",
                from_account_id="chk",
                to_account_id="sav",
            ),
            TransferEntry(
                id="t1",
                date=date(2024, 1, 28),
                amount=Decimal("200"),
                category="Deposit",
                from_account_id="chk",
                to_account_id="sav",
            ),
            TransferEntry(
                id="t2",
                date=date(2024, 1, 29),
                amount=Decimal("300"),
                category="Card Payment Transfer",
                from_account_id="chk",
                to_account_id="card",
            ),
            ExpenseEntry(
                id="e5",
                date=date(2024, 2, 2),
                amount=Decimal("10"),
                category="Coffee",
                currency="USD",
                from_account_id="chk",
            ),
        ]

    def test_savings_like_entries_are_not_spending(self) -> None:
        reports = generate_monthly_report(self.ledger, self.accounts, self.presets)

        january = reports[0]
        self.assertEqual(january.month, "2024-01")
        self.assertEqual(january.income, Decimal("3000"))
        self.assertEqual(january.expense, Decimal("960"))
        self.assertEqual(january.savings_expense, Decimal("700"))
        self.assertEqual(january.transfer, Decimal("300"))
        self.assertEqual(january.net, Decimal("1340"))

    def test_month_range_and_fx_conversion(self) -> None:
        reports = generate_monthly_report(
            self.ledger,
            self.accounts,
            self.presets,
            fx_rate=Decimal("1300"),
            start_month="2024-02",
        )

        self.assertEqual([r.month for r in reports], ["2024-02"])
        self.assertEqual(reports[0].expense, Decimal("13040"))

    def test_category_report_groups_real_spending(self) -> None:
        reports = generate_category_report(
            self.ledger,
            self.accounts,
            self.presets,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 2, 29),
        )

        self.assertEqual(
            [(r.category, r.sub_category, r.category_type) for r in reports],
            [("Rent", "", "fixed"), ("Food", "Groceries", "variable"), ("Coffee", "", "variable")],
        )
        groceries = reports[1]
        self.assertEqual(groceries.total, Decimal("100"))
        self.assertEqual(groceries.count, 2)
        self.assertEqual(groceries.average, Decimal("50"))


if __name__ == "__main__":
    unittest.main()
