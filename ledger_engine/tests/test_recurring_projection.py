import unittest
from datetime import date
from decimal import Decimal

from ledger_engine.models import ExpenseEntry, RecurringExpense, TransferEntry
from ledger_engine.recurring_projection import (
    DEFAULT_CATEGORY,
    expand_recurring_for_month,
    expected_recurring_total,
)


class RecurringExpansionTests(unittest.TestCase):
    def test_monthly_day_is_clamped_to_month_end(self) -> None:
        rent = RecurringExpense(
            id="rent",
            title="Rent",
            amount=Decimal("900"),
            category="Housing",
            start_date=date(2024, 1, 31),
            from_account_id="chk",
        )

        february = expand_recurring_for_month([rent], "2024-02")
        april = expand_recurring_for_month([rent], "2024-04")
        non_leap = expand_recurring_for_month([rent], "2023-02")

        self.assertEqual([e.date for e in february], [date(2024, 2, 29)])
        self.assertEqual([e.date for e in april], [date(2024, 4, 30)])
        # before the start date
        self.assertEqual(non_leap, [])

    def test_monthly_day_is_clamped_in_non_leap_february(self) -> None:
        rent = RecurringExpense(
            id="rent",
            title="Rent",
            amount=Decimal("900"),
            start_date=date(2023, 1, 31),
            from_account_id="chk",
        )

        february = expand_recurring_for_month([rent], "2025-02")

        self.assertEqual([e.date for e in february], [date(2025, 2, 28)])

    def test_last_representable_month_expands(self) -> None:
        rent = RecurringExpense(
            id="rent",
            title="Rent",
            amount=Decimal("900"),
            start_date=date(2024, 1, 31),
        )
        lessons = RecurringExpense(
            id="piano",
            title="Piano",
            amount=Decimal("20"),
            frequency="weekly",
            start_date=date(2024, 1, 1),
        )

        entries = expand_recurring_for_month([rent, lessons], "9999-12")

        self.assertIn(date(9999, 12, 31), [e.date for e in entries if e.sub_category == "Rent"])
        weekly = [e.date for e in entries if e.sub_category == "Piano"]
        self.assertTrue(weekly)
        self.assertTrue(all(d.year == 9999 and d.month == 12 for d in weekly))
        self.assertEqual(expected_recurring_total([rent], "9999-12"), Decimal("900"))

    def test_candidate_fields(self) -> None:
        gym = RecurringExpense(
            id="gym",
            title="Gym",
            amount=Decimal("50"),
            start_date=date(2024, 1, 15),
            from_account_id="card",
        )

        [entry] = expand_recurring_for_month([gym], "2024-03")

        self.assertIsInstance(entry, ExpenseEntry)
        self.assertEqual(entry.id, "gym:2024-03-15")
        self.assertEqual(entry.category, DEFAULT_CATEGORY)
        self.assertEqual(entry.sub_category, "Gym")
        self.assertEqual(entry.description, "Gym")
        self.assertEqual(entry.amount, Decimal("50"))
        self.assertEqual(entry.from_account_id, "card")
        self.assertTrue(entry.is_fixed_expense)

    def test_template_with_destination_becomes_transfer(self) -> None:
        deposit = RecurringExpense(
            id="dep",
            title="Installment savings",
            amount=Decimal("300"),
            category="Savings",
            start_date=date(2024, 1, 10),
            from_account_id="chk",
            to_account_id="sav",
        )

        [entry] = expand_recurring_for_month([deposit], "2024-05")

        self.assertIsInstance(entry, TransferEntry)
        self.assertEqual(entry.to_account_id, "sav")

    def test_weekly_and_yearly_templates(self) -> None:
        lessons = RecurringExpense(
            id="piano",
            title="Piano",
            amount=Decimal("20"),
            frequency="weekly",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 20),
        )
        insurance = RecurringExpense(
            id="car",
            title="Car insurance",
            amount=Decimal("1200"),
            frequency="yearly",
            start_date=date(2023, 6, 5),
        )

        january = expand_recurring_for_month([lessons, insurance], "2024-01")
        june = expand_recurring_for_month([lessons, insurance], "2024-06")

        self.assertEqual(
            [e.date for e in january],
            [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)],
        )
        self.assertEqual([e.date for e in june], [date(2024, 6, 5)])

    def test_end_date_stops_expansion(self) -> None:
        loan = RecurringExpense(
            id="loan",
            title="Loan",
            amount=Decimal("100"),
            start_date=date(2024, 1, 20),
            end_date=date(2024, 3, 10),
        )

        self.assertEqual(len(expand_recurring_for_month([loan], "2024-02")), 1)
        self.assertEqual(expand_recurring_for_month([loan], "2024-03"), [])

    def test_second_expansion_adds_nothing(self) -> None:
        templates = [
            RecurringExpense(
                id="phone",
                title="Phone",
                amount=Decimal("45"),
                category="Utilities",
                start_date=date(2024, 1, 3),
                from_account_id="chk",
            )
        ]

        first = expand_recurring_for_month(templates, "2024-02")
        second = expand_recurring_for_month(templates, "2024-02", existing_ledger=first)

        self.assertEqual(len(first), 1)
        self.assertEqual(second, [])

    def test_manually_entered_duplicate_is_skipped(self) -> None:
        template = RecurringExpense(
            id="phone",
            title="Phone",
            amount=Decimal("45"),
            category="Utilities",
            start_date=date(2024, 1, 3),
            from_account_id="chk",
        )
        manual = ExpenseEntry(
            id="m1",
            date=date(2024, 2, 3),
            amount=Decimal("45.00"),
            category="Utilities",
            sub_category="Phone",
            from_account_id="chk",
        )

        self.assertEqual(expand_recurring_for_month([template], "2024-02", [manual]), [])

    def test_identical_templates_collapse(self) -> None:
        template = RecurringExpense(
            id="a",
            title="Netflix",
            amount=Decimal("17"),
            start_date=date(2024, 1, 9),
        )
        copy = RecurringExpense(
            id="b",
            title="Netflix",
            amount=Decimal("17"),
            start_date=date(2024, 1, 9),
        )

        self.assertEqual(len(expand_recurring_for_month([template, copy], "2024-02")), 1)

    def test_inactive_templates_are_ignored(self) -> None:
        templates = [
            RecurringExpense(id="z", title="Zero", amount=Decimal("0"), start_date=date(2024, 1, 1)),
            RecurringExpense(id="n", title="No start", amount=Decimal("10")),
            RecurringExpense(
                id="q",
                title="Quarterly",
                amount=Decimal("10"),
                frequency="quarterly",
                start_date=date(2024, 1, 1),
            ),
        ]

        self.assertEqual(expand_recurring_for_month(templates, "2024-02"), [])

    def test_malformed_month_yields_nothing(self) -> None:
        template = RecurringExpense(id="a", title="A", amount=Decimal("1"), start_date=date(2024, 1, 1))

        self.assertEqual(expand_recurring_for_month([template], "2024/02"), [])
        self.assertEqual(expand_recurring_for_month([template], "2024-13"), [])


class ExpectedRecurringTotalTests(unittest.TestCase):
    def test_combines_frequencies(self) -> None:
        templates = [
            RecurringExpense(id="m", title="Rent", amount=Decimal("900"), start_date=date(2024, 1, 1)),
            RecurringExpense(
                id="w",
                title="Lessons",
                amount=Decimal("20"),
                frequency="weekly",
                start_date=date(2024, 1, 1),
            ),
            RecurringExpense(
                id="y",
                title="Insurance",
                amount=Decimal("1200"),
                frequency="yearly",
                start_date=date(2023, 6, 5),
            ),
        ]

        # April 2024 has five Mondays
        self.assertEqual(expected_recurring_total(templates, "2024-04"), Decimal("1100"))

    def test_malformed_month_is_zero(self) -> None:
        self.assertEqual(expected_recurring_total([], "April"), Decimal("0"))


if __name__ == "__main__":
    unittest.main()
