import unittest
from datetime import date
from decimal import Decimal

from fincontrol.recurring_expansion import (
    MasterTransaction,
    TransactionCopy,
    expand_installments,
    expand_until,
    missing_occurrences,
    next_occurrence,
)


def make_master(**overrides) -> MasterTransaction:
    values = dict(
        id=1,
        item="Aluguel",
        date=date(2024, 1, 1),
        value=Decimal("1500.00"),
        type="expense",
        expense_type="fixed",
        payment_method="pix",
        status="pending",
        wallet_id=3,
        recurring_type="monthly",
    )
    values.update(overrides)
    return MasterTransaction(**values)


class NextOccurrenceTests(unittest.TestCase):
    def test_weekly_adds_seven_days(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 12, 28), "weekly"), date(2025, 1, 4))

    def test_monthly_clamps_to_leap_february(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 1, 31), "monthly"), date(2024, 2, 29))

    def test_monthly_clamps_to_short_month(self) -> None:
        self.assertEqual(next_occurrence(date(2023, 1, 31), "monthly"), date(2023, 2, 28))
        self.assertEqual(next_occurrence(date(2024, 3, 31), "monthly"), date(2024, 4, 30))

    def test_monthly_rolls_over_year(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 12, 15), "monthly"), date(2025, 1, 15))

    def test_yearly_clamps_leap_day(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 2, 29), "yearly"), date(2025, 2, 28))

    def test_unknown_type_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            next_occurrence(date(2024, 1, 1), "daily")


class InstallmentExpansionTests(unittest.TestCase):
    def test_creates_n_minus_one_labelled_copies(self) -> None:
        master = make_master(installments=4)

        plan = expand_installments(master)

        self.assertEqual(
            [copy.date for copy in plan.copies],
            [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)],
        )
        self.assertEqual(
            [copy.item for copy in plan.copies],
            ["Aluguel (2/4)", "Aluguel (3/4)", "Aluguel (4/4)"],
        )
        self.assertEqual(plan.end_date, date(2024, 4, 1))

    def test_copies_inherit_financial_fields_and_are_leaves(self) -> None:
        master = make_master(installments=2, payment_method="credit_card", type="expense")

        plan = expand_installments(master)

        self.assertEqual(
            plan.copies,
            [
                TransactionCopy(
                    item="Aluguel (2/2)",
                    date=date(2024, 2, 1),
                    value=Decimal("1500.00"),
                    type="expense",
                    wallet_id=3,
                    expense_type="fixed",
                    payment_method="credit_card",
                    status="pending",
                )
            ],
        )
        copy = plan.copies[0]
        self.assertFalse(copy.is_recurring)
        self.assertIsNone(copy.recurring_type)
        self.assertIsNone(copy.installments)
        self.assertIsNone(copy.recurring_end_date)

    def test_single_installment_creates_nothing(self) -> None:
        plan = expand_installments(make_master(installments=1))

        self.assertEqual(plan.copies, [])
        self.assertIsNone(plan.end_date)

    def test_monthly_cursor_advances_from_previous_occurrence(self) -> None:
        master = make_master(date=date(2024, 1, 31), installments=3)

        plan = expand_installments(master)

        self.assertEqual(
            [copy.date for copy in plan.copies],
            [date(2024, 2, 29), date(2024, 3, 29)],
        )

    def test_weekly_installments(self) -> None:
        master = make_master(recurring_type="weekly", installments=3)

        plan = expand_installments(master)

        self.assertEqual(
            [copy.date for copy in plan.copies],
            [date(2024, 1, 8), date(2024, 1, 15)],
        )

    def test_malformed_master_is_skipped(self) -> None:
        self.assertEqual(expand_installments(make_master(installments=None)).copies, [])
        self.assertEqual(
            expand_installments(make_master(installments=3, recurring_type=None)).copies, []
        )
        self.assertEqual(
            expand_installments(make_master(installments=3, is_recurring=False)).copies, []
        )


class EndDateExpansionTests(unittest.TestCase):
    def test_weekly_until_end_date(self) -> None:
        master = make_master(recurring_type="weekly", recurring_end_date=date(2024, 1, 22))

        copies = expand_until(master)

        self.assertEqual(
            [copy.date for copy in copies],
            [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)],
        )
        self.assertTrue(all(copy.item == "Aluguel" for copy in copies))

    def test_end_date_equal_to_date_creates_nothing(self) -> None:
        master = make_master(recurring_end_date=date(2024, 1, 1))

        self.assertEqual(expand_until(master), [])

    def test_end_date_before_date_creates_nothing(self) -> None:
        master = make_master(recurring_end_date=date(2023, 12, 1))

        self.assertEqual(expand_until(master), [])

    def test_yearly_until_end_date(self) -> None:
        master = make_master(recurring_type="yearly", recurring_end_date=date(2026, 6, 1))

        copies = expand_until(master)

        self.assertEqual([copy.date for copy in copies], [date(2025, 1, 1), date(2026, 1, 1)])

    def test_missing_occurrences_without_copies_runs_full_expansion(self) -> None:
        master = make_master(recurring_end_date=date(2024, 4, 1))

        copies = missing_occurrences(master, None)

        self.assertEqual(
            [copy.date for copy in copies],
            [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)],
        )

    def test_missing_occurrences_resumes_after_last_copy(self) -> None:
        master = make_master(recurring_end_date=date(2024, 5, 1))

        copies = missing_occurrences(master, date(2024, 3, 1))

        self.assertEqual([copy.date for copy in copies], [date(2024, 4, 1), date(2024, 5, 1)])

    def test_missing_occurrences_ignores_dates_before_master(self) -> None:
        master = make_master(date=date(2024, 1, 5), recurring_end_date=date(2024, 3, 5))

        copies = missing_occurrences(master, date(2023, 6, 20))

        self.assertEqual([copy.date for copy in copies], [date(2024, 2, 5), date(2024, 3, 5)])

    def test_resume_stays_on_master_series(self) -> None:
        master = make_master(date=date(2024, 1, 5), recurring_end_date=date(2024, 4, 5))

        copies = expand_until(master, start_after=date(2024, 2, 20))

        self.assertEqual([copy.date for copy in copies], [date(2024, 3, 5), date(2024, 4, 5)])

    def test_missing_occurrences_is_empty_when_series_is_complete(self) -> None:
        master = make_master(recurring_end_date=date(2024, 3, 1))

        self.assertEqual(missing_occurrences(master, date(2024, 3, 1)), [])


if __name__ == "__main__":
    unittest.main()
