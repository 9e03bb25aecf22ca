import unittest
from datetime import date
from decimal import Decimal

from fincontrol.dashboard import (
    ReportEntry,
    change_description,
    expense_vs_revenue,
    financial_summary,
    most_expensive,
    percentage_change,
    period_range,
)


class FinancialSummaryTests(unittest.TestCase):
    def test_compares_current_and_previous_month(self) -> None:
        entries = [
            ReportEntry(value=Decimal("1000"), type="income", date=date(2024, 3, 5)),
            ReportEntry(value=Decimal("-400"), type="expense", date=date(2024, 3, 10)),
            ReportEntry(value=Decimal("800"), type="income", date=date(2024, 2, 5)),
            ReportEntry(value=Decimal("-200"), type="expense", date=date(2024, 2, 29)),
            ReportEntry(value=Decimal("999"), type="income", date=date(2024, 1, 31)),
        ]

        summary = financial_summary(entries, date(2024, 3, 20))

        self.assertEqual(summary.current.revenues, Decimal("1000"))
        self.assertEqual(summary.current.expenses, Decimal("400"))
        self.assertEqual(summary.current.balance, Decimal("600"))
        self.assertEqual(summary.previous.start_date, date(2024, 2, 1))
        self.assertEqual(summary.previous.end_date, date(2024, 2, 29))
        self.assertEqual(summary.previous.balance, Decimal("600"))
        self.assertEqual(summary.revenue_change, Decimal("25"))
        self.assertEqual(summary.expense_change, Decimal("100"))
        self.assertEqual(summary.balance_change, Decimal("0"))
        self.assertEqual(summary.revenue_description, "Aumento de 25.0% em receitas")
        self.assertEqual(summary.balance_description, "Sem alteração significativa em saldo")

    def test_previous_month_of_january_is_december(self) -> None:
        summary = financial_summary([], date(2024, 1, 10))

        self.assertEqual(summary.previous.start_date, date(2023, 12, 1))
        self.assertEqual(summary.previous.end_date, date(2023, 12, 31))

    def test_percentage_change_from_zero(self) -> None:
        self.assertEqual(percentage_change(Decimal("0"), Decimal("10")), Decimal("100"))
        self.assertEqual(percentage_change(Decimal("0"), Decimal("0")), Decimal("0"))
        self.assertEqual(percentage_change(Decimal("-100"), Decimal("50")), Decimal("150"))

    def test_change_description_reduction(self) -> None:
        self.assertEqual(
            change_description(Decimal("-12.34"), "despesas"), "Redução de 12.3% em despesas"
        )


class ExpenseVsRevenueTests(unittest.TestCase):
    def test_sums_by_type_inside_period(self) -> None:
        entries = [
            ReportEntry(value=Decimal("500"), type="income", date=date(2024, 5, 2)),
            ReportEntry(value=Decimal("120"), type="expense", date=date(2024, 6, 30)),
            ReportEntry(value=Decimal("80"), type="expense", date=date(2024, 4, 1)),
            ReportEntry(value=Decimal("70"), type="expense", date=date(2024, 3, 31)),
        ]

        result = expense_vs_revenue(entries, "quarter", date(2024, 5, 15))

        self.assertEqual(result.start_date, date(2024, 4, 1))
        self.assertEqual(result.end_date, date(2024, 6, 30))
        self.assertEqual(result.revenues, Decimal("500"))
        self.assertEqual(result.expenses, Decimal("200"))

    def test_period_ranges(self) -> None:
        today = date(2024, 5, 15)

        self.assertEqual(period_range("today", today), (today, today))
        self.assertEqual(period_range("week", today), (date(2024, 5, 13), date(2024, 5, 19)))
        self.assertEqual(period_range("Month", today), (date(2024, 5, 1), date(2024, 5, 31)))
        self.assertEqual(period_range("year", today), (date(2024, 1, 1), date(2024, 12, 31)))

    def test_unknown_period_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            period_range("decade", date(2024, 5, 15))


class MostExpensiveTests(unittest.TestCase):
    def test_returns_largest_expenses_first(self) -> None:
        entries = [
            ReportEntry(value=Decimal("50"), type="expense", date=date(2024, 1, 1), item="Café"),
            ReportEntry(value=Decimal("900"), type="income", date=date(2024, 1, 1), item="Salário"),
            ReportEntry(value=Decimal("300"), type="expense", date=date(2024, 1, 2), item="Luz"),
            ReportEntry(value=Decimal("120"), type="expense", date=date(2024, 1, 3), item="Água"),
        ]

        result = most_expensive(entries, limit=2)

        self.assertEqual([entry.item for entry in result], ["Luz", "Água"])

    def test_rejects_non_positive_limit(self) -> None:
        with self.assertRaises(ValueError):
            most_expensive([], limit=0)


if __name__ == "__main__":
    unittest.main()
