from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

from fincontrol.enums import TransactionType

ZERO = Decimal("0")
HUNDRED = Decimal("100")
SUPPORTED_PERIODS = ("today", "week", "month", "quarter", "year")


@dataclass(frozen=True)
class ReportEntry:
    value: Decimal
    type: str
    date: date
    item: str = ""
    id: Optional[int] = None
    wallet_id: Optional[int] = None


@dataclass(frozen=True)
class MonthTotals:
    start_date: date
    end_date: date
    revenues: Decimal
    expenses: Decimal
    balance: Decimal


@dataclass(frozen=True)
class FinancialSummary:
    current: MonthTotals
    previous: MonthTotals
    revenue_change: Decimal
    expense_change: Decimal
    balance_change: Decimal
    revenue_description: str
    expense_description: str
    balance_description: str


@dataclass(frozen=True)
class ExpenseVsRevenue:
    period: str
    start_date: date
    end_date: date
    revenues: Decimal
    expenses: Decimal


def financial_summary(entries: Iterable[ReportEntry], today: date) -> FinancialSummary:
    """Current month against the previous one.

    Revenues and expenses are split by the sign of the value, so rows
    recorded as negative amounts count as expenses whatever their type.
    """
    entries = list(entries)
    current_start = today.replace(day=1)
    previous_start = _shift_month(current_start, -1)
    current = _month_totals(entries, current_start)
    previous = _month_totals(entries, previous_start)

    revenue_change = percentage_change(previous.revenues, current.revenues)
    expense_change = percentage_change(previous.expenses, current.expenses)
    balance_change = percentage_change(previous.balance, current.balance)
    return FinancialSummary(
        current=current,
        previous=previous,
        revenue_change=revenue_change,
        expense_change=expense_change,
        balance_change=balance_change,
        revenue_description=change_description(revenue_change, "receitas"),
        expense_description=change_description(expense_change, "despesas"),
        balance_description=change_description(balance_change, "saldo"),
    )


def percentage_change(previous: Decimal, current: Decimal) -> Decimal:
    if previous == ZERO:
        return HUNDRED if current > ZERO else ZERO
    return ((current - previous) / abs(previous)) * HUNDRED


def change_description(change: Decimal, subject: str) -> str:
    magnitude = abs(change)
    if magnitude < 1:
        return f"Sem alteração significativa em {subject}"
    direction = "Aumento" if change >= ZERO else "Redução"
    return f"{direction} de {magnitude:.1f}% em {subject}"


def period_range(period: str, today: date) -> tuple[date, date]:
    normalized = period.strip().lower()
    if normalized == "today":
        return today, today
    if normalized == "week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if normalized == "month":
        return today.replace(day=1), _month_end(today)
    if normalized == "quarter":
        first_month = (today.month - 1) // 3 * 3 + 1
        start = date(today.year, first_month, 1)
        return start, _month_end(date(today.year, first_month + 2, 1))
    if normalized == "year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    raise ValueError("Unsupported period. Use today, week, month, quarter or year.")


def expense_vs_revenue(
    entries: Iterable[ReportEntry], period: str, today: date
) -> ExpenseVsRevenue:
    start_date, end_date = period_range(period, today)
    revenues = ZERO
    expenses = ZERO
    for entry in entries:
        if not start_date <= entry.date <= end_date:
            continue
        if entry.type == TransactionType.INCOME:
            revenues += _coerce_amount(entry.value)
        elif entry.type == TransactionType.EXPENSE:
            expenses += _coerce_amount(entry.value)
    return ExpenseVsRevenue(
        period=period.strip().lower(),
        start_date=start_date,
        end_date=end_date,
        revenues=revenues,
        expenses=expenses,
    )


def most_expensive(entries: Iterable[ReportEntry], limit: int = 10) -> List[ReportEntry]:
    if limit < 1:
        raise ValueError("limit must be at least 1.")
    expenses = [entry for entry in entries if entry.type == TransactionType.EXPENSE]
    expenses.sort(key=lambda entry: _coerce_amount(entry.value), reverse=True)
    return expenses[:limit]


def _month_totals(entries: List[ReportEntry], start_date: date) -> MonthTotals:
    end_date = _month_end(start_date)
    revenues = ZERO
    negatives = ZERO
    for entry in entries:
        if not start_date <= entry.date <= end_date:
            continue
        amount = _coerce_amount(entry.value)
        if amount > ZERO:
            revenues += amount
        elif amount < ZERO:
            negatives += amount
    expenses = abs(negatives)
    return MonthTotals(
        start_date=start_date,
        end_date=end_date,
        revenues=revenues,
        expenses=expenses,
        balance=revenues - expenses,
    )


def _shift_month(value: date, months: int) -> date:
    month_index = (value.year * 12 + value.month - 1) + months
    return date(month_index // 12, month_index % 12 + 1, 1)


def _month_end(value: date) -> date:
    return value.replace(day=monthrange(value.year, value.month)[1])


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
