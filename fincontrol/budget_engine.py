from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from fincontrol.enums import StatusTransaction, TransactionType

ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerEntry:
    value: Decimal
    type: str
    status: Optional[str]
    date: date


@dataclass(frozen=True)
class WalletSummary:
    budget: Decimal
    year: int
    month: int
    total_value: Decimal
    open_transactions_value: Decimal
    open_transactions_value_current_month: Decimal
    open_transactions_value_for_month: Decimal
    paid_transactions_value: Decimal
    expense_transactions_value: Decimal
    remaining_budget: Decimal
    remaining_budget_for_month: Decimal


def total_value(entries: Iterable[LedgerEntry]) -> Decimal:
    total = ZERO
    for entry in entries:
        total += _coerce_amount(entry.value)
    return total


def open_transactions_value(
    entries: Iterable[LedgerEntry],
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> Decimal:
    _validate_period(year, month)
    total = ZERO
    for entry in entries:
        if entry.status not in StatusTransaction.OPEN:
            continue
        if year is not None and not _in_month(entry.date, year, month):
            continue
        total += _coerce_amount(entry.value)
    return total


def open_transactions_value_current_month(
    entries: Iterable[LedgerEntry], today: date
) -> Decimal:
    return open_transactions_value(entries, today.year, today.month)


def expense_transactions_value(
    entries: Iterable[LedgerEntry], year: int, month: int
) -> Decimal:
    _validate_period(year, month)
    total = ZERO
    for entry in entries:
        if entry.type != TransactionType.EXPENSE:
            continue
        if not _in_month(entry.date, year, month):
            continue
        total += _coerce_amount(entry.value)
    return total


def paid_transactions_value(entries: Iterable[LedgerEntry]) -> Decimal:
    total = ZERO
    for entry in entries:
        if entry.status != StatusTransaction.PAID:
            continue
        total += _coerce_amount(entry.value)
    return total


def remaining_budget(
    budget: Optional[Decimal], entries: Iterable[LedgerEntry], today: date
) -> Decimal:
    # Counts open transactions of the current month, regardless of type.
    return _coerce_amount(budget or ZERO) - open_transactions_value_current_month(
        entries, today
    )


def remaining_budget_for_month(
    budget: Optional[Decimal], entries: Iterable[LedgerEntry], year: int, month: int
) -> Decimal:
    # Counts every expense of the month, regardless of status.
    return _coerce_amount(budget or ZERO) - expense_transactions_value(
        entries, year, month
    )


def evaluate_wallet(
    budget: Optional[Decimal],
    entries: Iterable[LedgerEntry],
    today: date,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> WalletSummary:
    if (year is None) != (month is None):
        raise ValueError("year and month must be given together.")
    if year is None:
        year, month = today.year, today.month
    entries = list(entries)
    resolved_budget = _coerce_amount(budget or ZERO)
    return WalletSummary(
        budget=resolved_budget,
        year=year,
        month=month,
        total_value=total_value(entries),
        open_transactions_value=open_transactions_value(entries),
        open_transactions_value_current_month=open_transactions_value_current_month(
            entries, today
        ),
        open_transactions_value_for_month=open_transactions_value(entries, year, month),
        paid_transactions_value=paid_transactions_value(entries),
        expense_transactions_value=expense_transactions_value(entries, year, month),
        remaining_budget=remaining_budget(resolved_budget, entries, today),
        remaining_budget_for_month=remaining_budget_for_month(
            resolved_budget, entries, year, month
        ),
    )


def _validate_period(year: Optional[int], month: Optional[int]) -> None:
    if year is None and month is None:
        return
    if year is None or month is None:
        raise ValueError("year and month must be given together.")
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12.")


def _in_month(value: date, year: int, month: int) -> bool:
    return value.year == year and value.month == month


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
