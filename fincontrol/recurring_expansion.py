from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from fincontrol.enums import RecurringType

WEEKLY_DAYS = 7


@dataclass(frozen=True)
class MasterTransaction:
    item: str
    date: date
    value: Decimal
    type: str
    wallet_id: int
    recurring_type: Optional[str]
    is_recurring: bool = True
    installments: Optional[int] = None
    recurring_end_date: Optional[date] = None
    expense_type: Optional[str] = None
    payment_method: Optional[str] = None
    status: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class TransactionCopy:
    item: str
    date: date
    value: Decimal
    type: str
    wallet_id: int
    expense_type: Optional[str] = None
    payment_method: Optional[str] = None
    status: Optional[str] = None
    is_recurring: bool = False
    recurring_type: Optional[str] = None
    installments: Optional[int] = None
    recurring_end_date: Optional[date] = None


@dataclass(frozen=True)
class InstallmentPlan:
    copies: List[TransactionCopy]
    end_date: Optional[date]


def next_occurrence(current: date, recurring_type: str) -> date:
    normalized = RecurringType.validate(recurring_type)
    if normalized == RecurringType.WEEKLY:
        return current + timedelta(days=WEEKLY_DAYS)
    if normalized == RecurringType.MONTHLY:
        return _add_months(current, 1)
    return _add_months(current, 12)


def expand_installments(master: MasterTransaction) -> InstallmentPlan:
    """Copies for installments 2..N; the master itself is installment 1."""
    if not _has_recurrence(master) or not master.installments:
        return InstallmentPlan(copies=[], end_date=None)

    total = master.installments
    copies: List[TransactionCopy] = []
    cursor = master.date
    for number in range(2, total + 1):
        cursor = next_occurrence(cursor, master.recurring_type)
        copies.append(_copy_of(master, cursor, f"{master.item} ({number}/{total})"))

    return InstallmentPlan(copies=copies, end_date=cursor if copies else None)


def expand_until(
    master: MasterTransaction,
    start_after: Optional[date] = None,
) -> List[TransactionCopy]:
    if not _has_recurrence(master) or master.recurring_end_date is None:
        return []
    if master.recurring_end_date < master.date:
        return []

    # Occurrences always sit on the master's own series.
    threshold = master.date
    if start_after is not None and start_after > threshold:
        threshold = start_after

    copies: List[TransactionCopy] = []
    cursor = next_occurrence(master.date, master.recurring_type)
    while cursor <= master.recurring_end_date:
        if cursor > threshold:
            copies.append(_copy_of(master, cursor, master.item))
        cursor = next_occurrence(cursor, master.recurring_type)
    return copies


def missing_occurrences(
    master: MasterTransaction,
    last_copy_date: Optional[date],
) -> List[TransactionCopy]:
    if last_copy_date is None:
        return expand_until(master)
    return expand_until(master, start_after=last_copy_date)


def _has_recurrence(master: MasterTransaction) -> bool:
    if not master.is_recurring or not master.recurring_type:
        return False
    return master.recurring_type.strip().lower() in RecurringType.values


def _copy_of(master: MasterTransaction, occurrence: date, item: str) -> TransactionCopy:
    return TransactionCopy(
        item=item,
        date=occurrence,
        value=_coerce_amount(master.value),
        type=master.type,
        wallet_id=master.wallet_id,
        expense_type=master.expense_type,
        payment_method=master.payment_method,
        status=master.status,
    )


def _add_months(start_date: date, months: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    last_day = monthrange(year, month)[1]
    day = min(start_date.day, last_day)
    return date(year, month, day)


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
