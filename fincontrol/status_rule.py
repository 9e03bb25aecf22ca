from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fincontrol.enums import PaymentMethod, StatusTransaction


def derive_status(
    payment_method: Optional[str],
    txn_date: date,
    today: date,
    current_status: Optional[str] = None,
) -> str:
    """Status a transaction must carry right before it is written.

    Credit card purchases settle on their own: paid once the transaction date
    has been reached, pending before that. Every other payment method keeps
    whatever status the user picked, falling back to pending.

    Overdue is never derived here; it only appears when set by hand.
    """
    if payment_method == PaymentMethod.CREDIT_CARD:
        if _start_of_day(today) >= _start_of_day(txn_date):
            return StatusTransaction.PAID
        return StatusTransaction.PENDING
    if not current_status:
        return StatusTransaction.PENDING
    return current_status


def _start_of_day(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
