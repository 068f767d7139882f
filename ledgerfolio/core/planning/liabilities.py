"""
Liability balance reconstruction.

Only the current balance of a liability is stored. The balance on an earlier
date is rebuilt in reverse: start from the current balance and add back the
principal of every payment made after that date. Payments dated on the
target date itself are not reversed.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from ledgerfolio.core.exceptions import InvalidPaymentError
from ledgerfolio.core.types import ZERO, PaymentEvent, to_decimal

logger = logging.getLogger(__name__)


class HasBalance(Protocol):
    id: str
    balance: Decimal


@dataclass(frozen=True)
class LiabilityState:
    """Immutable view of a liability for valuation passes."""

    id: str
    name: str
    balance: Decimal
    start_date: Optional[date] = None


@dataclass(frozen=True)
class BalancePoint:
    date: date
    balance: Decimal


def balance_at_date(
    liability: HasBalance,
    payments: Iterable[PaymentEvent],
    target_date: date,
) -> Decimal:
    """
    Balance of ``liability`` at the end of ``target_date``.

    Example:
        current balance 95000, principal 500..545 paid Jan-Oct 2024
        balance_at_date(liability, payments, date(2023, 12, 31)) == 100225
    """
    payments = list(payments)
    reversed_principal = sum(
        (p.principal_paid for p in payments if p.date > target_date), ZERO
    )
    if payments and target_date < min(p.date for p in payments):
        logger.warning(
            "Balance of liability %s requested for %s, before its first recorded "
            "payment; history before that payment is unknown",
            liability.id,
            target_date,
        )
    return liability.balance + reversed_principal


def liability_balance_history(
    liability: HasBalance,
    payments: Iterable[PaymentEvent],
    start: date,
    end: date,
) -> list[BalancePoint]:
    """
    Balance over a date range.

    Produces the reconstructed start balance, one point per payment inside
    the range at its recorded remaining balance, and the end balance.
    """
    if end < start:
        raise ValueError(f"end ({end}) is before start ({start})")

    payments = sorted(payments, key=lambda p: p.date)
    points = [BalancePoint(start, balance_at_date(liability, payments, start))]

    for payment in payments:
        if start < payment.date < end:
            balance = (
                payment.remaining_balance
                if payment.remaining_balance is not None
                else balance_at_date(liability, payments, payment.date)
            )
            points.append(BalancePoint(payment.date, balance))

    if end > start:
        points.append(BalancePoint(end, balance_at_date(liability, payments, end)))
    return points


def total_liabilities_at_date(
    liabilities: Iterable[HasBalance],
    payments_by_liability: Mapping[str, Sequence[PaymentEvent]],
    target_date: date,
) -> Decimal:
    """Sum of every liability's reconstructed balance on ``target_date``."""
    return sum(
        (
            balance_at_date(liability, payments_by_liability.get(liability.id, ()), target_date)
            for liability in liabilities
        ),
        ZERO,
    )


def validate_payment(
    current_balance: Decimal,
    start_date: Optional[date],
    payment_date: date,
    principal: object,
    interest: object = 0,
    latest_payment_date: Optional[date] = None,
) -> tuple[Decimal, Decimal]:
    """
    Check a new payment against its liability.

    Returns:
        (principal, interest) as Decimals.

    Raises:
        InvalidPaymentError: Negative components, an all-zero payment,
            principal above the current balance, a date before the
            liability started, or a date before the latest recorded payment.
    """
    principal_paid = to_decimal(principal, "principal_paid")
    interest_paid = to_decimal(interest, "interest_paid")

    if principal_paid < 0 or interest_paid < 0:
        raise InvalidPaymentError("Payment amounts cannot be negative")
    if principal_paid == 0 and interest_paid == 0:
        raise InvalidPaymentError("Payment must include principal or interest")
    if principal_paid > current_balance:
        raise InvalidPaymentError(
            f"Principal {principal_paid} exceeds current balance {current_balance}"
        )
    if start_date is not None and payment_date < start_date:
        raise InvalidPaymentError(
            f"Payment date {payment_date} is before the liability start date {start_date}"
        )
    if latest_payment_date is not None and payment_date < latest_payment_date:
        raise InvalidPaymentError(
            f"Payment date {payment_date} is before the latest recorded payment "
            f"({latest_payment_date})"
        )
    return principal_paid, interest_paid
