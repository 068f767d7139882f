"""
Cash ledger.

Signed cash effect of each transaction and the external flow (net
contribution) used to strip deposits and withdrawals out of time-weighted
returns.

Cash impact by type:
    buy, espp_purchase        -(quantity * price + fees)
    sell                      +(quantity * price - fees)
    dividend, interest        +total_amount
    fee, tax                  -total_amount
    everything else           0

Reinvestments are cash-neutral: the dividend and the purchase cancel out.
RSU vests are compensation in shares, so no cash moves either.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from ledgerfolio.core.types import ZERO, LedgerEvent, TransactionType

_CASH_OUT_PURCHASES = frozenset({TransactionType.BUY, TransactionType.ESPP_PURCHASE})
_CASH_INCOME = frozenset({TransactionType.DIVIDEND, TransactionType.INTEREST})
_CASH_CHARGES = frozenset({TransactionType.FEE, TransactionType.TAX})

_CONTRIBUTIONS = frozenset(
    {
        TransactionType.BUY,
        TransactionType.ESPP_PURCHASE,
        TransactionType.RSU_VEST,
        TransactionType.TRANSFER_IN,
    }
)
_WITHDRAWALS = frozenset({TransactionType.SELL, TransactionType.TRANSFER_OUT})


def cash_impact(event: LedgerEvent) -> Decimal:
    """Signed cash effect of a transaction (positive = cash in)."""
    if event.type in _CASH_OUT_PURCHASES:
        return -(event.quantity * event.price + event.fees)
    if event.type == TransactionType.SELL:
        return event.quantity * event.price - event.fees
    if event.type in _CASH_INCOME:
        return event.total_amount
    if event.type in _CASH_CHARGES:
        return -event.total_amount
    return ZERO


def affects_cash(event: LedgerEvent) -> bool:
    return cash_impact(event) != 0


def cash_balance_at_date(events: Iterable[LedgerEvent], as_of: date) -> Decimal:
    """Running cash balance from every event dated on or before ``as_of``."""
    return sum((cash_impact(e) for e in events if e.date <= as_of), ZERO)


def net_contribution(event: LedgerEvent) -> Decimal:
    """
    External flow of a transaction for TWR.

    Positions entering the portfolio count at quantity * price, positions
    leaving count negative. Reinvestments contribute nothing.
    """
    if event.type in _CONTRIBUTIONS:
        return event.quantity * event.price
    if event.type in _WITHDRAWALS:
        return -(event.quantity * event.price)
    return ZERO


def net_contribution_by_date(events: Iterable[LedgerEvent]) -> dict[date, Decimal]:
    """Sum of net contributions per transaction date."""
    flows: dict[date, Decimal] = {}
    for event in events:
        amount = net_contribution(event)
        if amount != 0:
            flows[event.date] = flows.get(event.date, ZERO) + amount
    return flows
