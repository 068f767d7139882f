"""
Performance snapshot service.

Computes one PerformanceSnapshot per (portfolio, date) by replaying the lot
ledger day by day and pricing each day's holdings with the point-in-time
price lookup. Snapshots carry the day change, cumulative return and a
time-weighted return chained from daily sub-period returns with the day's
net contribution removed.

A recompute only covers the affected range: snapshots before it seed the
previous value and TWR, snapshots from it onward are replaced. Rows are
computed in memory and written in the same database transaction, so a
failed or cancelled pass leaves the stored snapshots unchanged.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from sqlmodel import Session, select

from ledgerfolio.config import config
from ledgerfolio.core.exceptions import SnapshotCancelledError
from ledgerfolio.core.performance.returns import chain_return, day_change, period_return
from ledgerfolio.core.portfolio.cash import net_contribution_by_date
from ledgerfolio.core.portfolio.lots import LotBook
from ledgerfolio.core.portfolio.manager import load_events, resolve_portfolio
from ledgerfolio.core.prices import PriceOracle, StoredPriceOracle, descending, price_at_date
from ledgerfolio.core.types import HUNDRED, ZERO, CostBasisMethod, LedgerEvent
from ledgerfolio.db.database import get_session
from ledgerfolio.db.portfolio_models import Holding, PerformanceSnapshot, Transaction

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]

# Chart aggregation thresholds
DAILY_MAX_DAYS = 90
DAILY_MAX_POINTS = 90
WEEKLY_MAX_DAYS = 365


class SnapshotTrigger(str, Enum):
    """Ledger changes that invalidate snapshots."""

    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_MODIFIED = "transaction_modified"
    TRANSACTION_DELETED = "transaction_deleted"
    MANUAL_REFRESH = "manual_refresh"


@dataclass
class SnapshotResult:
    """Outcome of a compute pass."""

    portfolio_id: str
    start_date: Optional[date]
    end_date: Optional[date]
    snapshots_written: int
    snapshots_deleted: int
    has_interpolated_prices: bool = False
    missing_prices: tuple[str, ...] = ()


def _days(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def compute_snapshot_rows(
    portfolio_id: str,
    events: list[LedgerEvent],
    oracle: PriceOracle,
    start: date,
    end: date,
    ownership: Optional[dict[str, Decimal]] = None,
    previous: Optional[PerformanceSnapshot] = None,
    base_value=None,
    method: CostBasisMethod = CostBasisMethod.FIFO,
    threshold_days: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
    is_cancelled: Optional[CancelCheck] = None,
) -> tuple[list[PerformanceSnapshot], set[str]]:
    """
    Compute snapshot rows for ``start``..``end`` without touching the store.

    Args:
        events: Full ledger of the portfolio in replay order.
        ownership: Ownership percentage per asset id (default 100).
        previous: Last snapshot before ``start``; seeds value and TWR.
        base_value: Value of the portfolio's first snapshot, for the
            cumulative return. None when ``start`` begins the history.

    Returns:
        (rows, asset ids that had no price at all on some day)
    """
    ownership = ownership or {}
    if threshold_days is None:
        threshold_days = config.interpolation_threshold_days

    # Replay everything before the range
    books: dict[str, LotBook] = {}
    pending = []
    for event in events:
        if event.date < start:
            book = books.setdefault(event.asset_id, LotBook(event.asset_id, method))
            book.apply(event)
        elif event.date <= end:
            pending.append(event)

    flows = net_contribution_by_date(pending)
    asset_ids = {event.asset_id for event in events}
    histories = {asset_id: descending(oracle.price_history(asset_id)) for asset_id in asset_ids}
    current_prices = {asset_id: oracle.current_price(asset_id) for asset_id in asset_ids}

    prev_value = previous.total_value if previous is not None else None
    prev_twr = previous.twr_return if previous is not None else ZERO

    rows: list[PerformanceSnapshot] = []
    missing: set[str] = set()
    total_days = (end - start).days + 1
    index = 0

    for done, day in enumerate(_days(start, end), start=1):
        if is_cancelled is not None and is_cancelled():
            raise SnapshotCancelledError(portfolio_id)

        while index < len(pending) and pending[index].date == day:
            event = pending[index]
            books.setdefault(event.asset_id, LotBook(event.asset_id, method)).apply(event)
            index += 1

        total_value = ZERO
        total_cost = ZERO
        holding_count = 0
        interpolated = False
        for asset_id, book in books.items():
            quantity = book.quantity
            if quantity <= 0:
                continue
            holding_count += 1
            lookup = price_at_date(
                histories[asset_id], day, current_prices[asset_id], threshold_days
            )
            if lookup.is_missing and asset_id not in missing:
                missing.add(asset_id)
                logger.warning("No price for asset %s on %s; valued at zero", asset_id, day)
            interpolated = interpolated or lookup.is_interpolated
            share = ownership.get(asset_id, HUNDRED) / HUNDRED
            total_value += quantity * lookup.price * share
            total_cost += book.cost_basis

        contribution = flows.get(day, ZERO)
        if prev_value is None:
            twr = ZERO
        else:
            twr = chain_return(prev_twr, period_return(total_value, prev_value, contribution))

        if holding_count > 0:
            if base_value is None:
                base_value = total_value
            change, change_percent = day_change(total_value, prev_value)
            rows.append(
                PerformanceSnapshot(
                    portfolio_id=portfolio_id,
                    snapshot_date=day,
                    total_value=total_value,
                    total_cost=total_cost,
                    day_change=change,
                    day_change_percent=change_percent,
                    cumulative_return=total_value - base_value,
                    twr_return=twr,
                    net_contribution=contribution,
                    holding_count=holding_count,
                    has_interpolated_prices=interpolated,
                )
            )

        if prev_value is not None or holding_count > 0:
            prev_value = total_value
            prev_twr = twr

        if progress is not None:
            progress(done, total_days)

    return rows, missing


def _ownership(session: Session, portfolio_id: str) -> dict[str, Decimal]:
    holdings = session.exec(select(Holding).where(Holding.portfolio_id == portfolio_id)).all()
    return {h.asset_id: h.ownership_percentage for h in holdings}


def compute_snapshots(
    portfolio: str,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    oracle: Optional[PriceOracle] = None,
    progress: Optional[ProgressCallback] = None,
    is_cancelled: Optional[CancelCheck] = None,
) -> SnapshotResult:
    """
    Recompute snapshots of a portfolio from ``from_date`` onward.

    Args:
        portfolio: Portfolio id or name.
        from_date: First affected date. None recomputes the whole history.
        to_date: Last date to compute (default today).
        oracle: Price source (default: the stored prices).
        progress: Called as progress(days_done, days_total).
        is_cancelled: Polled once per day; a True result aborts the pass
            with SnapshotCancelledError and nothing is written.
    """
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        portfolio_id = portfolio_row.id
        events = load_events(session, portfolio_id)
        end = to_date or date.today()

        if not events:
            deleted = delete_snapshots_in_session(session, portfolio_id, from_date)
            return SnapshotResult(portfolio_id, None, None, 0, deleted)

        first_date = events[0].date
        start = max(from_date, first_date) if from_date else first_date
        delete_from = min(from_date, start) if from_date else None

        if end < start:
            deleted = delete_snapshots_in_session(session, portfolio_id, delete_from)
            return SnapshotResult(portfolio_id, start, end, 0, deleted)

        previous = session.exec(
            select(PerformanceSnapshot)
            .where(PerformanceSnapshot.portfolio_id == portfolio_id)
            .where(PerformanceSnapshot.snapshot_date < start)
            .order_by(PerformanceSnapshot.snapshot_date.desc())
        ).first()

        # Days without holdings have no row, so the seed may predate start by
        # more than a day. Replay the gap so a liquidation is valued at zero.
        if previous is not None:
            replay_start = previous.snapshot_date + timedelta(days=1)
        else:
            replay_start = first_date
        if delete_from is not None:
            delete_from = min(delete_from, replay_start)

        first_snapshot = session.exec(
            select(PerformanceSnapshot)
            .where(PerformanceSnapshot.portfolio_id == portfolio_id)
            .where(PerformanceSnapshot.snapshot_date < replay_start)
            .order_by(PerformanceSnapshot.snapshot_date.asc())
        ).first()

        rows, missing = compute_snapshot_rows(
            portfolio_id,
            events,
            oracle or StoredPriceOracle(session),
            replay_start,
            end,
            ownership=_ownership(session, portfolio_id),
            previous=previous,
            base_value=first_snapshot.total_value if first_snapshot else None,
            method=CostBasisMethod.parse(config.cost_basis_method),
            progress=progress,
            is_cancelled=is_cancelled,
        )

        deleted = delete_snapshots_in_session(session, portfolio_id, delete_from)
        for row in rows:
            session.add(row)
        session.flush()
        for row in rows:
            session.expunge(row)

        logger.info(
            "Computed %d snapshots for portfolio %s (%s to %s)",
            len(rows),
            portfolio_row.name,
            start,
            end,
        )
        return SnapshotResult(
            portfolio_id=portfolio_id,
            start_date=start,
            end_date=end,
            snapshots_written=len(rows),
            snapshots_deleted=deleted,
            has_interpolated_prices=any(r.has_interpolated_prices for r in rows),
            missing_prices=tuple(sorted(missing)),
        )


def recompute_all(
    portfolio: str,
    oracle: Optional[PriceOracle] = None,
    progress: Optional[ProgressCallback] = None,
    is_cancelled: Optional[CancelCheck] = None,
) -> SnapshotResult:
    """Rebuild the full snapshot history of a portfolio."""
    return compute_snapshots(
        portfolio, None, oracle=oracle, progress=progress, is_cancelled=is_cancelled
    )


def delete_snapshots_in_session(
    session: Session, portfolio_id: str, from_date: Optional[date] = None
) -> int:
    statement = select(PerformanceSnapshot).where(
        PerformanceSnapshot.portfolio_id == portfolio_id
    )
    if from_date is not None:
        statement = statement.where(PerformanceSnapshot.snapshot_date >= from_date)
    stale = session.exec(statement).all()
    for snapshot in stale:
        session.delete(snapshot)
    # Deletes must reach the database before re-inserting the same dates
    session.flush()
    return len(stale)


def delete_snapshots(portfolio: str, from_date: Optional[date] = None) -> int:
    """Delete a portfolio's snapshots dated on or after ``from_date`` (all if None)."""
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        deleted = delete_snapshots_in_session(session, portfolio_row.id, from_date)
        logger.info("Deleted %d snapshots for portfolio %s", deleted, portfolio_row.name)
        return deleted


def handle_snapshot_trigger(
    portfolio: str,
    trigger: SnapshotTrigger,
    transaction: Optional[LedgerEvent] = None,
    previous: Optional[LedgerEvent] = None,
    oracle: Optional[PriceOracle] = None,
) -> SnapshotResult:
    """
    Recompute the snapshots a ledger change invalidated.

    - added / deleted: from the transaction date
    - modified: from the earlier of the old and new dates
    - manual refresh: the whole history
    """
    trigger = SnapshotTrigger(trigger)
    if trigger == SnapshotTrigger.MANUAL_REFRESH:
        return recompute_all(portfolio, oracle=oracle)

    if transaction is None:
        raise ValueError(f"{trigger.value} needs the affected transaction")

    from_date = transaction.date
    if trigger == SnapshotTrigger.TRANSACTION_MODIFIED and previous is not None:
        from_date = min(previous.date, transaction.date)

    logger.info("Snapshot trigger %s for %s from %s", trigger.value, portfolio, from_date)
    return compute_snapshots(portfolio, from_date, oracle=oracle)


def get_snapshots(
    portfolio: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[PerformanceSnapshot]:
    """Stored snapshots in date order, optionally limited to a range."""
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        statement = select(PerformanceSnapshot).where(
            PerformanceSnapshot.portfolio_id == portfolio_row.id
        )
        if start_date is not None:
            statement = statement.where(PerformanceSnapshot.snapshot_date >= start_date)
        if end_date is not None:
            statement = statement.where(PerformanceSnapshot.snapshot_date <= end_date)
        snapshots = list(
            session.exec(statement.order_by(PerformanceSnapshot.snapshot_date)).all()
        )
        for snapshot in snapshots:
            session.expunge(snapshot)
        return snapshots


def get_latest_snapshot(portfolio: str) -> Optional[PerformanceSnapshot]:
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        snapshot = session.exec(
            select(PerformanceSnapshot)
            .where(PerformanceSnapshot.portfolio_id == portfolio_row.id)
            .order_by(PerformanceSnapshot.snapshot_date.desc())
        ).first()
        if snapshot is not None:
            session.expunge(snapshot)
        return snapshot


def needs_computation(portfolio: str, today: Optional[date] = None) -> bool:
    """
    Check if snapshots should be recomputed.

    True when the portfolio has transactions and either no snapshot or a
    latest snapshot more than one day old.
    """
    today = today or date.today()
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        has_transactions = session.exec(
            select(Transaction.id).where(Transaction.portfolio_id == portfolio_row.id)
        ).first() is not None
        if not has_transactions:
            return False

        latest = session.exec(
            select(PerformanceSnapshot.snapshot_date)
            .where(PerformanceSnapshot.portfolio_id == portfolio_row.id)
            .order_by(PerformanceSnapshot.snapshot_date.desc())
        ).first()

    if latest is None:
        logger.info("No snapshots yet for %s", portfolio)
        return True
    return (today - latest).days > 1


def aggregation_level(start: date, end: date, points: int) -> str:
    """daily, weekly or monthly, depending on the window length."""
    span = (end - start).days
    if span <= DAILY_MAX_DAYS or points <= DAILY_MAX_POINTS:
        return "daily"
    if span <= WEEKLY_MAX_DAYS:
        return "weekly"
    return "monthly"


def aggregate_snapshots(
    snapshots: list[PerformanceSnapshot], level: str
) -> list[PerformanceSnapshot]:
    """Keep the last snapshot of each week (7-day bucket) or calendar month."""
    if level == "daily" or not snapshots:
        return list(snapshots)

    first = snapshots[0].snapshot_date
    if level == "weekly":
        bucket = lambda s: (s.snapshot_date - first).days // 7  # noqa: E731
    elif level == "monthly":
        bucket = lambda s: (s.snapshot_date.year, s.snapshot_date.month)  # noqa: E731
    else:
        raise ValueError(f"Unknown aggregation level: {level}")

    last_by_bucket: dict[object, PerformanceSnapshot] = {}
    for snapshot in snapshots:
        last_by_bucket[bucket(snapshot)] = snapshot
    return sorted(last_by_bucket.values(), key=lambda s: s.snapshot_date)


def get_aggregated_snapshots(
    portfolio: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[PerformanceSnapshot]:
    """Snapshots for charting, thinned to daily, weekly or monthly points."""
    snapshots = get_snapshots(portfolio, start_date, end_date)
    if not snapshots:
        return []
    start = start_date or snapshots[0].snapshot_date
    end = end_date or snapshots[-1].snapshot_date
    level = aggregation_level(start, end, len(snapshots))
    logger.debug("Aggregating %d snapshots %s", len(snapshots), level)
    return aggregate_snapshots(snapshots, level)
