"""
Background snapshot recomputation.

A full recompute replays the whole ledger once per day of history, which can
take a while for old portfolios. SnapshotJob runs it on a daemon thread,
reports progress and can be cancelled. Cancellation is checked once per
computed day; the pass then aborts before anything is written.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Optional

from ledgerfolio.core.exceptions import SnapshotCancelledError
from ledgerfolio.core.performance.snapshot_service import SnapshotResult, compute_snapshots
from ledgerfolio.core.prices import PriceOracle

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class JobProgress:
    days_done: int
    days_total: int

    @property
    def percent(self) -> float:
        if self.days_total == 0:
            return 100.0
        return self.days_done / self.days_total * 100


class SnapshotJob:
    """
    Cancellable snapshot recompute on a background thread.

    Example:
        job = SnapshotJob("Retirement", on_progress=print)
        job.start()
        ...
        job.cancel()
        job.wait()
        job.status  # JobStatus.CANCELLED
    """

    def __init__(
        self,
        portfolio: str,
        from_date: Optional[date] = None,
        oracle: Optional[PriceOracle] = None,
        on_progress: Optional[Callable[[JobProgress], None]] = None,
    ):
        self.portfolio = portfolio
        self.from_date = from_date
        self.oracle = oracle
        self.on_progress = on_progress

        self.status = JobStatus.PENDING
        self.progress = JobProgress(0, 0)
        self.result: Optional[SnapshotResult] = None
        self.error: Optional[BaseException] = None

        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "SnapshotJob":
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("Snapshot job already started")
            self._thread = threading.Thread(
                target=self._run,
                name=f"snapshot-{self.portfolio}",
                daemon=True,
            )
            self.status = JobStatus.RUNNING
        self._thread.start()
        return self

    def cancel(self) -> None:
        """Request cancellation; the running pass stops at the next day."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED)

    def wait(self, timeout: Optional[float] = None) -> JobStatus:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.status

    def run(self) -> JobStatus:
        """Run the job on the calling thread."""
        with self._lock:
            self.status = JobStatus.RUNNING
        self._run()
        return self.status

    def _report(self, days_done: int, days_total: int) -> None:
        self.progress = JobProgress(days_done, days_total)
        if self.on_progress is not None:
            self.on_progress(self.progress)

    def _run(self) -> None:
        try:
            self.result = compute_snapshots(
                self.portfolio,
                self.from_date,
                oracle=self.oracle,
                progress=self._report,
                is_cancelled=self._cancel.is_set,
            )
        except SnapshotCancelledError:
            logger.info("Snapshot job for %s cancelled", self.portfolio)
            self.status = JobStatus.CANCELLED
        except Exception as e:
            logger.error("Snapshot job for %s failed: %s", self.portfolio, e, exc_info=True)
            self.error = e
            self.status = JobStatus.FAILED
        else:
            self.status = JobStatus.COMPLETED
