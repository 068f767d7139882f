"""Tests for background snapshot jobs."""

import threading
from datetime import date, timedelta
from unittest.mock import patch

import pytest

from ledgerfolio.core.performance.jobs import JobProgress, JobStatus, SnapshotJob
from ledgerfolio.core.performance.snapshot_service import get_snapshots
from ledgerfolio.core.prices import StaticPriceOracle

START = date.today() - timedelta(days=9)


@pytest.fixture
def funded(manager, portfolio):
    manager.add_transaction("Retirement", "VTI", "buy", START, "10", "200")
    return portfolio


@pytest.fixture
def oracle(manager, funded):
    return StaticPriceOracle(current={manager.get_asset("VTI").id: "210"})


class TestJobProgress:
    def test_percent(self):
        assert JobProgress(5, 10).percent == 50.0

    def test_empty_range_is_done(self):
        assert JobProgress(0, 0).percent == 100.0


class TestSnapshotJob:
    def test_run_synchronously(self, funded, oracle):
        updates = []
        job = SnapshotJob("Retirement", oracle=oracle, on_progress=updates.append)

        status = job.run()

        assert status == JobStatus.COMPLETED
        assert job.done
        assert job.result.snapshots_written == 10
        assert updates[-1] == JobProgress(10, 10)
        assert len(get_snapshots("Retirement")) == 10

    def test_background_thread(self, funded, oracle):
        job = SnapshotJob("Retirement", oracle=oracle).start()

        assert job.wait(timeout=30) == JobStatus.COMPLETED
        assert job.result is not None

    def test_cannot_start_twice(self, funded, oracle):
        job = SnapshotJob("Retirement", oracle=oracle).start()
        try:
            with pytest.raises(RuntimeError):
                job.start()
        finally:
            job.wait(timeout=30)

    def test_cancel_before_work_writes_nothing(self, funded, oracle):
        job = SnapshotJob("Retirement", oracle=oracle)
        job.cancel()

        status = job.run()

        assert status == JobStatus.CANCELLED
        assert job.cancelled
        assert job.result is None
        assert get_snapshots("Retirement") == []

    def test_cancel_mid_run(self, funded, oracle):
        reached = threading.Event()
        resume = threading.Event()

        def on_progress(progress: JobProgress) -> None:
            if progress.days_done == 3:
                reached.set()
                resume.wait(timeout=10)

        job = SnapshotJob("Retirement", oracle=oracle, on_progress=on_progress).start()
        assert reached.wait(timeout=10)
        job.cancel()
        resume.set()

        assert job.wait(timeout=30) == JobStatus.CANCELLED
        assert get_snapshots("Retirement") == []

    def test_failure_is_captured(self, funded):
        with patch(
            "ledgerfolio.core.performance.jobs.compute_snapshots",
            side_effect=RuntimeError("boom"),
        ):
            job = SnapshotJob("Retirement")
            status = job.run()

        assert status == JobStatus.FAILED
        assert isinstance(job.error, RuntimeError)
