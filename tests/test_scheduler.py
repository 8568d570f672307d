"""Tests for the interval job scheduler."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from whalewatch.scheduler import JobScheduler


@pytest.fixture
def service():
    """Create mock service with async job entry points."""
    mock = MagicMock()
    mock.reviewer.review = AsyncMock(return_value="reviewed")
    mock.mint_monitor.run_cron = AsyncMock(return_value={"success": True})
    mock.backcheck.run = AsyncMock(return_value={"processed": 0})
    return mock


class TestJobScheduler:
    """Test job registration, runs and status."""

    def test_default_jobs(self, service):
        """Backcheck is only scheduled when it has an interval."""
        scheduler = JobScheduler(service)

        assert set(scheduler.jobs) == {"rejected_reviewer", "mint_monitor"}
        assert scheduler.jobs["rejected_reviewer"].interval == 180

    def test_backcheck_enabled(self, service, monkeypatch):
        """A positive backcheck interval registers the job."""
        from whalewatch.utils.config import load_config

        monkeypatch.setenv("BACKCHECK_INTERVAL_SECONDS", "3600")
        load_config()

        assert "backcheck" in JobScheduler(service).jobs

    @pytest.mark.asyncio
    async def test_run_once_records_success(self, service):
        """A successful run updates counters and returns the result."""
        scheduler = JobScheduler(service)

        assert await scheduler.run_once("rejected_reviewer") == "reviewed"

        status = scheduler.get_status()["jobs"]["rejected_reviewer"]
        assert status["runs"] == 1
        assert status["failures"] == 0
        assert status["last_run_at"] is not None

    @pytest.mark.asyncio
    async def test_run_once_records_failure(self, service):
        """Failures are recorded and re-raised."""
        service.mint_monitor.run_cron.side_effect = RuntimeError("helius down")
        scheduler = JobScheduler(service)

        with pytest.raises(RuntimeError):
            await scheduler.run_once("mint_monitor")

        status = scheduler.jobs["mint_monitor"].status()
        assert status["failures"] == 1
        assert status["last_error"] == "helius down"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, service):
        """Starting runs each job immediately; stopping cancels the loops."""
        scheduler = JobScheduler(service)

        await scheduler.start()
        await asyncio.sleep(0.05)

        assert scheduler.get_status()["running"] is True
        service.reviewer.review.assert_awaited()
        service.mint_monitor.run_cron.assert_awaited()

        with pytest.raises(RuntimeError):
            scheduler.add_job("extra", 10, service.backcheck.run)

        await scheduler.stop()

        assert scheduler.running is False
        assert all(job.task is None for job in scheduler.jobs.values())

    @pytest.mark.asyncio
    async def test_loop_survives_errors(self, service):
        """A failing job does not stop the scheduler."""
        service.reviewer.review.side_effect = RuntimeError("boom")
        scheduler = JobScheduler(service)

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.jobs["rejected_reviewer"].failures == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
