"""Interval scheduler for the recurring jobs."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from .utils.config import get_config
from .utils.logger import LoggerMixin
from .utils.metrics import job_errors
from .utils.timeutil import to_iso, utc_now


@dataclass
class ScheduledJob:
    """A job run every ``interval`` seconds, plus its last outcome."""

    name: str
    interval: int
    func: Callable[[], Awaitable[Any]]
    task: Optional[asyncio.Task] = None
    runs: int = 0
    failures: int = 0
    last_run_at: Optional[str] = None
    last_error: Optional[str] = None

    def status(self) -> Dict[str, Any]:
        return {
            "interval": self.interval,
            "running": self.task is not None and not self.task.done(),
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at,
            "last_error": self.last_error,
        }


class JobScheduler(LoggerMixin):
    """
    Runs the rejected reviewer, the mint-monitor cron and (optionally) the
    backcheck on fixed intervals inside the event loop.
    """

    def __init__(self, service):
        self.service = service
        self.config = get_config()
        self.jobs: Dict[str, ScheduledJob] = {}
        self.running = False

        self.add_job("rejected_reviewer", self.config.reviewer_interval_seconds, service.reviewer.review)
        self.add_job("mint_monitor", self.config.mint_cron_interval_seconds, service.mint_monitor.run_cron)
        if self.config.backcheck_interval_seconds > 0:
            self.add_job("backcheck", self.config.backcheck_interval_seconds, service.backcheck.run)

    def add_job(self, name: str, interval: int, func: Callable[[], Awaitable[Any]]) -> None:
        if self.running:
            raise RuntimeError("Cannot add jobs while the scheduler is running")
        self.jobs[name] = ScheduledJob(name=name, interval=interval, func=func)

    async def start(self) -> None:
        """Start one loop per job."""
        if self.running:
            self.logger.warning("Scheduler already running")
            return

        self.running = True
        for job in self.jobs.values():
            job.task = asyncio.create_task(self._job_loop(job))
            self.logger.info(f"Scheduled {job.name} every {job.interval}s")

    async def stop(self) -> None:
        """Cancel every loop and wait for it to finish."""
        self.running = False

        for job in self.jobs.values():
            if job.task:
                job.task.cancel()
                try:
                    await job.task
                except asyncio.CancelledError:
                    pass
                job.task = None

        self.logger.info("Scheduler stopped")

    async def run_once(self, name: str) -> Any:
        """Run a job immediately, recording its outcome."""
        job = self.jobs[name]
        try:
            result = await job.func()
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            job_errors.labels(job=name).inc()
            raise
        finally:
            job.runs += 1
            job.last_run_at = to_iso(utc_now())

        job.last_error = None
        return result

    async def _job_loop(self, job: ScheduledJob) -> None:
        while self.running:
            try:
                await self.run_once(job.name)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in {job.name} job: {e}", exc_info=True)

            try:
                await asyncio.sleep(job.interval)
            except asyncio.CancelledError:
                break

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "jobs": {name: job.status() for name, job in self.jobs.items()},
        }
