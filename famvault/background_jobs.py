"""
Periodic maintenance for famvault

Expired permissions are deactivated and lapsed pending requests are
auto-rejected by a sweep that runs on the application's event loop.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from famvault.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    """A task plus its schedule and run statistics"""
    name: str
    interval_seconds: int
    task: Callable
    description: str
    enabled: bool = True
    last_run: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class BackgroundJobManager:
    """
    Schedules PeriodicJobs as asyncio tasks.

    Coroutine tasks are awaited directly; plain functions go through
    asyncio.to_thread since every sweep touches SQLite.

    Usage:
        manager = BackgroundJobManager()
        register_expiry_jobs(manager, service, interval_seconds=60)
        await manager.start()
        ...
        await manager.stop()
    """

    def __init__(self):
        self.jobs: Dict[str, PeriodicJob] = {}
        self.running = False
        self._tasks: List[asyncio.Task] = []

    def register_job(
        self,
        name: str,
        interval_seconds: int,
        task: Callable,
        description: str,
        enabled: bool = True,
    ) -> PeriodicJob:
        if name in self.jobs:
            logger.warning(f"Replacing background job '{name}'")

        job = PeriodicJob(name, interval_seconds, task, description, enabled=enabled)
        self.jobs[name] = job
        logger.info(f"Registered background job: {name} (every {interval_seconds}s)")
        return job

    def _enabled(self) -> List[PeriodicJob]:
        return [job for job in self.jobs.values() if job.enabled]

    async def run_job(self, job: PeriodicJob) -> None:
        """Run a job once; a failure bumps error_count and is logged, never raised"""
        logger.debug(f"Running background job: {job.name}")
        try:
            if inspect.iscoroutinefunction(job.task):
                await job.task()
            else:
                await asyncio.to_thread(job.task)
        except Exception as e:
            job.error_count += 1
            logger.error(f"Background job '{job.name}' failed: {e}", exc_info=True)
            return

        job.last_run = utcnow()
        job.run_count += 1
        logger.debug(f"Background job {job.name} finished (run #{job.run_count})")

    async def _schedule(self, job: PeriodicJob) -> None:
        # Runs immediately, then once per interval; a disabled job keeps its slot
        while self.running:
            if job.enabled:
                await self.run_job(job)
            await asyncio.sleep(job.interval_seconds)

    async def start(self) -> None:
        if self.running:
            logger.warning("Background jobs already running")
            return

        self.running = True
        enabled = self._enabled()
        self._tasks = [asyncio.create_task(self._schedule(job), name=f"job:{job.name}") for job in enabled]
        logger.info(f"Started {len(enabled)} background job(s)")

    async def stop(self) -> None:
        if not self.running:
            return

        self.running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Background jobs stopped")

    def get_status(self) -> Dict[str, Any]:
        """Scheduler state plus one snapshot per registered job"""
        return {
            "running": self.running,
            "total_jobs": len(self.jobs),
            "enabled_jobs": len(self._enabled()),
            "jobs": [job.snapshot() for job in self.jobs.values()],
        }

    def _set_enabled(self, name: str, enabled: bool) -> None:
        job = self.jobs.get(name)
        if job is None:
            logger.warning(f"Unknown background job: {name}")
            return
        job.enabled = enabled
        logger.info(f"{'Enabled' if enabled else 'Disabled'} background job: {name}")

    def enable_job(self, name: str) -> None:
        self._set_enabled(name, True)

    def disable_job(self, name: str) -> None:
        self._set_enabled(name, False)


# ============================================================================
# EXPIRY SWEEP
# ============================================================================

def make_expiry_task(service) -> Callable[[], Dict[str, int]]:
    """
    Wrap FamilyAccessService.sweep_expired as a synchronous job task.

    A failed sweep raises out of the task so the manager records it.
    """
    def run_expiry_sweep() -> Dict[str, int]:
        counts = service.sweep_expired().unwrap()
        if counts["permissions_expired"] or counts["requests_expired"]:
            logger.info(
                f"Expiry sweep: {counts['permissions_expired']} permission(s), "
                f"{counts['requests_expired']} pending request(s)"
            )
        return counts

    return run_expiry_sweep


def register_expiry_jobs(manager: BackgroundJobManager, service, interval_seconds: int = 60) -> PeriodicJob:
    return manager.register_job(
        name="expiry_sweep",
        interval_seconds=interval_seconds,
        task=make_expiry_task(service),
        description="Deactivate expired permissions and auto-reject lapsed pending requests",
    )
