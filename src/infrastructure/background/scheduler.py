# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic maintenance jobs.

Uses APScheduler's AsyncIOScheduler so jobs run on the application's event
loop, next to the transfer batches they maintain.

Example:
    from src.infrastructure.background.scheduler import get_scheduler

    scheduler = get_scheduler()
    await scheduler.start()

    scheduler.add_interval_task(
        name="Prune Finished Transfers",
        func=prune,
        minutes=10,
    )
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.utils.datetime import format_iso, utc_now

if TYPE_CHECKING:
    from src.core.config.settings import Settings
    from src.domains.transfer.orchestrator import TransferService

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """A periodic job and its run statistics.

    Attributes:
        name: Human-readable task name.
        func: Sync or async callable run on every tick.
        id: Unique task identifier.
        last_run: Last successful run.
        run_count: Total number of successful runs.
        error_count: Number of failed runs.
    """

    name: str
    func: Callable[[], Any]
    id: str = field(default_factory=lambda: str(uuid4()))
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "last_run": format_iso(self.last_run),
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class MaintenanceScheduler:
    """Interval job runner on top of APScheduler.

    Tasks can only be added while the scheduler is running; a failing
    task is counted and logged, and keeps its schedule.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def add_interval_task(
        self,
        name: str,
        func: Callable[[], Any],
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        Args:
            name: Task name.
            func: Callable to run, awaited if it returns a coroutine.
            seconds: Interval seconds.
            minutes: Interval minutes.
            hours: Interval hours.

        Returns:
            Created ScheduledTask.

        Raises:
            RuntimeError: If the scheduler is not running.
        """
        if self._scheduler is None:
            raise RuntimeError("Scheduler is not running")

        task = ScheduledTask(name=name, func=func)
        self._tasks[task.id] = task
        self._scheduler.add_job(
            self._execute_task,
            trigger=IntervalTrigger(seconds=seconds, minutes=minutes, hours=hours),
            args=[task.id],
            id=task.id,
            name=name,
        )

        logger.info(
            "Added interval task: %s (every %dh %dm %ds)",
            name,
            hours,
            minutes,
            seconds,
        )
        return task

    async def _execute_task(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return

        try:
            result = task.func()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, str(e))
            return

        task.last_run = utc_now()
        task.run_count += 1

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._scheduler is not None:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.start()
        logger.info("Maintenance scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler and forget its tasks."""
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._tasks.clear()
        logger.info("Maintenance scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "task_count": len(self._tasks),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }


_scheduler: MaintenanceScheduler | None = None


def get_scheduler() -> MaintenanceScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = MaintenanceScheduler()
    return _scheduler


async def start_scheduler(
    service: "TransferService",
    settings: "Settings",
) -> MaintenanceScheduler:
    """Start the scheduler and register the transfer maintenance jobs.

    Args:
        service: Transfer service whose finished jobs are pruned.
        settings: Application settings.

    Returns:
        Started scheduler instance.
    """
    scheduler = get_scheduler()
    await scheduler.start()

    retention = settings.transfer.job_retention_minutes

    def prune_finished_transfers() -> None:
        removed = service.prune_finished(retention)
        if removed:
            logger.info("Pruned %d finished transfers older than %d minutes", removed, retention)

    scheduler.add_interval_task(
        name="Prune Finished Transfers",
        func=prune_finished_transfers,
        minutes=settings.transfer.prune_interval_minutes,
    )
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
