# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background job infrastructure.

Periodic maintenance (pruning of finished transfers) runs on an
APScheduler AsyncIOScheduler inside the API process.

Quick Start:
    from src.infrastructure.background import start_scheduler, stop_scheduler

    await start_scheduler(service, settings)
    ...
    await stop_scheduler()
"""

from src.infrastructure.background.scheduler import (
    MaintenanceScheduler,
    ScheduledTask,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "MaintenanceScheduler",
    "ScheduledTask",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
