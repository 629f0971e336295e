# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress reporting for transfer batches.

The reporter formats batch transitions into event payloads and hands them
to the event sink. It holds no batch state. Publishing is best-effort: a
slow or failing sink is logged and skipped, the batch never waits on it
longer than publish_timeout.
"""

import asyncio
import logging
from enum import Enum
from typing import Any

from src.domains.transfer.interfaces import EventSink
from src.domains.transfer.models import (
    ItemResult,
    JobState,
    TransferErrorEntry,
    WorkItem,
)

logger = logging.getLogger(__name__)


class TransferEvent(str, Enum):
    """Event types published for a batch."""

    PROGRESS = "progress"
    STATUS = "status"
    ITEM_START = "item-start"
    ITEM_DONE = "item-done"
    ITEM_FAILED = "item-failed"
    BATCH_DONE = "batch-done"
    BATCH_ERROR = "batch-error"


class TransferPhase(str, Enum):
    """Phases announced through status events."""

    INITIALIZING = "initializing"
    WAITING_LOGIN = "waiting_login"
    RUNNING = "running"


class ProgressReporter:
    """Publishes batch events to an EventSink."""

    def __init__(self, sink: EventSink, publish_timeout: float = 2.0) -> None:
        """Initialize the reporter.

        Args:
            sink: Event sink receiving the events.
            publish_timeout: Seconds one publish may take before it is dropped.
        """
        self._sink = sink
        self._publish_timeout = publish_timeout

    async def status(self, batch_id: str, status: str, message: str) -> None:
        await self._publish(
            batch_id,
            TransferEvent.STATUS,
            {"status": status, "message": message},
        )

    async def progress(self, state: JobState) -> None:
        await self._publish(state.id, TransferEvent.PROGRESS, state.progress.to_dict())

    async def item_started(self, batch_id: str, item: WorkItem, index: int, total: int) -> None:
        await self._publish(
            batch_id,
            TransferEvent.ITEM_START,
            {
                "item_id": item.item_id,
                "kind": item.kind,
                "index": index,
                "total": total,
                "label": item.label,
                "student_nos": [r.student_no for r in item.records],
            },
        )

    async def item_finished(self, batch_id: str, result: ItemResult) -> None:
        """Publish item-done or item-failed for a processed item."""
        item = result.item
        payload: dict[str, Any] = {
            "item_id": item.item_id,
            "kind": item.kind,
            "label": item.label,
            "rejected_members": [
                entry.to_dict() for entry in result.member_failures
            ],
        }
        if result.success:
            payload["success"] = True
            await self._publish(batch_id, TransferEvent.ITEM_DONE, payload)
            return

        entry = result.error_entry()
        payload.update(entry.to_dict() if entry else {})
        payload["success"] = False
        await self._publish(batch_id, TransferEvent.ITEM_FAILED, payload)

    async def batch_done(self, state: JobState, duration_ms: int) -> None:
        await self._publish(
            state.id,
            TransferEvent.BATCH_DONE,
            {
                "status": state.status.value,
                "total": state.progress.total,
                "successful": state.progress.completed,
                "failed": state.progress.failed,
                "errors": [error.to_dict() for error in state.errors],
                "duration_ms": duration_ms,
            },
        )

    async def batch_error(self, state: JobState, message: str, duration_ms: int) -> None:
        await self._publish(
            state.id,
            TransferEvent.BATCH_ERROR,
            {
                "status": state.status.value,
                "error": message,
                "progress": state.progress.to_dict(),
                "duration_ms": duration_ms,
            },
        )

    async def _publish(
        self,
        batch_id: str,
        event: TransferEvent,
        payload: dict[str, Any],
    ) -> None:
        try:
            await asyncio.wait_for(
                self._sink.publish(batch_id, event.value, payload),
                timeout=self._publish_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Dropped %s event for transfer %s: sink timed out after %.1fs",
                event.value,
                batch_id,
                self._publish_timeout,
            )
        except Exception as e:
            logger.warning(
                "Dropped %s event for transfer %s: %s",
                event.value,
                batch_id,
                str(e),
            )


def failure_summary(errors: list[TransferErrorEntry]) -> str:
    """Short human-readable list of failed item ids for log lines."""
    return ", ".join(sorted({error.item_id for error in errors})) or "-"
