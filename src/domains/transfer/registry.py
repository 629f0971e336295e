# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory registry of transfer batches.

The registry is the only state shared between a running batch and the
request handlers polling or cancelling it. Every operation runs under one
lock and never awaits, and every JobState leaving the registry is a
snapshot copy.

Example:
    registry = JobRegistry()
    registry.create("t-1", total=3, school_id="school-1")

    registry.request_cancel("t-1")
    state = registry.get("t-1")
    assert state.status is TransferStatus.CANCELLED
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from src.domains.transfer.exceptions import DuplicateTransferError, TransferNotFoundError
from src.domains.transfer.models import JobState, TransferProgress, TransferStatus
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

JobMutator = Callable[[JobState], None]


class JobRegistry:
    """Lock-protected map of transfer id to JobState.

    Instantiate one per application (or per test); nothing here is a
    module-level singleton.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._jobs: dict[str, JobState] = {}
        self._lock = threading.Lock()

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, job_id: str, total: int, school_id: str) -> JobState:
        """Register a new pending batch.

        Args:
            job_id: Transfer identity.
            total: Number of work items in the batch.
            school_id: Owning school.

        Returns:
            Snapshot of the created state.

        Raises:
            DuplicateTransferError: If job_id is already registered.
        """
        with self._lock:
            if job_id in self._jobs:
                raise DuplicateTransferError(f"Transfer {job_id} already exists")
            state = JobState(
                id=job_id,
                school_id=school_id,
                progress=TransferProgress(total=total),
            )
            self._jobs[job_id] = state
            return state.snapshot()

    def get(self, job_id: str) -> JobState | None:
        """Get a snapshot of a batch, or None if unknown."""
        with self._lock:
            state = self._jobs.get(job_id)
            return state.snapshot() if state else None

    def request_cancel(self, job_id: str) -> bool:
        """Flag a batch for cancellation.

        Pending and running batches are marked cancelled immediately so
        pollers see it; the orchestrator stops at its next item boundary.

        Returns:
            True if the batch exists, False otherwise.
        """
        with self._lock:
            state = self._jobs.get(job_id)
            if state is None:
                return False
            state.cancel_requested = True
            if state.status in (TransferStatus.PENDING, TransferStatus.RUNNING):
                state.status = TransferStatus.CANCELLED
            logger.info("Transfer %s marked for cancellation", job_id)
            return True

    def is_cancel_requested(self, job_id: str) -> bool:
        with self._lock:
            state = self._jobs.get(job_id)
            return bool(state and state.cancel_requested)

    def update(self, job_id: str, mutator: JobMutator) -> JobState:
        """Apply a mutation atomically and return the resulting snapshot.

        Raises:
            TransferNotFoundError: If job_id is unknown.
        """
        with self._lock:
            state = self._require(job_id)
            mutator(state)
            return state.snapshot()

    def mark_running(self, job_id: str) -> JobState:
        """Move a pending batch to running and stamp started_at.

        A batch cancelled while initializing keeps its cancelled status.
        """
        with self._lock:
            state = self._require(job_id)
            state.started_at = utc_now()
            if state.status is TransferStatus.PENDING:
                state.status = TransferStatus.RUNNING
            return state.snapshot()

    def finish(self, job_id: str, status: TransferStatus) -> JobState:
        """Finalize a batch.

        The status is only applied when the batch is not already terminal;
        finished_at is always stamped.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        with self._lock:
            state = self._require(job_id)
            if not state.status.is_terminal:
                state.status = status
            state.finished_at = utc_now()
            state.current_item = None
            return state.snapshot()

    def prune(self, finished_before: datetime) -> int:
        """Drop finalized batches that finished before a cutoff.

        Batches still owned by an orchestrator (no finished_at) are kept,
        including ones already marked cancelled.

        Returns:
            Number of batches removed.
        """
        with self._lock:
            expired = [
                job_id
                for job_id, state in self._jobs.items()
                if state.finished_at is not None and state.finished_at < finished_before
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info("Pruned %d finished transfers", len(expired))
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics.

        Returns:
            Dictionary with batch counts per status.
        """
        with self._lock:
            counts = {status.value: 0 for status in TransferStatus}
            for state in self._jobs.values():
                counts[state.status.value] += 1
            return {"total": len(self._jobs), "by_status": counts}

    def _require(self, job_id: str) -> JobState:
        state = self._jobs.get(job_id)
        if state is None:
            raise TransferNotFoundError(f"Transfer {job_id} not found")
        return state
