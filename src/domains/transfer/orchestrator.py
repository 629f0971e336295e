# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Batch orchestration for MEBBIS session transfers.

This module provides:
- BatchOrchestrator: runs one batch from driver start-up to finalization
- TransferService: the entry point used by the API (start, status, cancel)

Lifecycle of a batch:

    pending --(driver ready)--> running --> completed | cancelled | error
    pending --(driver start-up fails)--> error

Items run strictly one after another on the batch's own driver. Cancellation
is checked between items only; an item in flight always finishes and is
counted. The driver is shut down on every exit path.
"""

import asyncio
import logging
import time
from typing import Any
from uuid import uuid4

from src.domains.transfer.exceptions import (
    AutomationInitializationError,
    AutomationUnavailableError,
    DriverNotConfiguredError,
    DuplicateTransferError,
    NoRecordsSelectedError,
    TransferCapacityError,
    TransferNotFoundError,
)
from src.domains.transfer.interfaces import (
    AutomationDriver,
    DriverFactory,
    RecordSource,
    TransferPersistence,
)
from src.domains.transfer.mapper import SessionMapper
from src.domains.transfer.models import (
    CurrentItem,
    ItemResult,
    JobState,
    SchoolContext,
    TransferFilters,
    TransferStatus,
    WorkItem,
)
from src.domains.transfer.processor import ItemProcessor
from src.domains.transfer.registry import JobRegistry
from src.domains.transfer.reporter import ProgressReporter, TransferPhase, failure_summary
from src.domains.transfer.work_items import build_work_items
from src.utils.datetime import minutes_ago
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Runs one transfer batch.

    One orchestrator owns one JobState (through the registry) and one
    automation driver. It is not reusable.
    """

    def __init__(
        self,
        job_id: str,
        school: SchoolContext,
        items: list[WorkItem],
        registry: JobRegistry,
        driver_factory: DriverFactory,
        persistence: TransferPersistence,
        reporter: ProgressReporter,
        mapper: SessionMapper | None = None,
        item_timeout: float | None = None,
    ) -> None:
        self.job_id = job_id
        self.school = school
        self.items = items
        self.registry = registry
        self.driver_factory = driver_factory
        self.persistence = persistence
        self.reporter = reporter
        self.mapper = mapper or SessionMapper()
        self.item_timeout = item_timeout
        self._driver: AutomationDriver | None = None

    async def run(self) -> JobState:
        """Run the batch to a terminal state.

        Returns:
            Final snapshot of the batch.
        """
        bind_context(transfer_id=self.job_id, school_id=self.school.school_id)
        started = time.monotonic()
        logger.info(
            "Starting transfer %s with %d items",
            self.job_id,
            len(self.items),
        )

        try:
            processor = await self._start_driver()
            running = self.registry.mark_running(self.job_id)
            await self.reporter.status(
                self.job_id,
                TransferPhase.RUNNING.value,
                "Transferring sessions to MEBBIS",
            )
            await self.reporter.progress(running)

            await self._run_items(processor)

            final_status = (
                TransferStatus.CANCELLED
                if self.registry.is_cancel_requested(self.job_id)
                else TransferStatus.COMPLETED
            )
            final = self.registry.finish(self.job_id, final_status)
            duration_ms = _elapsed_ms(started)
            await self.reporter.batch_done(final, duration_ms)
            self._log_summary(final, duration_ms)
            return final

        except asyncio.CancelledError:
            final = self.registry.finish(self.job_id, TransferStatus.ERROR)
            logger.warning("Transfer %s task was cancelled", self.job_id)
            await self.reporter.batch_error(
                final,
                "Transfer stopped by server shutdown",
                _elapsed_ms(started),
            )
            raise

        except Exception as e:
            logger.error("Transfer %s failed: %s", self.job_id, str(e), exc_info=True)
            final = self.registry.finish(self.job_id, TransferStatus.ERROR)
            await self.reporter.batch_error(final, str(e), _elapsed_ms(started))
            return final

        finally:
            await self._shutdown_driver()
            clear_context()

    async def _start_driver(self) -> ItemProcessor:
        """Create the batch's driver and wait until MEBBIS is ready.

        Raises:
            AutomationInitializationError: If any start-up step fails.
        """
        await self.reporter.status(
            self.job_id,
            TransferPhase.INITIALIZING.value,
            "Starting browser",
        )
        try:
            self._driver = self.driver_factory(self.school)
            await self._driver.initialize()
            await self.reporter.status(
                self.job_id,
                TransferPhase.WAITING_LOGIN.value,
                "Waiting for QR code login",
            )
            await self._driver.wait_ready()
        except Exception as e:
            raise AutomationInitializationError(
                f"MEBBIS automation could not be started: {e}"
            ) from e

        return ItemProcessor(
            driver=self._driver,
            mapper=self.mapper,
            persistence=self.persistence,
            school_id=self.school.school_id,
            item_timeout=self.item_timeout,
        )

    async def _run_items(self, processor: ItemProcessor) -> None:
        total = len(self.items)

        for index, item in enumerate(self.items, start=1):
            if self.registry.is_cancel_requested(self.job_id):
                logger.info(
                    "Transfer %s cancelled before item %d/%d",
                    self.job_id,
                    index,
                    total,
                )
                break

            current = CurrentItem(item_id=item.item_id, kind=item.kind, label=item.label)

            def start_item(state: JobState) -> None:
                state.progress.current = index
                state.current_item = current

            self.registry.update(self.job_id, start_item)
            await self.reporter.item_started(self.job_id, item, index, total)
            logger.info(
                "[%d/%d] Processing %s session %s",
                index,
                total,
                item.kind,
                item.item_id,
            )

            item_started = time.monotonic()
            try:
                result = await processor.process(item)
            except AutomationUnavailableError:
                raise
            except Exception as e:
                logger.error(
                    "[%d/%d] Unexpected error in %s session %s: %s",
                    index,
                    total,
                    item.kind,
                    item.item_id,
                    str(e),
                    exc_info=True,
                )
                result = ItemResult.failure(item, str(e) or type(e).__name__)
                await self._record_unexpected_error(item, result.error or "")

            snapshot = self.registry.update(self.job_id, lambda state: _apply_result(state, result))
            logger.info(
                "[%d/%d] %s session %s %s in %dms",
                index,
                total,
                item.kind.capitalize(),
                item.item_id,
                "completed" if result.success else "failed",
                _elapsed_ms(item_started),
            )
            await self.reporter.item_finished(self.job_id, result)
            await self.reporter.progress(snapshot)

    async def _record_unexpected_error(self, item: WorkItem, message: str) -> None:
        try:
            await self.persistence.record_error(self.school.school_id, item.item_id, message)
        except Exception as e:
            logger.error(
                "Could not record error for %s %s: %s",
                item.kind,
                item.item_id,
                str(e),
            )

    async def _shutdown_driver(self) -> None:
        if self._driver is None:
            return
        try:
            await self._driver.shutdown()
        except Exception as e:
            logger.error("Driver shutdown failed for transfer %s: %s", self.job_id, str(e))
        finally:
            self._driver = None

    def _log_summary(self, final: JobState, duration_ms: int) -> None:
        attempted = final.progress.completed + final.progress.failed
        average_ms = duration_ms / attempted if attempted else 0
        logger.info(
            "Transfer %s %s: %d successful, %d failed (%s), total %.2fs, avg per item %.2fs",
            self.job_id,
            final.status.value,
            final.progress.completed,
            final.progress.failed,
            failure_summary(final.errors),
            duration_ms / 1000,
            average_ms / 1000,
        )


def _apply_result(state: JobState, result: ItemResult) -> None:
    if result.success:
        state.progress.completed += 1
    else:
        state.progress.failed += 1
    state.errors.extend(result.member_failures)
    entry = result.error_entry()
    if entry is not None:
        state.errors.append(entry)
    state.current_item = None


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class TransferService:
    """Starts, tracks and cancels transfer batches.

    Each accepted transfer runs as its own asyncio task with its own
    driver. The registry is injected so tests (and the app) own its
    lifetime.

    Example:
        service = TransferService(
            registry=JobRegistry(),
            record_source=SessionRecordSource(get_session),
            persistence=SessionTransferPersistence(get_session),
            reporter=ProgressReporter(EventBusSink(get_event_bus())),
            driver_factory=my_driver_factory,
        )
        state = await service.start_transfer(TransferFilters(school_id="s-1"))
        state = service.get_status(state.id, school_id="s-1")
    """

    def __init__(
        self,
        registry: JobRegistry,
        record_source: RecordSource,
        persistence: TransferPersistence,
        reporter: ProgressReporter,
        driver_factory: DriverFactory | None,
        mapper: SessionMapper | None = None,
        item_timeout: float | None = None,
        max_active_batches: int = 4,
    ) -> None:
        self.registry = registry
        self.record_source = record_source
        self.persistence = persistence
        self.reporter = reporter
        self.driver_factory = driver_factory
        self.mapper = mapper or SessionMapper()
        self.item_timeout = item_timeout
        self.max_active_batches = max_active_batches
        self._tasks: dict[str, asyncio.Task[JobState]] = {}
        self._starting = 0

    @property
    def active_count(self) -> int:
        """Number of batches whose task has not finished."""
        return len(self._tasks)

    async def start_transfer(
        self,
        filters: TransferFilters,
        transfer_id: str | None = None,
    ) -> JobState:
        """Accept a transfer and start it in the background.

        Args:
            filters: Selection filters, scoped to one school.
            transfer_id: Optional caller-supplied id.

        Returns:
            Snapshot of the newly registered (pending) batch.

        Raises:
            DriverNotConfiguredError: If no driver factory is configured.
            DuplicateTransferError: If transfer_id is already registered.
            TransferCapacityError: If too many batches are running.
            NoRecordsSelectedError: If the filters match no sessions.
        """
        if self.driver_factory is None:
            raise DriverNotConfiguredError("No MEBBIS automation driver is configured")

        transfer_id = transfer_id or str(uuid4())
        if transfer_id in self.registry:
            # registry.create repeats this check under its lock
            raise DuplicateTransferError(f"Transfer {transfer_id} already exists")

        # Starts still selecting records hold a slot until their task exists
        if self.active_count + self._starting >= self.max_active_batches:
            raise TransferCapacityError(
                f"{self.active_count + self._starting} transfers are already running"
            )

        self._starting += 1
        try:
            records = await self.record_source.select_records(filters)
            if not records:
                raise NoRecordsSelectedError("No counseling sessions found to transfer")

            items = build_work_items(records)
            school = await self.record_source.get_school(filters.school_id)
        finally:
            self._starting -= 1

        if not school.institution_code:
            logger.warning(
                "School %s has no institution code, MEBBIS selection will match by name: %s",
                school.school_id,
                school.name,
            )

        state = self.registry.create(transfer_id, total=len(items), school_id=filters.school_id)

        orchestrator = BatchOrchestrator(
            job_id=transfer_id,
            school=school,
            items=items,
            registry=self.registry,
            driver_factory=self.driver_factory,
            persistence=self.persistence,
            reporter=self.reporter,
            mapper=self.mapper,
            item_timeout=self.item_timeout,
        )
        task = asyncio.create_task(orchestrator.run(), name=f"mebbis-transfer-{transfer_id}")
        self._tasks[transfer_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(transfer_id, None))

        logger.info(
            "Accepted transfer %s: %d records in %d items",
            transfer_id,
            len(records),
            len(items),
        )
        return state

    def get_status(self, transfer_id: str, school_id: str | None = None) -> JobState:
        """Get a snapshot of a batch.

        Raises:
            TransferNotFoundError: If unknown or owned by another school.
        """
        state = self.registry.get(transfer_id)
        if state is None or (school_id is not None and state.school_id != school_id):
            raise TransferNotFoundError(f"Transfer {transfer_id} not found")
        return state

    def request_cancel(self, transfer_id: str, school_id: str | None = None) -> JobState:
        """Request cooperative cancellation of a batch.

        Raises:
            TransferNotFoundError: If unknown or owned by another school.
        """
        self.get_status(transfer_id, school_id)
        self.registry.request_cancel(transfer_id)
        return self.get_status(transfer_id, school_id)

    async def wait(self, transfer_id: str) -> JobState:
        """Wait for a batch task to finish and return its final snapshot."""
        task = self._tasks.get(transfer_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get_status(transfer_id)

    def prune_finished(self, retention_minutes: int) -> int:
        """Drop finished batches older than the retention window."""
        return self.registry.prune(minutes_ago(retention_minutes))

    async def shutdown(self) -> None:
        """Cancel running batch tasks, shutting their drivers down."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d running transfers on shutdown", len(tasks))

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {
            "active_batches": self.active_count,
            "max_active_batches": self.max_active_batches,
            "registry": self.registry.get_stats(),
        }
