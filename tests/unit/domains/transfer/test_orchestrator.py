# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for batch orchestration."""

import pytest

from src.domains.transfer.models import TransferStatus
from src.domains.transfer.orchestrator import BatchOrchestrator
from src.domains.transfer.work_items import build_work_items


@pytest.fixture
def make_orchestrator(registry, driver_factory, persistence, reporter, school):
    """Factory registering a job and building its orchestrator."""

    def factory(records, job_id="t-1", **kwargs):
        items = build_work_items(records)
        registry.create(job_id, total=len(items), school_id=school.school_id)
        return BatchOrchestrator(
            job_id=job_id,
            school=school,
            items=items,
            registry=registry,
            driver_factory=kwargs.pop("driver_factory", driver_factory),
            persistence=persistence,
            reporter=reporter,
            **kwargs,
        )

    return factory


class TestBatchOrchestratorRun:
    """Tests for a full batch run."""

    @pytest.mark.asyncio
    async def test_all_items_transferred(self, make_orchestrator, make_record, fake_driver, sink, persistence) -> None:
        """Test a clean batch completes with every item counted."""
        records = [
            make_record("s-1", "101"),
            make_record("g-1", "201", session_type="group"),
            make_record("g-1", "202", session_type="group"),
            make_record("s-2", "102"),
        ]

        final = await make_orchestrator(records).run()

        assert final.status is TransferStatus.COMPLETED
        assert final.progress.total == 3
        assert final.progress.completed == 3
        assert final.progress.failed == 0
        assert final.started_at is not None
        assert final.finished_at is not None
        assert persistence.mark_transferred.await_count == 3
        assert fake_driver.shutdown_count == 1

        done = sink.of_type("batch-done")
        assert len(done) == 1
        assert done[0]["successful"] == 3
        assert sink.types()[-1] == "batch-done"

    @pytest.mark.asyncio
    async def test_driver_lifecycle_order(self, make_orchestrator, make_record, fake_driver, sink) -> None:
        """Test the driver is created, readied, used and shut down in order."""
        await make_orchestrator([make_record("s-1", "101")]).run()

        assert fake_driver.call_names() == [
            "factory",
            "initialize",
            "wait_ready",
            "submit_individual",
            "shutdown",
        ]
        phases = [payload["status"] for payload in sink.of_type("status")]
        assert phases == ["initializing", "waiting_login", "running"]

    @pytest.mark.asyncio
    async def test_progress_current_is_monotonic(self, make_orchestrator, make_record, fake_driver, sink) -> None:
        """Test progress events advance one item at a time, individuals first."""
        records = [
            make_record("g-1", "201", session_type="group"),
            make_record("s-1", "101"),
            make_record("s-2", "102"),
        ]

        await make_orchestrator(records).run()

        currents = [payload["current"] for payload in sink.of_type("progress")]
        assert currents == [0, 1, 2, 3]
        started = [payload["item_id"] for payload in sink.of_type("item-start")]
        assert started == ["s-1", "s-2", "g-1"]
        submissions = [name for name in fake_driver.call_names() if name.startswith("submit")]
        assert submissions == ["submit_individual", "submit_individual", "submit_group"]

    @pytest.mark.asyncio
    async def test_item_failure_is_isolated(self, make_orchestrator, make_record, fake_driver, persistence) -> None:
        """Test a rejected item does not stop the batch."""
        fake_driver.failing_students = {"102"}
        records = [
            make_record("s-1", "101"),
            make_record("s-2", "102"),
            make_record("s-3", "103"),
        ]

        final = await make_orchestrator(records).run()

        assert final.status is TransferStatus.COMPLETED
        assert final.progress.completed == 2
        assert final.progress.failed == 1
        assert len(final.errors) == 1
        assert final.errors[0].item_id == "s-2"
        assert final.errors[0].record_identifiers == ("s-2:102",)
        assert persistence.mark_transferred.await_count == 2
        persistence.record_error.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_member_listed_without_changing_counters(
        self, make_orchestrator, make_record, fake_driver
    ) -> None:
        """Test a partially admitted group counts as one completed item."""
        fake_driver.rejected_members = {"202"}
        records = [
            make_record("g-1", "201", session_type="group"),
            make_record("g-1", "202", session_type="group"),
            make_record("g-1", "203", session_type="group"),
        ]

        final = await make_orchestrator(records).run()

        assert final.progress.completed == 1
        assert final.progress.failed == 0
        assert final.progress.completed + final.progress.failed == final.progress.total
        assert [e.record_identifiers for e in final.errors] == [("g-1:202",)]

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_item_failure(
        self, make_orchestrator, make_record, persistence
    ) -> None:
        """Test an exception escaping the processor fails only that item."""
        persistence.mark_transferred.side_effect = [RuntimeError("deadlock detected"), None]
        records = [make_record("s-1", "101"), make_record("s-2", "102")]

        final = await make_orchestrator(records).run()

        assert final.status is TransferStatus.COMPLETED
        assert final.progress.completed == 1
        assert final.progress.failed == 1
        assert final.errors[0].message == "deadlock detected"
        persistence.record_error.assert_awaited_once_with("school-1", "s-1", "deadlock detected")


class TestBatchOrchestratorFatal:
    """Tests for batch-fatal failures."""

    @pytest.mark.asyncio
    async def test_wait_ready_failure(self, make_orchestrator, make_record, fake_driver, sink, persistence) -> None:
        """Test a login failure ends the batch in error without items."""
        fake_driver.ready_error = TimeoutError("QR code not scanned")

        final = await make_orchestrator([make_record("s-1", "101")]).run()

        assert final.status is TransferStatus.ERROR
        assert final.started_at is None
        assert final.progress.completed == 0
        assert "submit_individual" not in fake_driver.call_names()
        assert fake_driver.shutdown_count == 1
        persistence.mark_transferred.assert_not_awaited()
        errors = sink.of_type("batch-error")
        assert len(errors) == 1
        assert "QR code not scanned" in errors[0]["error"]
        assert sink.of_type("batch-done") == []

    @pytest.mark.asyncio
    async def test_driver_factory_failure(self, make_orchestrator, make_record, sink) -> None:
        """Test a factory that raises ends the batch in error."""

        def broken_factory(school):
            raise RuntimeError("chromium not installed")

        final = await make_orchestrator(
            [make_record("s-1", "101")],
            driver_factory=broken_factory,
        ).run()

        assert final.status is TransferStatus.ERROR
        assert "chromium not installed" in sink.of_type("batch-error")[0]["error"]

    @pytest.mark.asyncio
    async def test_driver_unavailable_mid_run(self, make_orchestrator, make_record, fake_driver, sink) -> None:
        """Test losing the browser mid-run ends the batch in error."""
        fake_driver.unavailable_on = "102"
        records = [
            make_record("s-1", "101"),
            make_record("s-2", "102"),
            make_record("s-3", "103"),
        ]

        final = await make_orchestrator(records).run()

        assert final.status is TransferStatus.ERROR
        assert final.progress.completed == 1
        assert fake_driver.call_names().count("submit_individual") == 2
        assert fake_driver.shutdown_count == 1
        assert sink.types()[-1] == "batch-error"

    @pytest.mark.asyncio
    async def test_shutdown_failure_is_logged(self, make_orchestrator, make_record, fake_driver) -> None:
        """Test a raising driver shutdown does not change the outcome."""

        async def broken_shutdown():
            raise RuntimeError("browser already closed")

        fake_driver.shutdown = broken_shutdown

        final = await make_orchestrator([make_record("s-1", "101")]).run()

        assert final.status is TransferStatus.COMPLETED


class TestBatchOrchestratorCancel:
    """Tests for cancellation observed by the orchestrator."""

    @pytest.mark.asyncio
    async def test_cancel_before_first_item(self, make_orchestrator, make_record, fake_driver, registry, sink) -> None:
        """Test a batch cancelled while pending processes nothing."""
        orchestrator = make_orchestrator([make_record("s-1", "101"), make_record("s-2", "102")])
        registry.request_cancel("t-1")

        final = await orchestrator.run()

        assert final.status is TransferStatus.CANCELLED
        assert final.progress.completed == 0
        assert "submit_individual" not in fake_driver.call_names()
        assert fake_driver.shutdown_count == 1
        assert sink.of_type("batch-done")[0]["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_fault_after_cancel_stays_cancelled(
        self, make_orchestrator, make_record, fake_driver, registry, sink
    ) -> None:
        """Test a batch-fatal fault after cancel keeps the cancelled status."""
        orchestrator = make_orchestrator([make_record("s-1", "101")])
        registry.request_cancel("t-1")
        fake_driver.ready_error = RuntimeError("login window closed")

        final = await orchestrator.run()

        assert final.status is TransferStatus.CANCELLED
        assert len(sink.of_type("batch-error")) == 1
