# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Session record factory
- Scriptable in-memory automation driver
- Recording event sink and mock persistence
"""

import asyncio
from datetime import date
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from src.domains.transfer.exceptions import AutomationUnavailableError
from src.domains.transfer.models import (
    MemberRef,
    RemoteFormData,
    SchoolContext,
    SessionRecord,
    SubmissionResult,
)
from src.domains.transfer.registry import JobRegistry
from src.domains.transfer.reporter import ProgressReporter


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Test Doubles
# =============================================================================


class FakeDriver:
    """Scriptable AutomationDriver.

    Attributes:
        calls: Ordered (method, argument) log of every driver call.
        failing_students: Student numbers whose submission is rejected.
        rejected_members: Student numbers add_group_member refuses.
        unavailable_on: Student number whose submission raises
            AutomationUnavailableError.
        gate: When set, every submission waits for this event first.
        init_error / ready_error: Raised from initialize / wait_ready.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.failing_students: set[str] = set()
        self.rejected_members: set[str] = set()
        self.unavailable_on: str | None = None
        self.gate: asyncio.Event | None = None
        self.submitted: asyncio.Queue[str] = asyncio.Queue()
        self.init_error: Exception | None = None
        self.ready_error: Exception | None = None
        self.shutdown_count = 0

    async def initialize(self) -> None:
        self.calls.append(("initialize", None))
        if self.init_error:
            raise self.init_error

    async def wait_ready(self) -> None:
        self.calls.append(("wait_ready", None))
        if self.ready_error:
            raise self.ready_error

    async def submit_individual(self, form: RemoteFormData) -> SubmissionResult:
        self.calls.append(("submit_individual", form.student_no))
        return await self._submit(form)

    async def enter_group_mode(self) -> None:
        self.calls.append(("enter_group_mode", None))

    async def add_group_member(self, member: MemberRef) -> bool:
        self.calls.append(("add_group_member", member.student_no))
        return member.student_no not in self.rejected_members

    async def submit_group(self, form: RemoteFormData) -> SubmissionResult:
        self.calls.append(("submit_group", form.student_no))
        return await self._submit(form)

    async def shutdown(self) -> None:
        self.calls.append(("shutdown", None))
        self.shutdown_count += 1

    async def _submit(self, form: RemoteFormData) -> SubmissionResult:
        self.submitted.put_nowait(form.student_no)
        if self.gate is not None:
            await self.gate.wait()
        if form.student_no == self.unavailable_on:
            raise AutomationUnavailableError("Browser closed")
        if form.student_no in self.failing_students:
            return SubmissionResult.failed(f"MEBBIS rejected {form.student_no}")
        return SubmissionResult.ok()

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class RecordingSink:
    """EventSink that keeps every published event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, batch_id: str, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((batch_id, event_type, payload))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for _, kind, payload in self.events if kind == event_type]

    def types(self) -> list[str]:
        return [kind for _, kind, _ in self.events]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def school_id() -> str:
    """Provide a sample school ID for testing."""
    return "school-1"


@pytest.fixture
def school(school_id: str) -> SchoolContext:
    """Provide the school context handed to the driver factory."""
    return SchoolContext(school_id=school_id, institution_code="123456", name="Ataturk Ortaokulu")


@pytest.fixture
def make_record(school_id: str) -> Callable[..., SessionRecord]:
    """Factory for session records with sensible defaults."""

    def factory(session_id: str, student_no: str, **overrides: Any) -> SessionRecord:
        values: dict[str, Any] = {
            "session_id": session_id,
            "school_id": school_id,
            "session_type": "individual",
            "session_date": date(2025, 3, 14),
            "entry_time": "10:00",
            "exit_time": "10:40",
            "student_no": student_no,
            "student_name": f"Student {student_no}",
            "topic": "Study habits",
            "class_name": "7-A",
            "service_area": "Bireysel Planlama",
            "first_category": "Akademik Gelisim",
            "second_category": "Ogrenme Becerileri",
            "third_category_code": "1.1.1",
            "third_category_description": "Verimli ders calisma",
        }
        values.update(overrides)
        return SessionRecord(**values)

    return factory


@pytest.fixture
def fake_driver() -> FakeDriver:
    """Provide a driver that accepts everything until scripted otherwise."""
    return FakeDriver()


@pytest.fixture
def driver_factory(fake_driver: FakeDriver) -> Callable[[SchoolContext], FakeDriver]:
    """Driver factory returning the shared fake driver."""

    def factory(school: SchoolContext) -> FakeDriver:
        fake_driver.calls.append(("factory", school.school_id))
        return fake_driver

    return factory


@pytest.fixture
def sink() -> RecordingSink:
    """Provide a recording event sink."""
    return RecordingSink()


@pytest.fixture
def reporter(sink: RecordingSink) -> ProgressReporter:
    """Provide a reporter publishing into the recording sink."""
    return ProgressReporter(sink, publish_timeout=1.0)


@pytest.fixture
def persistence() -> AsyncMock:
    """Provide mock transfer persistence."""
    mock = AsyncMock()
    mock.mark_transferred = AsyncMock()
    mock.record_error = AsyncMock()
    return mock


@pytest.fixture
def registry() -> JobRegistry:
    """Provide an empty job registry."""
    return JobRegistry()
