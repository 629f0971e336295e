# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Collaborator interfaces consumed by the transfer engine.

The engine only talks to these protocols. Concrete implementations live in
repository.py (database), infrastructure/events (event sink) and whatever
module TRANSFER_DRIVER_FACTORY points at (automation driver).
"""

from datetime import datetime
from typing import Any, Callable, Protocol

from src.domains.transfer.models import (
    MemberRef,
    RemoteFormData,
    SchoolContext,
    SessionRecord,
    SubmissionResult,
    TransferFilters,
)


class RecordSource(Protocol):
    """Selects the sessions eligible for transfer."""

    async def select_records(self, filters: TransferFilters) -> list[SessionRecord]:
        """Return the ordered records matching the filters."""
        ...

    async def get_school(self, school_id: str) -> SchoolContext:
        """Return the school identity used for remote school selection."""
        ...


class AutomationDriver(Protocol):
    """Drives the MEBBIS web forms for one batch.

    submit_individual / submit_group report expected failures through
    SubmissionResult. initialize / wait_ready failures are batch-fatal.
    A driver that loses its browser raises AutomationUnavailableError.
    """

    async def initialize(self) -> None: ...

    async def wait_ready(self) -> None: ...

    async def submit_individual(self, form: RemoteFormData) -> SubmissionResult: ...

    async def enter_group_mode(self) -> None: ...

    async def add_group_member(self, member: MemberRef) -> bool: ...

    async def submit_group(self, form: RemoteFormData) -> SubmissionResult: ...

    async def shutdown(self) -> None: ...


DriverFactory = Callable[[SchoolContext], AutomationDriver]


class TransferPersistence(Protocol):
    """Writes transfer outcomes back to the session rows of one school."""

    async def mark_transferred(
        self,
        school_id: str,
        item_id: str,
        timestamp: datetime,
    ) -> None: ...

    async def record_error(self, school_id: str, item_id: str, message: str) -> None: ...


class EventSink(Protocol):
    """Publish channel for live progress."""

    async def publish(
        self,
        batch_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> None: ...
