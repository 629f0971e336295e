# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data model for MEBBIS session transfers.

This module defines the in-memory types the transfer engine works with:
- JobState: the pollable state of one transfer batch
- SessionRecord: one (counseling session, student) row selected for transfer
- IndividualItem / GroupItem: the two work item variants
- RemoteFormData: one record mapped onto the MEBBIS entry form
- SubmissionResult / ItemResult: outcomes of driver calls and item runs

Work items form a tagged union (WorkItem = IndividualItem | GroupItem). The
variants share no behaviour, only the item_id / records / label shape the
orchestrator needs for counters and events.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from src.utils.datetime import format_iso, utc_now


class TransferStatus(str, Enum):
    """Lifecycle status of a transfer batch."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions can happen from this status."""
        return self in (
            TransferStatus.COMPLETED,
            TransferStatus.CANCELLED,
            TransferStatus.ERROR,
        )


@dataclass
class TransferProgress:
    """Batch counters.

    Attributes:
        total: Number of work items (not records) in the batch.
        completed: Items transferred successfully.
        failed: Items that failed.
        current: 1-based index of the item being processed, 0 before the first.
    """

    total: int
    completed: int = 0
    failed: int = 0
    current: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary representation."""
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "current": self.current,
        }


@dataclass(frozen=True)
class TransferErrorEntry:
    """One failure recorded against a batch.

    Attributes:
        item_id: Identity of the work item (session id or group key).
        record_identifiers: Records the failure refers to.
        message: Failure reason as reported by the driver or processor.
        timestamp: When the failure was observed.
    """

    item_id: str
    record_identifiers: tuple[str, ...]
    message: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "item_id": self.item_id,
            "record_identifiers": list(self.record_identifiers),
            "message": self.message,
            "timestamp": format_iso(self.timestamp),
        }


@dataclass(frozen=True)
class CurrentItem:
    """Display info for the item in flight."""

    item_id: str
    kind: str
    label: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary representation."""
        return {"item_id": self.item_id, "kind": self.kind, "label": self.label}


@dataclass
class JobState:
    """State of one transfer batch.

    Instances live inside the JobRegistry. Everything handed out of the
    registry is a snapshot() copy, so pollers never hold a reference to the
    state the orchestrator is mutating.

    Attributes:
        id: Transfer identity.
        school_id: Owning school (tenant).
        status: Current lifecycle status.
        progress: Batch counters.
        errors: Ordered failure entries.
        cancel_requested: Set by an external cancel call.
        created_at: When the transfer was accepted.
        started_at: When the batch reached running.
        finished_at: When the orchestrator finalized the batch.
        current_item: Item in flight, if any.
    """

    id: str
    school_id: str
    progress: TransferProgress
    status: TransferStatus = TransferStatus.PENDING
    errors: list[TransferErrorEntry] = field(default_factory=list)
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    current_item: CurrentItem | None = None

    def snapshot(self) -> JobState:
        """Return a copy detached from this instance's mutable members."""
        return replace(
            self,
            progress=replace(self.progress),
            errors=list(self.errors),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "transfer_id": self.id,
            "school_id": self.school_id,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "errors": [error.to_dict() for error in self.errors],
            "cancel_requested": self.cancel_requested,
            "created_at": format_iso(self.created_at),
            "started_at": format_iso(self.started_at),
            "finished_at": format_iso(self.finished_at),
            "current_item": self.current_item.to_dict() if self.current_item else None,
        }


SessionType = Literal["individual", "group"]


@dataclass(frozen=True)
class SessionRecord:
    """One counseling session row joined with one participating student.

    Group sessions yield one record per student, all sharing the session id
    as their group key. Guidance standard labels are resolved by the record
    source so that mapping needs no further lookups.
    """

    session_id: str
    school_id: str
    session_type: SessionType
    session_date: date
    entry_time: str
    student_no: str
    student_name: str
    topic: str = ""
    exit_time: str | None = None
    session_details: str | None = None
    detailed_notes: str | None = None
    class_name: str = ""
    service_area: str | None = None
    first_category: str | None = None
    second_category: str | None = None
    third_category_code: str | None = None
    third_category_description: str | None = None

    @property
    def group_key(self) -> str | None:
        """Key shared by all records of one group session."""
        return self.session_id if self.session_type == "group" else None

    @property
    def record_id(self) -> str:
        """Identifier of this record within a batch."""
        return f"{self.session_id}:{self.student_no}"

    @property
    def has_standard_refs(self) -> bool:
        """Check if the session references the guidance standard catalogue."""
        return any(
            (self.service_area, self.first_category, self.second_category)
        )


@dataclass(frozen=True)
class IndividualItem:
    """Work item wrapping exactly one record."""

    record: SessionRecord
    kind: Literal["individual"] = "individual"

    @property
    def item_id(self) -> str:
        return self.record.session_id

    @property
    def records(self) -> tuple[SessionRecord, ...]:
        return (self.record,)

    @property
    def label(self) -> str:
        return f"{self.record.student_no} {self.record.student_name}".strip()


@dataclass(frozen=True)
class GroupItem:
    """Work item wrapping the ordered records of one group session."""

    group_key: str
    records: tuple[SessionRecord, ...]
    kind: Literal["group"] = "group"

    def __post_init__(self) -> None:
        if not self.records:
            raise ValueError(f"Group {self.group_key} has no records")

    @property
    def item_id(self) -> str:
        return self.group_key

    @property
    def label(self) -> str:
        return f"Group ({len(self.records)} students)"


WorkItem = IndividualItem | GroupItem


@dataclass(frozen=True)
class MemberRef:
    """Reference used to add one student to a group session form."""

    student_no: str
    class_name: str = ""


@dataclass(frozen=True)
class RemoteFormData:
    """A session mapped onto the MEBBIS counseling entry form."""

    student_no: str
    service_area: str
    first_category: str
    second_category: str
    third_category: str | None
    session_date: str
    start_time: str
    end_time: str
    session_count: int = 1
    work_place: str = "Rehberlik Servisi"


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome reported by the automation driver for one submission."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> SubmissionResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> SubmissionResult:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class ItemResult:
    """Structured outcome of processing one work item.

    Attributes:
        item: The processed work item.
        success: Whether the remote submission succeeded.
        error: Failure reason when success is False.
        member_failures: Group members rejected by the driver. Reported
            independently of the group's own outcome.
    """

    item: WorkItem
    success: bool
    error: str | None = None
    member_failures: tuple[TransferErrorEntry, ...] = ()

    @classmethod
    def succeeded(
        cls,
        item: WorkItem,
        member_failures: tuple[TransferErrorEntry, ...] = (),
    ) -> ItemResult:
        return cls(item=item, success=True, member_failures=member_failures)

    @classmethod
    def failure(
        cls,
        item: WorkItem,
        error: str,
        member_failures: tuple[TransferErrorEntry, ...] = (),
    ) -> ItemResult:
        return cls(item=item, success=False, error=error, member_failures=member_failures)

    def error_entry(self) -> TransferErrorEntry | None:
        """Build the batch error entry for a failed item."""
        if self.success:
            return None
        return TransferErrorEntry(
            item_id=self.item.item_id,
            record_identifiers=tuple(r.record_id for r in self.item.records),
            message=self.error or "Unknown error",
        )


@dataclass(frozen=True)
class TransferFilters:
    """Selection filters for a transfer batch.

    Attributes:
        school_id: Owning school; every query and write is scoped to it.
        session_ids: Explicit session id set, None for all.
        only_not_transferred: Skip sessions already marked transferred.
        start_date: Inclusive lower bound on the session date.
        end_date: Inclusive upper bound on the session date.
    """

    school_id: str
    session_ids: tuple[str, ...] | None = None
    only_not_transferred: bool = False
    start_date: date | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        if not self.school_id:
            raise ValueError("school_id is required for a transfer selection")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")


@dataclass(frozen=True)
class SchoolContext:
    """School identity handed to the automation driver factory.

    Attributes:
        school_id: Local school id.
        institution_code: MEBBIS institution code ("kurum kodu"), if known.
        name: School name, used for matching when the code is missing.
    """

    school_id: str
    institution_code: str | None = None
    name: str | None = None
