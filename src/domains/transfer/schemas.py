# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""MEBBIS transfer API schemas.

Request and response models for the /mebbis endpoints. Responses are
built from JobState snapshots, never from the live registry state.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from src.domains.transfer.models import JobState, TransferFilters


class TransferFilterOptions(BaseModel):
    """Optional selection narrowing."""

    only_not_transferred: bool = Field(
        default=False,
        description="Skip sessions already marked as transferred",
    )
    start_date: date | None = Field(default=None, description="Inclusive lower bound")
    end_date: date | None = Field(default=None, description="Inclusive upper bound")

    @model_validator(mode="after")
    def check_date_range(self) -> "TransferFilterOptions":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class StartTransferRequest(BaseModel):
    """Request to start a transfer batch.

    With no session_ids every completed session of the school that matches
    the filters is selected.
    """

    session_ids: list[str] | None = Field(
        default=None,
        description="Explicit counseling session ids to transfer",
    )
    filters: TransferFilterOptions = Field(default_factory=TransferFilterOptions)
    transfer_id: str | None = Field(
        default=None,
        max_length=64,
        description="Caller-chosen transfer id. Generated when omitted.",
    )

    def to_filters(self, school_id: str) -> TransferFilters:
        """Build domain filters scoped to the requesting school."""
        return TransferFilters(
            school_id=school_id,
            session_ids=tuple(self.session_ids) if self.session_ids else None,
            only_not_transferred=self.filters.only_not_transferred,
            start_date=self.filters.start_date,
            end_date=self.filters.end_date,
        )


class StartTransferResponse(BaseModel):
    """Acknowledgement of an accepted transfer."""

    transfer_id: str
    total: int = Field(description="Number of work items in the batch")
    status: str


class ProgressResponse(BaseModel):
    total: int
    completed: int
    failed: int
    current: int


class ErrorEntryResponse(BaseModel):
    item_id: str
    record_identifiers: list[str]
    message: str
    timestamp: datetime


class CurrentItemResponse(BaseModel):
    item_id: str
    kind: str
    label: str


class TransferStatusResponse(BaseModel):
    """Point-in-time view of a transfer batch."""

    transfer_id: str
    status: str
    progress: ProgressResponse
    errors: list[ErrorEntryResponse] = Field(default_factory=list)
    cancel_requested: bool
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    current_item: CurrentItemResponse | None = None

    @classmethod
    def from_state(cls, state: JobState) -> "TransferStatusResponse":
        data: dict[str, Any] = state.to_dict()
        data.pop("school_id", None)
        return cls.model_validate(data)


class CancelTransferResponse(BaseModel):
    """Acknowledgement of a cancel request."""

    transfer_id: str
    status: str
    cancel_requested: bool
