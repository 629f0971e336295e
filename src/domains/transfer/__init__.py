# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""MEBBIS transfer domain package.

This package transfers completed counseling sessions to MEBBIS through a
browser automation driver:
- Selection of eligible sessions and partitioning into work items
- Sequential per-batch processing with live progress events
- Pollable, cancellable batch state
"""

from src.domains.transfer.drivers import load_driver_factory
from src.domains.transfer.exceptions import (
    AutomationInitializationError,
    AutomationUnavailableError,
    DriverNotConfiguredError,
    DuplicateTransferError,
    MappingError,
    NoRecordsSelectedError,
    TransferCapacityError,
    TransferNotFoundError,
    TransferServiceError,
)
from src.domains.transfer.mapper import SessionMapper
from src.domains.transfer.models import (
    GroupItem,
    IndividualItem,
    JobState,
    SchoolContext,
    SessionRecord,
    TransferFilters,
    TransferStatus,
    WorkItem,
)
from src.domains.transfer.orchestrator import BatchOrchestrator, TransferService
from src.domains.transfer.processor import ItemProcessor
from src.domains.transfer.registry import JobRegistry
from src.domains.transfer.reporter import ProgressReporter, TransferEvent
from src.domains.transfer.repository import SessionRecordSource, SessionTransferPersistence
from src.domains.transfer.work_items import build_work_items

__all__ = [
    # Service
    "TransferService",
    "BatchOrchestrator",
    "ItemProcessor",
    "JobRegistry",
    "ProgressReporter",
    "TransferEvent",
    "SessionMapper",
    "build_work_items",
    "load_driver_factory",
    # Repository
    "SessionRecordSource",
    "SessionTransferPersistence",
    # Models
    "JobState",
    "TransferStatus",
    "TransferFilters",
    "SessionRecord",
    "SchoolContext",
    "IndividualItem",
    "GroupItem",
    "WorkItem",
    # Exceptions
    "TransferServiceError",
    "NoRecordsSelectedError",
    "DuplicateTransferError",
    "TransferNotFoundError",
    "TransferCapacityError",
    "DriverNotConfiguredError",
    "AutomationInitializationError",
    "AutomationUnavailableError",
    "MappingError",
]
