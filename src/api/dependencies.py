# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints:
- The transfer service built at startup (app.state)
- The requesting school (X-School-Id header)
- The process-wide event bus

Example:
    @router.get("/status/{transfer_id}")
    async def get_status(
        transfer_id: str,
        school_id: str = Depends(get_school_id),
        service: TransferService = Depends(get_transfer_service),
    ):
        ...
"""

import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from src.core.config.settings import Settings
from src.domains.transfer import (
    JobRegistry,
    ProgressReporter,
    SessionRecordSource,
    SessionTransferPersistence,
    TransferService,
    load_driver_factory,
)
from src.infrastructure.database.connection import get_session
from src.infrastructure.events import EventBus, EventBusSink, get_event_bus

logger = logging.getLogger(__name__)


def build_transfer_service(settings: Settings) -> TransferService:
    """Wire the transfer service against the school database and event bus.

    Args:
        settings: Application settings.

    Returns:
        TransferService ready to accept batches.

    Raises:
        DriverNotConfiguredError: If the configured driver factory path is
            invalid. A missing path only disables transfers.
    """
    transfer = settings.transfer
    return TransferService(
        registry=JobRegistry(),
        record_source=SessionRecordSource(get_session),
        persistence=SessionTransferPersistence(get_session),
        reporter=ProgressReporter(
            EventBusSink(get_event_bus()),
            publish_timeout=transfer.publish_timeout_seconds,
        ),
        driver_factory=load_driver_factory(transfer.driver_factory),
        item_timeout=transfer.item_timeout_seconds,
        max_active_batches=transfer.max_active_batches,
    )


def get_transfer_service(request: Request) -> TransferService:
    """Get the transfer service created by the application lifespan.

    Raises:
        HTTPException: 503 if the service was not initialized.
    """
    service: TransferService | None = getattr(request.app.state, "transfer_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transfer service is not available",
        )
    return service


def get_school_id(
    x_school_id: Annotated[str | None, Header(alias="X-School-Id")] = None,
) -> str:
    """Get the requesting school from the X-School-Id header.

    Raises:
        HTTPException: 400 if the header is missing or blank.
    """
    if not x_school_id or not x_school_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-School-Id header is required",
        )
    return x_school_id.strip()


def get_bus() -> EventBus:
    """Get the process-wide event bus."""
    return get_event_bus()
