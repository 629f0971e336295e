# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""MEBBIS transfer API endpoints.

This module provides:
- POST /start - Accept a transfer batch and run it in the background
- GET /status/{transfer_id} - Poll a batch
- POST /cancel/{transfer_id} - Request cooperative cancellation
- GET /events/{transfer_id} - Live batch events as Server-Sent Events

Every endpoint is scoped to the school named in the X-School-Id header;
transfers of other schools are reported as not found.

Example:
    POST /api/v1/mebbis/start
    Headers:
        X-School-Id: school-42
    Body:
        {"session_ids": ["s-1", "s-2"], "filters": {"only_not_transferred": true}}

    202 {"transfer_id": "3f1c...", "total": 2, "status": "pending"}
"""

import asyncio
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from src.api.dependencies import get_bus, get_school_id, get_transfer_service
from src.api.middleware.rate_limit import limiter, transfer_start_limit
from src.domains.transfer import (
    DriverNotConfiguredError,
    DuplicateTransferError,
    NoRecordsSelectedError,
    TransferCapacityError,
    TransferNotFoundError,
    TransferService,
)
from src.domains.transfer.schemas import (
    CancelTransferResponse,
    StartTransferRequest,
    StartTransferResponse,
    TransferStatusResponse,
)
from src.infrastructure.events import EventBus, EventData, EventPatterns

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


@router.post(
    "/start",
    response_model=StartTransferResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a MEBBIS transfer",
    responses={
        409: {"description": "Transfer id already in use"},
        422: {"description": "No sessions selected or invalid filters"},
        429: {"description": "Too many transfers running or started"},
        503: {"description": "No MEBBIS automation driver configured"},
    },
)
@limiter.limit(transfer_start_limit)
async def start_transfer(
    request: Request,
    body: StartTransferRequest,
    school_id: str = Depends(get_school_id),
    service: TransferService = Depends(get_transfer_service),
) -> StartTransferResponse:
    """Select sessions and start transferring them in the background.

    Returns as soon as the batch is registered; progress is polled through
    /status or followed through /events.
    """
    logger.info(
        "Transfer start requested: school=%s, sessions=%s, transfer_id=%s",
        school_id,
        len(body.session_ids) if body.session_ids else "all",
        body.transfer_id,
    )

    try:
        filters = body.to_filters(school_id)
        state = await service.start_transfer(filters, transfer_id=body.transfer_id)

    except NoRecordsSelectedError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    except DuplicateTransferError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    except TransferCapacityError as e:
        logger.warning("Transfer rejected for school %s: %s", school_id, str(e))
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))

    except DriverNotConfiguredError as e:
        logger.error("Transfer rejected for school %s: %s", school_id, str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return StartTransferResponse(
        transfer_id=state.id,
        total=state.progress.total,
        status=state.status.value,
    )


@router.get(
    "/status/{transfer_id}",
    response_model=TransferStatusResponse,
    summary="Get transfer status",
)
async def get_transfer_status(
    transfer_id: str,
    school_id: str = Depends(get_school_id),
    service: TransferService = Depends(get_transfer_service),
) -> TransferStatusResponse:
    try:
        state = service.get_status(transfer_id, school_id)
    except TransferNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return TransferStatusResponse.from_state(state)


@router.post(
    "/cancel/{transfer_id}",
    response_model=CancelTransferResponse,
    summary="Cancel a transfer",
)
async def cancel_transfer(
    transfer_id: str,
    school_id: str = Depends(get_school_id),
    service: TransferService = Depends(get_transfer_service),
) -> CancelTransferResponse:
    """Request cancellation.

    The item in flight finishes first. Cancelling a finished transfer is
    acknowledged and changes nothing.
    """
    try:
        state = service.request_cancel(transfer_id, school_id)
    except TransferNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info("Cancel requested for transfer %s (status %s)", transfer_id, state.status.value)
    return CancelTransferResponse(
        transfer_id=state.id,
        status=state.status.value,
        cancel_requested=state.cancel_requested,
    )


@router.get(
    "/events/{transfer_id}",
    summary="Stream transfer events",
    response_class=StreamingResponse,
)
async def stream_transfer_events(
    transfer_id: str,
    school_id: str = Depends(get_school_id),
    service: TransferService = Depends(get_transfer_service),
    bus: EventBus = Depends(get_bus),
) -> StreamingResponse:
    """Stream batch events as Server-Sent Events until the batch ends.

    The stream opens with a `snapshot` event holding the current status.
    """
    try:
        service.get_status(transfer_id, school_id)
    except TransferNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return StreamingResponse(
        _event_stream(transfer_id, school_id, service, bus),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def _event_stream(
    transfer_id: str,
    school_id: str,
    service: TransferService,
    bus: EventBus,
) -> AsyncIterator[str]:
    def belongs(event: EventData) -> bool:
        return event.payload.get("transfer_id") == transfer_id

    async with bus.listen(EventPatterns.ALL_TRANSFER, belongs) as queue:
        # Subscribed before the snapshot so no event falls in between
        snapshot = service.get_status(transfer_id, school_id)
        yield _sse("snapshot", snapshot.to_dict())
        # A cancelled batch is still running until its in-flight item settles
        if snapshot.finished_at is not None:
            return

        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue

            yield _sse(event.event_type.removeprefix("transfer."), event.payload)
            if event.event_type in EventPatterns.TERMINAL:
                return
