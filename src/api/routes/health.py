# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
"""

import logging
import time
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field
from sqlalchemy import text

from src import __version__
from src.core.config import get_settings
from src.infrastructure.database.connection import get_engine
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class TransfersHealth(BaseModel):
    """Transfer engine load."""
    driver_configured: bool = Field(description="Whether a MEBBIS driver factory is loaded")
    active_batches: int = Field(description="Batches currently running")
    max_active_batches: int = Field(description="Configured concurrency limit")
    jobs_by_status: dict[str, int] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    database: ComponentHealth
    transfers: TransfersHealth | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_database() -> ComponentHealth:
    """Check the school database connection."""
    start = time.time()
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return ComponentHealth(status="unhealthy", message=str(e))

    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


def transfer_health(request: Request) -> TransfersHealth | None:
    service = getattr(request.app.state, "transfer_service", None)
    if service is None:
        return None
    stats = service.get_stats()
    return TransfersHealth(
        driver_configured=service.driver_factory is not None,
        active_batches=stats["active_batches"],
        max_active_batches=stats["max_active_batches"],
        jobs_by_status=stats["registry"]["by_status"],
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Report database reachability and transfer engine load.

    A missing driver factory degrades the service: status polling works
    but no transfer can be started.
    """
    settings = get_settings()
    db_health = await check_database()
    transfers = transfer_health(request)

    if db_health.status != "healthy":
        overall_status = "unhealthy"
    elif transfers is None or not transfers.driver_configured:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=utc_now(),
        database=db_health,
        transfers=transfers,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Check if the API is ready to accept traffic."""
    db_health = await check_database()
    service_ready = getattr(request.app.state, "transfer_service", None) is not None
    checks: dict[str, Any] = {
        "database": {"status": db_health.status, "latency_ms": db_health.latency_ms},
        "transfer_service": {"status": "healthy" if service_ready else "unavailable"},
    }
    return ReadinessResponse(
        ready=db_health.status == "healthy" and service_ready,
        checks=checks,
    )
