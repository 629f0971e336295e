# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting using slowapi.

Limits are tracked per school (X-School-Id header) and client IP, in
process memory. Starting a transfer opens a browser session against
MEBBIS, so it has its own, much lower limit.

Example:
    @router.post("/start")
    @limiter.limit(transfer_start_limit)
    async def start_transfer(request: Request, ...):
        ...
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.core.config import get_settings

logger = logging.getLogger(__name__)

SCHOOL_HEADER = "X-School-Id"


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for the client.

    Args:
        request: HTTP request.

    Returns:
        "school:<id>:ip:<addr>", or "ip:<addr>" without a school header.
    """
    parts = []
    school_id = request.headers.get(SCHOOL_HEADER)
    if school_id:
        parts.append(f"school:{school_id}")
    parts.append(f"ip:{get_remote_address(request)}")
    return ":".join(parts)


def transfer_start_limit() -> str:
    """Limit string for transfer starts, read from settings."""
    return f"{get_settings().rate_limit.transfer_starts_per_minute}/minute"


settings = get_settings()
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit.requests_per_minute}/minute"],
    enabled=settings.rate_limit.enabled,
)


async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Return 429 Too Many Requests with retry information."""
    logger.warning(
        "Rate limit exceeded: %s for %s",
        exc.detail,
        get_client_identifier(request),
    )

    return Response(
        content='{"detail": "Too many requests. Please try again later."}',
        status_code=429,
        media_type="application/json",
        headers={"Retry-After": "60"},
    )
