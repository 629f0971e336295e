# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

Exports:
    limiter: slowapi Limiter keyed by school and client IP.
    rate_limit_exceeded_handler: 429 response handler.
"""

from src.api.middleware.rate_limit import (
    get_client_identifier,
    limiter,
    rate_limit_exceeded_handler,
    transfer_start_limit,
)

__all__ = [
    "limiter",
    "get_client_identifier",
    "rate_limit_exceeded_handler",
    "transfer_start_limit",
]
