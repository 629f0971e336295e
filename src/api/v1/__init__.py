# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    mebbis: MEBBIS transfer endpoints (start, status, cancel, events).
"""

from fastapi import APIRouter

from src.api.v1 import mebbis

router = APIRouter(prefix="/api/v1")

router.include_router(mebbis.router, prefix="/mebbis", tags=["MEBBIS Transfer"])

__all__ = ["router"]
