# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the school database."""

from src.infrastructure.database.models.base import Base, TimestampMixin
from src.infrastructure.database.models.school import (
    CounselingSession,
    CounselingSessionStudent,
    GuidanceStandard,
    School,
    Student,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "School",
    "Student",
    "GuidanceStandard",
    "CounselingSession",
    "CounselingSessionStudent",
]
