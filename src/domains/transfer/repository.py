# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database-backed record source and outcome persistence.

Both classes take a session factory (an async context manager yielding a
committed-on-exit AsyncSession) instead of a live session, because a batch
outlives the request that started it.

Every query and update is scoped by school_id; calls without one are
refused before any SQL is issued.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Callable

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from src.domains.transfer.models import SchoolContext, SessionRecord, TransferFilters
from src.infrastructure.database.models import (
    CounselingSession,
    CounselingSessionStudent,
    GuidanceStandard,
    School,
    Student,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _require_school(school_id: str, operation: str) -> None:
    if not school_id:
        raise ValueError(f"school_id is required for {operation}")


class SessionRecordSource:
    """Selects completed counseling sessions eligible for transfer."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def select_records(self, filters: TransferFilters) -> list[SessionRecord]:
        """Select one record per (session, student) pair.

        Args:
            filters: Selection filters.

        Returns:
            Records ordered by session date and entry time.
        """
        _require_school(filters.school_id, "select_records")
        stmt = self._build_query(filters)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        records = [
            SessionRecord(
                session_id=row.session_id,
                school_id=row.school_id,
                session_type="group" if row.session_type == "group" else "individual",
                session_date=row.session_date,
                entry_time=row.entry_time,
                exit_time=row.exit_time,
                topic=row.topic or "",
                session_details=row.session_details,
                detailed_notes=row.detailed_notes,
                student_no=row.student_no,
                student_name=f"{row.student_first_name} {row.student_surname}",
                class_name=row.class_name or "",
                service_area=row.service_area,
                first_category=row.first_category,
                second_category=row.second_category,
                third_category_code=row.third_category_code,
                third_category_description=row.third_category_description,
            )
            for row in rows
        ]
        logger.info(
            "Selected %d session records for school %s",
            len(records),
            filters.school_id,
        )
        return records

    async def get_school(self, school_id: str) -> SchoolContext:
        """Resolve the MEBBIS institution code and name of a school."""
        _require_school(school_id, "get_school")
        async with self._session_factory() as session:
            result = await session.execute(
                select(School.code, School.name).where(School.id == school_id)
            )
            row = result.one_or_none()

        if row is None:
            return SchoolContext(school_id=school_id)
        return SchoolContext(school_id=school_id, institution_code=row.code, name=row.name)

    @staticmethod
    def _build_query(filters: TransferFilters) -> Select:
        service_area = aliased(GuidanceStandard)
        first = aliased(GuidanceStandard)
        second = aliased(GuidanceStandard)
        third = aliased(GuidanceStandard)

        stmt = (
            select(
                CounselingSession.id.label("session_id"),
                CounselingSession.school_id,
                CounselingSession.session_type,
                CounselingSession.session_date,
                CounselingSession.entry_time,
                CounselingSession.exit_time,
                CounselingSession.topic,
                CounselingSession.session_details,
                CounselingSession.detailed_notes,
                Student.id.label("student_no"),
                Student.name.label("student_first_name"),
                Student.surname.label("student_surname"),
                Student.class_name,
                service_area.name.label("service_area"),
                first.name.label("first_category"),
                second.name.label("second_category"),
                third.code.label("third_category_code"),
                third.name.label("third_category_description"),
            )
            .join(
                CounselingSessionStudent,
                CounselingSessionStudent.session_id == CounselingSession.id,
            )
            .join(Student, Student.id == CounselingSessionStudent.student_id)
            .outerjoin(service_area, service_area.id == CounselingSession.service_area_id)
            .outerjoin(first, first.id == CounselingSession.first_category_id)
            .outerjoin(second, second.id == CounselingSession.second_category_id)
            .outerjoin(third, third.id == CounselingSession.third_category_id)
            .where(
                CounselingSession.completed.is_(True),
                CounselingSession.school_id == filters.school_id,
            )
        )

        if filters.session_ids:
            stmt = stmt.where(CounselingSession.id.in_(filters.session_ids))

        if filters.only_not_transferred:
            stmt = stmt.where(
                or_(
                    CounselingSession.mebbis_transferred.is_(None),
                    CounselingSession.mebbis_transferred.is_(False),
                )
            )

        if filters.start_date:
            stmt = stmt.where(CounselingSession.session_date >= filters.start_date)

        if filters.end_date:
            stmt = stmt.where(CounselingSession.session_date <= filters.end_date)

        return stmt.order_by(
            CounselingSession.session_date.asc(),
            CounselingSession.entry_time.asc(),
            CounselingSession.id.asc(),
            Student.id.asc(),
        )


class SessionTransferPersistence:
    """Writes transfer outcomes onto counseling_sessions rows."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def mark_transferred(
        self,
        school_id: str,
        item_id: str,
        timestamp: datetime,
    ) -> None:
        """Mark a session transferred.

        Idempotent: marking twice leaves one transferred row with the
        latest timestamp. Clears the error and resets the retry counter.
        """
        _require_school(school_id, "mark_transferred")
        async with self._session_factory() as session:
            await session.execute(
                update(CounselingSession)
                .where(
                    CounselingSession.id == item_id,
                    CounselingSession.school_id == school_id,
                )
                .values(
                    mebbis_transferred=True,
                    mebbis_transfer_date=timestamp,
                    mebbis_transfer_error=None,
                    mebbis_retry_count=0,
                    updated_at=utc_now(),
                )
            )

    async def record_error(self, school_id: str, item_id: str, message: str) -> None:
        """Store a failure reason and bump the retry counter."""
        _require_school(school_id, "record_error")
        async with self._session_factory() as session:
            await session.execute(
                update(CounselingSession)
                .where(
                    CounselingSession.id == item_id,
                    CounselingSession.school_id == school_id,
                )
                .values(
                    mebbis_transfer_error=message,
                    mebbis_retry_count=func.coalesce(CounselingSession.mebbis_retry_count, 0) + 1,
                    updated_at=utc_now(),
                )
            )
