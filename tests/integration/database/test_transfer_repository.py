# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the session record source and persistence."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from src.domains.transfer.models import TransferFilters
from src.domains.transfer.repository import SessionRecordSource, SessionTransferPersistence
from src.infrastructure.database.models import CounselingSession

pytestmark = pytest.mark.integration


async def _session_row(db_sessionmaker, session_id: str) -> CounselingSession:
    async with db_sessionmaker() as session:
        result = await session.execute(
            select(CounselingSession).where(CounselingSession.id == session_id)
        )
        return result.scalar_one()


class TestSessionRecordSource:
    """Tests for SessionRecordSource.select_records."""

    @pytest.mark.asyncio
    async def test_selects_completed_sessions_of_school(self, session_factory, seeded) -> None:
        """Test only completed sessions of the requesting school are returned."""
        source = SessionRecordSource(session_factory)

        records = await source.select_records(TransferFilters(school_id="school-1"))

        assert [(r.session_id, r.student_no) for r in records] == [
            ("ind-1", "101"),
            ("grp-1", "101"),
            ("grp-1", "102"),
            ("ind-2", "102"),
        ]
        assert {r.school_id for r in records} == {"school-1"}

    @pytest.mark.asyncio
    async def test_record_fields(self, session_factory, seeded) -> None:
        """Test joined student and standard fields are filled."""
        source = SessionRecordSource(session_factory)

        records = await source.select_records(
            TransferFilters(school_id="school-1", session_ids=("ind-1",))
        )

        [record] = records
        assert record.session_type == "individual"
        assert record.session_date == date(2025, 3, 10)
        assert record.entry_time == "09:00"
        assert record.exit_time == "09:40"
        assert record.student_name == "Ayse Yilmaz"
        assert record.class_name == "7-A"
        assert record.service_area == "Bireysel Gorusme"
        assert record.first_category == "Akademik Gelisim"
        assert record.second_category == "Okula Uyum"
        assert record.third_category_code == "1.1.1"
        assert record.third_category_description == "Okul kurallarini bilir"

    @pytest.mark.asyncio
    async def test_group_has_row_per_student(self, session_factory, seeded) -> None:
        """Test a group session yields one record per participant."""
        source = SessionRecordSource(session_factory)

        records = await source.select_records(
            TransferFilters(school_id="school-1", session_ids=("grp-1",))
        )

        assert [r.student_no for r in records] == ["101", "102"]
        assert {r.group_key for r in records} == {"grp-1"}

    @pytest.mark.asyncio
    async def test_session_ids_cannot_escape_school(self, session_factory, seeded) -> None:
        """Test explicit ids of another school are not selected."""
        source = SessionRecordSource(session_factory)

        records = await source.select_records(
            TransferFilters(school_id="school-1", session_ids=("other-1",))
        )

        assert records == []

    @pytest.mark.asyncio
    async def test_only_not_transferred(self, session_factory, seeded) -> None:
        """Test transferred sessions are skipped on request."""
        source = SessionRecordSource(session_factory)

        records = await source.select_records(
            TransferFilters(school_id="school-1", only_not_transferred=True)
        )

        assert "ind-2" not in {r.session_id for r in records}
        assert len(records) == 3

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive(self, session_factory, seeded) -> None:
        """Test start and end dates bound the selection inclusively."""
        source = SessionRecordSource(session_factory)

        records = await source.select_records(
            TransferFilters(
                school_id="school-1",
                start_date=date(2025, 3, 11),
                end_date=date(2025, 3, 12),
            )
        )

        assert {r.session_id for r in records} == {"grp-1", "ind-2"}

    @pytest.mark.asyncio
    async def test_get_school(self, session_factory, seeded) -> None:
        """Test the institution code is resolved for a school."""
        source = SessionRecordSource(session_factory)

        school = await source.get_school("school-1")
        unknown = await source.get_school("school-9")

        assert school.institution_code == "123456"
        assert school.name == "Ataturk Ortaokulu"
        assert unknown.institution_code is None

    @pytest.mark.asyncio
    async def test_missing_school_rejected(self, session_factory) -> None:
        """Test calls without a school id are refused."""
        source = SessionRecordSource(session_factory)

        with pytest.raises(ValueError):
            await source.get_school("")


class TestSessionTransferPersistence:
    """Tests for SessionTransferPersistence."""

    @pytest.mark.asyncio
    async def test_record_error_increments_retry(
        self, session_factory, db_sessionmaker, seeded
    ) -> None:
        """Test each failure stores the reason and bumps the counter."""
        persistence = SessionTransferPersistence(session_factory)

        await persistence.record_error("school-1", "ind-1", "timeout")
        await persistence.record_error("school-1", "ind-1", "MEBBIS rejected")

        row = await _session_row(db_sessionmaker, "ind-1")
        assert row.mebbis_transfer_error == "MEBBIS rejected"
        assert row.mebbis_retry_count == 2
        assert row.mebbis_transferred is False

    @pytest.mark.asyncio
    async def test_mark_transferred_is_idempotent(
        self, session_factory, db_sessionmaker, seeded
    ) -> None:
        """Test marking twice keeps one transferred row and resets errors."""
        persistence = SessionTransferPersistence(session_factory)
        first = datetime(2025, 3, 20, 9, 0, tzinfo=timezone.utc)
        second = datetime(2025, 3, 21, 9, 0, tzinfo=timezone.utc)

        await persistence.record_error("school-1", "ind-1", "timeout")
        await persistence.mark_transferred("school-1", "ind-1", first)
        await persistence.mark_transferred("school-1", "ind-1", second)

        row = await _session_row(db_sessionmaker, "ind-1")
        assert row.mebbis_transferred is True
        assert row.mebbis_transfer_error is None
        assert row.mebbis_retry_count == 0
        assert row.mebbis_transfer_date.replace(tzinfo=timezone.utc) == second

    @pytest.mark.asyncio
    async def test_writes_are_school_scoped(
        self, session_factory, db_sessionmaker, seeded
    ) -> None:
        """Test a school cannot mark another school's session."""
        persistence = SessionTransferPersistence(session_factory)

        await persistence.mark_transferred(
            "school-1", "other-1", datetime(2025, 3, 20, tzinfo=timezone.utc)
        )

        row = await _session_row(db_sessionmaker, "other-1")
        assert row.mebbis_transferred is False

    @pytest.mark.asyncio
    async def test_missing_school_rejected(self, session_factory) -> None:
        """Test writes without a school id are refused."""
        persistence = SessionTransferPersistence(session_factory)

        with pytest.raises(ValueError):
            await persistence.record_error("", "ind-1", "x")
