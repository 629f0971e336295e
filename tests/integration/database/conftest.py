# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for database integration tests.

Runs against an in-memory SQLite database through aiosqlite unless
TEST_DATABASE_URL points at a real server.
"""

import os
from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import (
    CounselingSession,
    CounselingSessionStudent,
    GuidanceStandard,
    School,
    Student,
)
from src.infrastructure.database.models.base import Base


@pytest.fixture(scope="session")
def db_url() -> str:
    """Get database URL for tests."""
    return os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")


@pytest_asyncio.fixture(scope="function")
async def db_engine(db_url: str):
    """Create async engine with a fresh schema."""
    if db_url.startswith("sqlite"):
        engine = create_async_engine(db_url, poolclass=StaticPool)
    else:
        engine = create_async_engine(db_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def db_sessionmaker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def session_factory(db_sessionmaker):
    """Session factory with the same commit semantics as get_session."""

    def factory():
        return session_scope(db_sessionmaker)

    return factory


@pytest_asyncio.fixture(scope="function")
async def db_session(db_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for assertions."""
    async with db_sessionmaker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def seeded(db_sessionmaker) -> dict[str, str]:
    """Seed two schools, three students, standards and five sessions.

    school-1:
      ind-1  individual, completed, 2025-03-10 09:00, student 101
      grp-1  group, completed, 2025-03-11 10:00, students 101 and 102
      ind-2  individual, completed, 2025-03-12 11:00, already transferred
      ind-3  individual, not completed
    school-2:
      other-1 individual, completed, 2025-03-10 08:00
    """
    async with db_sessionmaker() as session:
        session.add_all(
            [
                School(id="school-1", name="Ataturk Ortaokulu", code="123456"),
                School(id="school-2", name="Cumhuriyet Lisesi", code="654321"),
            ]
        )
        session.add_all(
            [
                GuidanceStandard(id=1, level="service_area", name="Bireysel Gorusme"),
                GuidanceStandard(id=2, level="first", name="Akademik Gelisim"),
                GuidanceStandard(id=3, level="second", name="Okula Uyum"),
                GuidanceStandard(id=4, level="third", code="1.1.1", name="Okul kurallarini bilir"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                Student(id="101", school_id="school-1", name="Ayse", surname="Yilmaz", class_name="7-A"),
                Student(id="102", school_id="school-1", name="Mehmet", surname="Kaya", class_name="7-B"),
                Student(id="201", school_id="school-2", name="Zeynep", surname="Demir", class_name="9-C"),
            ]
        )
        await session.flush()

        def counseling(session_id, school_id, session_type, day, entry, **kwargs):
            return CounselingSession(
                id=session_id,
                school_id=school_id,
                session_type=session_type,
                session_date=date(2025, 3, day),
                entry_time=entry,
                exit_time=kwargs.pop("exit_time", None),
                topic=kwargs.pop("topic", "Uyum"),
                completed=kwargs.pop("completed", True),
                service_area_id=1,
                first_category_id=2,
                second_category_id=3,
                third_category_id=4,
                **kwargs,
            )

        session.add_all(
            [
                counseling("grp-1", "school-1", "group", 11, "10:00"),
                counseling("ind-1", "school-1", "individual", 10, "09:00", exit_time="09:40"),
                counseling("ind-2", "school-1", "individual", 12, "11:00", mebbis_transferred=True),
                counseling("ind-3", "school-1", "individual", 13, "12:00", completed=False),
                counseling("other-1", "school-2", "individual", 10, "08:00"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                CounselingSessionStudent(session_id="ind-1", student_id="101"),
                CounselingSessionStudent(session_id="grp-1", student_id="101"),
                CounselingSessionStudent(session_id="grp-1", student_id="102"),
                CounselingSessionStudent(session_id="ind-2", student_id="102"),
                CounselingSessionStudent(session_id="ind-3", student_id="101"),
                CounselingSessionStudent(session_id="other-1", student_id="201"),
            ]
        )
        await session.commit()

    return {"school_id": "school-1", "other_school_id": "school-2"}
