# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School, student and counseling session tables.

Only the columns the MEBBIS transfer reads or writes are mapped here; the
rest of these tables belongs to the counseling CRUD screens.
"""

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import Base, TimestampMixin


class School(Base, TimestampMixin):
    """A school (tenant). code is the MEBBIS institution code."""

    __tablename__ = "schools"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(32), nullable=True)


class Student(Base, TimestampMixin):
    """A student. id is the student number used on MEBBIS."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    school_id: Mapped[str] = mapped_column(
        ForeignKey("schools.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    class_name: Mapped[str | None] = mapped_column("class", String(32), nullable=True)


class GuidanceStandard(Base):
    """Entry of the guidance service standard catalogue.

    level is one of service_area, first, second, third. Third level entries
    carry a code next to their description.
    """

    __tablename__ = "guidance_standards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)


class CounselingSession(Base, TimestampMixin):
    """A counseling session with its MEBBIS transfer bookkeeping."""

    __tablename__ = "counseling_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    school_id: Mapped[str] = mapped_column(
        ForeignKey("schools.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    session_type: Mapped[str] = mapped_column(String(20), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    entry_time: Mapped[str] = mapped_column(String(20), nullable=False)
    exit_time: Mapped[str | None] = mapped_column(String(20), nullable=True)
    topic: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    session_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    detailed_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    service_area_id: Mapped[int | None] = mapped_column(
        ForeignKey("guidance_standards.id"), nullable=True
    )
    first_category_id: Mapped[int | None] = mapped_column(
        ForeignKey("guidance_standards.id"), nullable=True
    )
    second_category_id: Mapped[int | None] = mapped_column(
        ForeignKey("guidance_standards.id"), nullable=True
    )
    third_category_id: Mapped[int | None] = mapped_column(
        ForeignKey("guidance_standards.id"), nullable=True
    )

    mebbis_transferred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mebbis_transfer_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    mebbis_transfer_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    mebbis_retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    students: Mapped[list["CounselingSessionStudent"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
    )


class CounselingSessionStudent(Base):
    """Participation of a student in a counseling session."""

    __tablename__ = "counseling_session_students"

    session_id: Mapped[str] = mapped_column(
        ForeignKey("counseling_sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    student_id: Mapped[str] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"),
        primary_key=True,
    )

    session: Mapped[CounselingSession] = relationship(back_populates="students")
