# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Mapping of counseling session records onto the MEBBIS entry form.

The mapper is pure: guidance standard labels arrive already resolved on the
record, so mapping never touches the database.

Form rules:
- Dates are rendered DD/MM/YYYY, times HH:MM.
- A session without an exit time is assumed to last one hour.
- An end time that is not after the start time is replaced by start + 40
  minutes, since MEBBIS rejects such entries.
- Computed end times never run past 23:59 of the session day. A session
  starting at 23:59 cannot be entered and raises MappingError.
- Sessions recorded before the guidance standard catalogue existed fall
  back to topic / details / first line of the notes.
"""

import logging
from datetime import date, datetime, time, timedelta

from src.domains.transfer.exceptions import MappingError
from src.domains.transfer.models import RemoteFormData, SessionRecord

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=1)
CORRECTED_DURATION = timedelta(minutes=40)
NOTE_SUMMARY_MIN_LENGTH = 10
NOTE_SUMMARY_MAX_LENGTH = 100
LAST_MINUTE = time(23, 59)


class SessionMapper:
    """Maps SessionRecord instances to RemoteFormData."""

    def map_to_remote_schema(self, record: SessionRecord) -> RemoteFormData:
        """Map one record to the remote form.

        Args:
            record: Session record with resolved standard labels.

        Returns:
            Form data for the automation driver.

        Raises:
            MappingError: If the date or times cannot be interpreted.
        """
        try:
            start = _parse_time(record.entry_time)
            end = _parse_time(record.exit_time) if record.exit_time else _shift(start, DEFAULT_DURATION)
            session_date = _format_date(record.session_date)
        except (TypeError, ValueError) as e:
            raise MappingError(
                f"Session {record.session_id} could not be mapped: {e}"
            ) from e

        if end <= start:
            logger.warning(
                "Session %s ends (%s) before it starts (%s), using +40 minutes",
                record.session_id,
                end.strftime("%H:%M"),
                start.strftime("%H:%M"),
            )
            end = _shift(start, CORRECTED_DURATION)

        if end <= start:
            raise MappingError(
                f"Session {record.session_id} starts at {start:%H:%M}, too late for a MEBBIS entry"
            )

        if record.has_standard_refs:
            service_area = record.service_area or ""
            first_category = record.first_category or ""
            second_category = record.second_category or ""
            third_category = _join_code(
                record.third_category_code,
                record.third_category_description,
            )
        else:
            logger.warning(
                "Session %s has no guidance standard references, mapping from topic",
                record.session_id,
            )
            service_area = record.topic
            first_category = record.topic
            second_category = record.session_details or ""
            third_category = _summarize_notes(record.detailed_notes)

        return RemoteFormData(
            student_no=record.student_no,
            service_area=service_area,
            first_category=first_category,
            second_category=second_category,
            third_category=third_category,
            session_date=session_date,
            start_time=start.strftime("%H:%M"),
            end_time=end.strftime("%H:%M"),
        )


def _format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def _parse_time(value: str) -> time:
    """Parse "HH:MM", "HH:MM:SS" or an ISO datetime into a time."""
    value = value.strip()
    if "T" in value or "-" in value:
        return datetime.fromisoformat(value).time().replace(second=0, microsecond=0)
    parts = value.split(":")
    if len(parts) < 2:
        raise ValueError(f"invalid time {value!r}")
    return time(int(parts[0]), int(parts[1]))


def _shift(value: time, delta: timedelta) -> time:
    """Add a duration, clamped to the last minute of the same day."""
    shifted = datetime.combine(date.min, value) + delta
    if shifted.date() != date.min:
        return LAST_MINUTE
    return shifted.time()


def _join_code(code: str | None, description: str | None) -> str | None:
    if code and description:
        return f"{code} - {description}"
    return description or code or None


def _summarize_notes(notes: str | None) -> str | None:
    if not notes or len(notes) < NOTE_SUMMARY_MIN_LENGTH:
        return None
    summary = notes.split("\n")[0] or notes
    return summary[:NOTE_SUMMARY_MAX_LENGTH]
