# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Transfer of single work items.

ItemProcessor turns one work item into exactly one remote submission and
writes the outcome back to the session rows. Remote rejections, timeouts
and unmappable sessions are returned as failed ItemResults. Only
AutomationUnavailableError (and genuine bugs) propagate.

One processor serves one batch: it remembers whether the driver has
already been switched to group entry so the switch happens once per batch.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from src.domains.transfer.exceptions import AutomationUnavailableError, MappingError
from src.domains.transfer.interfaces import AutomationDriver, TransferPersistence
from src.domains.transfer.mapper import SessionMapper
from src.domains.transfer.models import (
    GroupItem,
    IndividualItem,
    ItemResult,
    MemberRef,
    SessionRecord,
    SubmissionResult,
    TransferErrorEntry,
    WorkItem,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ItemTimeoutError(Exception):
    """Raised when a driver call exceeds the configured item timeout."""

    pass


class ItemProcessor:
    """Processes individual and group work items for one batch.

    Attributes:
        driver: Automation driver owned by the batch.
        mapper: Session to form mapper.
        persistence: Outcome writer.
        school_id: Owning school; scopes every write.
        item_timeout: Optional bound on each driver call, in seconds.
    """

    def __init__(
        self,
        driver: AutomationDriver,
        mapper: SessionMapper,
        persistence: TransferPersistence,
        school_id: str,
        item_timeout: float | None = None,
    ) -> None:
        self.driver = driver
        self.mapper = mapper
        self.persistence = persistence
        self.school_id = school_id
        self.item_timeout = item_timeout
        self._group_mode = False

    async def process(self, item: WorkItem) -> ItemResult:
        """Transfer one work item.

        Args:
            item: Individual or group item.

        Returns:
            Structured outcome of the item.

        Raises:
            AutomationUnavailableError: If the driver is gone.
        """
        if isinstance(item, GroupItem):
            return await self._process_group(item)
        return await self._process_individual(item)

    async def _process_individual(self, item: IndividualItem) -> ItemResult:
        record = item.record
        try:
            form = self.mapper.map_to_remote_schema(record)
        except MappingError as e:
            return await self._fail(item, str(e))

        result = await self._submit(self.driver.submit_individual(form))
        if not result.success:
            return await self._fail(item, result.error or "Unknown error")

        await self.persistence.mark_transferred(self.school_id, item.item_id, utc_now())
        logger.info(
            "Individual session %s transferred for student %s",
            item.item_id,
            record.student_no,
        )
        return ItemResult.succeeded(item)

    async def _process_group(self, item: GroupItem) -> ItemResult:
        if not self._group_mode:
            await self._call(self.driver.enter_group_mode())
            self._group_mode = True

        accepted, rejected = await self._add_members(item)
        member_failures = tuple(
            TransferErrorEntry(
                item_id=item.item_id,
                record_identifiers=(record.record_id,),
                message=f"Student {record.student_no} could not be added to the group: {reason}",
            )
            for record, reason in rejected
        )

        if not accepted:
            failed_nos = ", ".join(record.student_no for record, _ in rejected)
            return await self._fail(
                item,
                f"No students could be added to the group. Failed: {failed_nos}",
                member_failures,
            )

        if rejected:
            logger.warning(
                "Group session %s: %d of %d students could not be added",
                item.item_id,
                len(rejected),
                len(item.records),
            )

        # Group-level fields are shared, so the first accepted member supplies them
        try:
            form = self.mapper.map_to_remote_schema(accepted[0])
        except MappingError as e:
            return await self._fail(item, str(e), member_failures)

        result = await self._submit(self.driver.submit_group(form))
        if not result.success:
            return await self._fail(
                item,
                result.error or "Group submission failed",
                member_failures,
            )

        await self.persistence.mark_transferred(self.school_id, item.item_id, utc_now())
        logger.info(
            "Group session %s transferred with %d students",
            item.item_id,
            len(accepted),
        )
        return ItemResult.succeeded(item, member_failures)

    async def _add_members(
        self,
        item: GroupItem,
    ) -> tuple[list[SessionRecord], list[tuple[SessionRecord, str]]]:
        accepted: list[SessionRecord] = []
        rejected: list[tuple[SessionRecord, str]] = []

        for record in item.records:
            member = MemberRef(student_no=record.student_no, class_name=record.class_name)
            try:
                added = await self._call(self.driver.add_group_member(member))
            except AutomationUnavailableError:
                raise
            except ItemTimeoutError as e:
                rejected.append((record, str(e)))
                continue
            except Exception as e:
                logger.warning(
                    "Adding student %s to group %s failed: %s",
                    record.student_no,
                    item.item_id,
                    str(e),
                )
                rejected.append((record, str(e)))
                continue

            if added:
                accepted.append(record)
            else:
                rejected.append((record, "rejected by MEBBIS"))

        return accepted, rejected

    async def _submit(self, call: Awaitable[SubmissionResult]) -> SubmissionResult:
        try:
            return await self._call(call)
        except ItemTimeoutError as e:
            return SubmissionResult.failed(str(e))

    async def _call(self, call: Awaitable[T]) -> T:
        if self.item_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.item_timeout)
        except asyncio.TimeoutError as e:
            raise ItemTimeoutError(
                f"MEBBIS did not respond within {self.item_timeout:g}s"
            ) from e

    async def _fail(
        self,
        item: WorkItem,
        message: str,
        member_failures: tuple[TransferErrorEntry, ...] = (),
    ) -> ItemResult:
        logger.warning("Transfer of %s %s failed: %s", item.kind, item.item_id, message)
        await self.persistence.record_error(self.school_id, item.item_id, message)
        return ItemResult.failure(item, message, member_failures)
