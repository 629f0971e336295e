# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Partitioning of selected records into work items."""

from collections.abc import Iterable

from src.domains.transfer.models import GroupItem, IndividualItem, SessionRecord, WorkItem


def build_work_items(records: Iterable[SessionRecord]) -> list[WorkItem]:
    """Partition records into the ordered work item sequence of a batch.

    Individual records become one item each and come first, in source
    order. Group records are collected by group key; groups follow in the
    order their first record appeared, members in source order.

    Args:
        records: Records as returned by the record source.

    Returns:
        Individual items followed by group items.
    """
    individuals: list[WorkItem] = []
    groups: dict[str, list[SessionRecord]] = {}

    for record in records:
        key = record.group_key
        if key is None:
            individuals.append(IndividualItem(record=record))
        else:
            groups.setdefault(key, []).append(record)

    group_items: list[WorkItem] = [
        GroupItem(group_key=key, records=tuple(members))
        for key, members in groups.items()
    ]
    return individuals + group_items
