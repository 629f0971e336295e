# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""EventSink implementation backed by the in-memory EventBus."""

from typing import Any

from src.infrastructure.events.bus import EventBus
from src.infrastructure.events.types import EventTypes


class EventBusSink:
    """Publishes transfer events on an EventBus as "transfer.<kind>".

    The transfer id is merged into every payload so pattern subscribers
    can tell batches apart.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    async def publish(
        self,
        batch_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> None:
        await self._bus.publish(
            EventTypes.Transfer.for_kind(event_type),
            {"transfer_id": batch_id, **payload},
        )
