# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory event bus for transfer progress.

Transfer batches publish their progress here; HTTP streams and tests
subscribe. Delivery is in-process only, so subscribers must live in the
same worker as the batch.

Subscriptions match either an exact event type ("transfer.batch-done")
or an fnmatch pattern ("transfer.*").

Example:
    from src.infrastructure.events import get_event_bus, EventTypes

    bus = get_event_bus()

    async def on_done(event):
        print(event.payload["successful"])

    bus.subscribe(EventTypes.Transfer.BATCH_DONE, on_done)

    await bus.publish(
        EventTypes.Transfer.BATCH_DONE,
        {"transfer_id": "abc", "successful": 3},
    )
"""

import asyncio
import fnmatch
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable
from uuid import uuid4

from src.utils.datetime import format_iso, utc_now

logger = logging.getLogger(__name__)

EventHandler = Callable[["EventData"], Awaitable[None]]


def _is_pattern(event_type: str) -> bool:
    return "*" in event_type or "?" in event_type


@dataclass
class EventData:
    """A published event.

    Attributes:
        event_type: Fully qualified event type.
        payload: Event payload.
        event_id: Unique event identifier.
        timestamp: Publish time (UTC).
        school_id: Optional school scope of the event.
    """

    event_type: str
    payload: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    school_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "timestamp": format_iso(self.timestamp),
            "school_id": self.school_id,
        }


class EventBus:
    """In-memory async publish/subscribe with wildcard patterns.

    Designed for single event loop use. Handler failures are logged and
    never reach the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._pattern_handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._event_count = 0

    def _table(self, event_type: str) -> dict[str, list[EventHandler]]:
        return self._pattern_handlers if _is_pattern(event_type) else self._handlers

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type or pattern.

        Args:
            event_type: Exact event type or fnmatch pattern.
            handler: Async callable receiving the EventData.
        """
        self._table(event_type)[event_type].append(handler)
        logger.debug("Subscribed handler to: %s", event_type)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Remove a handler.

        Returns:
            True if the handler was subscribed, False otherwise.
        """
        table = self._table(event_type)
        handlers = table.get(event_type)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del table[event_type]
        return True

    def _matching(self, event_type: str) -> list[EventHandler]:
        handlers = list(self._handlers.get(event_type, ()))
        for pattern, pattern_handlers in self._pattern_handlers.items():
            if fnmatch.fnmatch(event_type, pattern):
                handlers.extend(pattern_handlers)
        return handlers

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        school_id: str | None = None,
    ) -> EventData:
        """Publish an event to all matching subscribers.

        Handlers run concurrently. A failing handler is logged and does
        not affect the others.

        Args:
            event_type: Fully qualified event type.
            payload: Event payload.
            school_id: Optional school scope.

        Returns:
            The published event.
        """
        event = EventData(event_type=event_type, payload=payload, school_id=school_id)
        self._event_count += 1

        handlers = self._matching(event_type)
        if not handlers:
            return event

        async def safe_call(handler: EventHandler) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Handler error for event %s: %s",
                    event_type,
                    str(e),
                    exc_info=True,
                )

        await asyncio.gather(*(safe_call(h) for h in handlers))
        return event

    @asynccontextmanager
    async def listen(
        self,
        pattern: str,
        predicate: Callable[[EventData], bool] | None = None,
        maxsize: int = 256,
    ) -> AsyncIterator["asyncio.Queue[EventData]"]:
        """Collect matching events into a queue for the duration of a block.

        When the queue is full, new events are dropped so a stalled
        reader never blocks publishers.

        Args:
            pattern: Event type or pattern to listen on.
            predicate: Optional filter applied before queueing.
            maxsize: Queue bound.

        Yields:
            Queue receiving matching events.
        """
        queue: asyncio.Queue[EventData] = asyncio.Queue(maxsize=maxsize)

        async def enqueue(event: EventData) -> None:
            if predicate is not None and not predicate(event):
                return
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Listener queue full, dropping %s", event.event_type)

        self.subscribe(pattern, enqueue)
        try:
            yield queue
        finally:
            self.unsubscribe(pattern, enqueue)

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._handlers.clear()
        self._pattern_handlers.clear()

    def get_stats(self) -> dict[str, Any]:
        total = sum(len(h) for h in self._handlers.values()) + sum(
            len(h) for h in self._pattern_handlers.values()
        )
        return {
            "exact_subscriptions": len(self._handlers),
            "pattern_subscriptions": len(self._pattern_handlers),
            "total_handlers": total,
            "events_published": self._event_count,
        }


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the process-wide event bus. Used by tests."""
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None
