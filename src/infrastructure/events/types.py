# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions.

Event names are "<domain>.<event>" strings. Using constants instead of
string literals keeps publishers and subscribers in agreement and lets
pattern subscribers ("transfer.*") pick up new events automatically.

Adding a new event:
1. Add constant to appropriate class here
2. Add it to EventPatterns.TERMINAL if it ends a stream
"""


class EventTypes:
    """All event types organized by domain."""

    class Transfer:
        """MEBBIS transfer batch events.

        Every payload carries transfer_id.
        """

        PROGRESS = "transfer.progress"
        STATUS = "transfer.status"
        ITEM_START = "transfer.item-start"
        ITEM_DONE = "transfer.item-done"
        ITEM_FAILED = "transfer.item-failed"
        BATCH_DONE = "transfer.batch-done"
        BATCH_ERROR = "transfer.batch-error"

        @classmethod
        def for_kind(cls, kind: str) -> str:
            """Build the bus event type for a short transfer event kind.

            Args:
                kind: Short kind such as "progress" or "batch-done".

            Returns:
                Fully qualified event type string.
            """
            return f"transfer.{kind}"


class EventPatterns:
    """Common subscription patterns."""

    ALL_TRANSFER = "transfer.*"

    # Events after which no more events follow for the same transfer
    TERMINAL = frozenset(
        {
            EventTypes.Transfer.BATCH_DONE,
            EventTypes.Transfer.BATCH_ERROR,
        }
    )
