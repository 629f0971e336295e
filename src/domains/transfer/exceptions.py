# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the transfer engine."""


class TransferServiceError(Exception):
    """Base exception for transfer service errors."""

    pass


class NoRecordsSelectedError(TransferServiceError):
    """Raised when the selection filters match no sessions."""

    pass


class DuplicateTransferError(TransferServiceError):
    """Raised when a transfer id is already registered."""

    pass


class TransferNotFoundError(TransferServiceError):
    """Raised when a transfer id is unknown."""

    pass


class TransferCapacityError(TransferServiceError):
    """Raised when the maximum number of active batches is reached."""

    pass


class DriverNotConfiguredError(TransferServiceError):
    """Raised when no automation driver factory is available."""

    pass


class AutomationInitializationError(TransferServiceError):
    """Raised when the automation driver cannot reach a ready state."""

    pass


class AutomationUnavailableError(TransferServiceError):
    """Raised by a driver whose browser/session is gone mid-batch.

    Unlike submission failures this is not an item outcome; the batch
    moves to error.
    """

    pass


class MappingError(TransferServiceError):
    """Raised when a session cannot be mapped to the remote form."""

    pass
