# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Loading of the automation driver factory from configuration.

TRANSFER_DRIVER_FACTORY names a callable taking a SchoolContext and
returning a fresh AutomationDriver, written as "package.module:callable"
or "package.module.callable".
"""

import importlib
import logging

from src.domains.transfer.exceptions import DriverNotConfiguredError
from src.domains.transfer.interfaces import DriverFactory

logger = logging.getLogger(__name__)


def load_driver_factory(path: str | None) -> DriverFactory | None:
    """Import the configured driver factory.

    Args:
        path: Dotted path of the factory, or None when unset.

    Returns:
        The factory callable, or None if no path is configured.

    Raises:
        DriverNotConfiguredError: If the path cannot be imported or does
            not point at a callable.
    """
    if not path:
        logger.warning("No MEBBIS driver factory configured, transfers are disabled")
        return None

    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")

    if not module_name or not attr:
        raise DriverNotConfiguredError(f"Invalid driver factory path: {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise DriverNotConfiguredError(
            f"Driver factory module {module_name!r} cannot be imported: {e}"
        ) from e

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise DriverNotConfiguredError(f"Driver factory {path!r} is not callable")

    logger.info("Loaded MEBBIS driver factory %s", path)
    return factory
