# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Modules log through the standard library (logging.getLogger(__name__)).
Their records are rendered by structlog's ProcessorFormatter, so context
bound with bind_context() appears on every line of the current task, as
colored console output in development and JSON elsewhere.

Example:
    >>> from src.utils.logging import setup_logging, bind_context
    >>> setup_logging(get_settings())
    >>> bind_context(transfer_id="t-1", school_id="school-1")
    >>> logging.getLogger(__name__).info("Processing %d items", 12)
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

QUIET_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "apscheduler",
    "aiosqlite",
    "asyncpg",
    "asyncio",
)

_handler: logging.Handler | None = None


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def setup_logging(settings: "Settings") -> None:
    """Configure structlog and route stdlib logging through it.

    Calling it again replaces the handler installed by the previous call.

    Args:
        settings: Application settings (log_level, environment, debug).
    """
    global _handler

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    shared = _shared_processors()

    render_chain: list[Processor]
    if settings.is_development or settings.debug:
        render_chain = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        render_chain = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *render_chain,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    root.setLevel(log_level)
    _handler = handler

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("src").setLevel(log_level)


def bind_context(**kwargs: object) -> None:
    """Bind fields to all following log lines of the current context.

    Each transfer batch runs in its own asyncio task, so values bound there
    stay attached to that batch's lines only.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
