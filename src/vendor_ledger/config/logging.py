"""Structured logging for the ledger engine."""

import logging
import sys
from datetime import date
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

import structlog

from vendor_ledger.config.settings import get_settings

# Per-request INFO lines from the extraction client drown out ledger events
_NOISY_LOGGERS = ("httpx", "httpcore")


def render_ledger_values(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Render amounts, ids and dates the same way in JSON and console output.

    Decimals keep their exact digits instead of becoming floats.
    """
    for key, value in event_dict.items():
        if isinstance(value, (Decimal, UUID)):
            event_dict[key] = str(value)
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structlog on top of the standard library root logger.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL`` from settings.
        format: ``json`` for log shipping, ``console`` for development.
            Defaults to ``LOG_FORMAT`` from settings.
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    if (format or settings.log_format) == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            render_ledger_values,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
