"""Structured logging for recordQL using structlog.

Every module obtains its logger through :func:`get_logger` and emits
dotted event names with key-value context::

    logger = get_logger(__name__)
    logger.warning("clause.rejected", operator="in", reason="value is not a list")

The library never configures logging on import.  Applications that want
recordQL's processor chain call :func:`configure_logging` once at start-up;
otherwise structlog's defaults apply.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, MutableMapping

import structlog
from structlog.types import EventDict, Processor

SENSITIVE_PATTERNS = [
    re.compile(r".*password.*", re.IGNORECASE),
    re.compile(r".*secret.*", re.IGNORECASE),
    re.compile(r"^(dsn|conninfo|database_uri)$", re.IGNORECASE),
]

REDACTED_VALUE = "[REDACTED]"


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    """Redact values whose keys look like credentials or connection strings."""
    return {
        key: REDACTED_VALUE if any(p.match(key) for p in SENSITIVE_PATTERNS) else value
        for key, value in event_dict.items()
    }


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Install the recordQL structlog processor chain.

    Args:
        level: Logging level name; defaults to ``Settings.log_level``.
        json_output: Render JSON instead of console text; defaults to
            ``Settings.log_json``.
    """
    from recordql.config import get_settings

    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if json_output is None:
        json_output = settings.log_json

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitization_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
